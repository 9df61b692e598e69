"""
Django settings for the EU VAT core - Base Configuration
VAT calculation, EU rate sync and VIES validation.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment ('1', 'true', 'yes', 'on')."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Application definition
DJANGO_APPS: list[str] = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

THIRD_PARTY_APPS: list[str] = [
    "django_q",
]

LOCAL_APPS: list[str] = [
    "apps.store",
    "apps.vat",  # 💰 EU VAT rates, VIES validation & calculation
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "vatcore"),
        "USER": os.environ.get("DB_USER", "vatcore"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "development_password"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": 60,  # Database connection pooling
        "OPTIONS": {
            "application_name": "vatcore",
        },
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"  # Rate sync runs at UTC midnight
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ===============================================================================
# VAT CONFIGURATION 💰
# ===============================================================================

# Daily rate sync (TEDB first, euvatrates.com fallback)
VAT_SYNC_ENABLED = env_bool("VAT_SYNC_ENABLED", True)
# The in-process scheduler runs once per serving process; use django_q with
# more than one web worker
VAT_SYNC_BACKEND = os.environ.get("VAT_SYNC_BACKEND", "scheduler")  # 'scheduler' or 'django_q'
VAT_TEDB_URL = os.environ.get("VAT_TEDB_URL", "https://ec.europa.eu/taxation_customs/tedb/ws/VatRetrievalService")
VAT_TEDB_TIMEOUT = int(os.environ.get("VAT_TEDB_TIMEOUT", "30"))  # seconds
VAT_EUVATRATES_FALLBACK_URL = os.environ.get("VAT_EUVATRATES_FALLBACK_URL", "https://euvatrates.com/rates.json")
VAT_SYNC_RETRY_ATTEMPTS = int(os.environ.get("VAT_SYNC_RETRY_ATTEMPTS", "3"))
VAT_SYNC_RETRY_DELAY = int(os.environ.get("VAT_SYNC_RETRY_DELAY", "3600"))  # seconds

# Web processes reload rates from the database when their cache is older than this
VAT_RATE_CACHE_MAX_AGE = int(os.environ.get("VAT_RATE_CACHE_MAX_AGE", "3600"))  # seconds

# VIES VAT number validation
VIES_URL = os.environ.get("VIES_URL", "https://ec.europa.eu/taxation_customs/vies/services/checkVatService")
VIES_TIMEOUT = int(os.environ.get("VIES_TIMEOUT", "10"))  # seconds
VIES_CACHE_TTL_HOURS = int(os.environ.get("VIES_CACHE_TTL_HOURS", "24"))

# ===============================================================================
# DJANGO-Q2 CONFIGURATION (used when VAT_SYNC_BACKEND = 'django_q')
# ===============================================================================

Q_CLUSTER = {
    "name": "vatcore-cluster",
    "workers": 2,
    "timeout": 300,  # 5 minutes
    "retry": 600,  # 10 minutes retry delay
    "save_limit": 1000,  # Keep last 1000 task results
    "catch_up": False,  # Don't run missed scheduled tasks
    "orm": "default",  # Database broker
}

# ===============================================================================
# LOGGING CONFIGURATION
# ===============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY")
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings

    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. "
        "Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2,
    )
    SECRET_KEY = "django-insecure-dev-key-only-change-in-production-or-tests"  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith("django-insecure-"):
        raise ValueError("🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production!")


SESSION_COOKIE_HTTPONLY = True
CSRF_COOKIE_HTTPONLY = True
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
