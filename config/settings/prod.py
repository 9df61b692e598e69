"""
Production settings for the EU VAT core
"""

import os

from .base import *  # noqa: F403

# ===============================================================================
# PRODUCTION SECURITY VALIDATION
# ===============================================================================

validate_production_secret_key()  # noqa: F405

# ===============================================================================
# PRODUCTION FLAGS
# ===============================================================================

DEBUG = False
ALLOWED_HOSTS = [host for host in os.environ.get("ALLOWED_HOSTS", "").split(",") if host]

# ===============================================================================
# SECURITY SETTINGS
# ===============================================================================

SECURE_SSL_REDIRECT = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = 31536000  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_REFERRER_POLICY = "strict-origin-when-cross-origin"

# ===============================================================================
# VAT SYNC
# ===============================================================================

# Multi-process deployments sync on the django-q2 cluster; web workers pick up
# new rates from the database (see VAT_RATE_CACHE_MAX_AGE)
VAT_SYNC_BACKEND = os.environ.get("VAT_SYNC_BACKEND", "django_q")

Q_CLUSTER = {
    **Q_CLUSTER,  # noqa: F405
    "workers": int(os.environ.get("Q_WORKERS", "2")),
    "recycle": 500,  # Restart workers after 500 tasks
    "sync": False,
}

# ===============================================================================
# LOGGING
# ===============================================================================

LOGGING["root"]["level"] = "INFO"  # noqa: F405
