"""
Development settings for the EU VAT core
"""

import os

from .base import *  # noqa: F403

# ===============================================================================
# DEVELOPMENT FLAGS
# ===============================================================================

DEBUG = True
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "0.0.0.0"]  # noqa: S104

# ===============================================================================
# DATABASE (SQLite unless DB_ENGINE=postgresql)
# ===============================================================================

if os.environ.get("DB_ENGINE", "sqlite") == "sqlite":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",  # noqa: F405
        }
    }

# ===============================================================================
# LOGGING CONFIGURATION
# ===============================================================================

LOGGING["loggers"]["apps"]["level"] = "DEBUG"  # noqa: F405

# ===============================================================================
# TASK QUEUE (Synchronous unless a cluster is running)
# ===============================================================================

Q_CLUSTER = {
    **Q_CLUSTER,  # noqa: F405
    "workers": 1,
    "sync": env_bool("Q_SYNC", True),  # noqa: F405
}
