"""
Django app configuration for the VAT app
"""

import logging
import os
import sys

from django.apps import AppConfig

logger = logging.getLogger(__name__)


# manage.py, django-admin and ``python -m django``
COMMAND_ENTRY_POINTS = frozenset({"manage.py", "django-admin", "__main__.py"})


def _is_serving_process() -> bool:
    """
    False for one-off management commands and the runserver autoreload parent.

    Every other entry point (gunicorn, uwsgi, ...) counts as serving, one
    scheduler per process. Multi-worker deployments should sync on the
    django-q2 cluster instead (``VAT_SYNC_BACKEND = "django_q"``).
    """
    if os.path.basename(sys.argv[0]) in COMMAND_ENTRY_POINTS:
        return len(sys.argv) > 1 and sys.argv[1] == "runserver" and os.environ.get("RUN_MAIN") == "true"
    return True


class VatAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.vat"
    verbose_name = "VAT"

    def ready(self) -> None:
        """Start the daily VAT rate sync when Django starts."""
        from .config import VATConfig  # noqa: PLC0415

        config = VATConfig.from_settings()
        if not config.sync_enabled:
            logger.info("[VAT] Rate sync disabled (VAT_SYNC_ENABLED=False)")
            return

        if config.uses_django_q:
            try:
                from .tasks import schedule_vat_sync_tasks  # noqa: PLC0415

                schedule_vat_sync_tasks()
            except Exception:
                logger.warning("⚠️ [VAT] Failed to schedule VAT rate sync during startup")
            return

        if not _is_serving_process():
            return

        from .scheduler import start_scheduler  # noqa: PLC0415

        start_scheduler()
