"""
Django-Q2 tasks for VAT rate synchronisation.

Used when ``VAT_SYNC_BACKEND = "django_q"``: the sync runs on a qcluster
worker once a day at UTC midnight instead of in a web process thread.

Usage:
    from django_q.tasks import async_task
    async_task("apps.vat.tasks.sync_vat_rates_task")
"""

from __future__ import annotations

import logging
from typing import Any

from django.utils import timezone
from django_q.models import Schedule
from django_q.tasks import async_task

from .scheduler import duration_until_next_midnight_utc
from .sync import RateSyncer

logger = logging.getLogger(__name__)

# Task timeout in seconds
TASK_TIMEOUT = 300  # 5 minutes

SYNC_SCHEDULE_NAME = "vat_sync_rates"
SYNC_TASK_PATH = "apps.vat.tasks.sync_vat_rates_task"


def sync_vat_rates_task() -> dict[str, Any]:
    """
    Fetch VAT rates, persist changes and refresh this worker's rate cache.

    Returns:
        SyncResult as a dict (django-q stores it on the task record)
    """
    logger.info("[VAT Task] Starting VAT rate sync")
    result = RateSyncer().sync()

    if result.ok:
        logger.info(f"[VAT Task] Sync complete: {result.rates_loaded} rates from {result.source}")
    else:
        logger.warning(f"[VAT Task] Sync finished with error: {result.error}")

    return result.to_dict()


# --- Task Scheduling Helpers ---


def schedule_vat_sync_tasks() -> None:
    """
    Register the daily sync schedule, first run at the next UTC midnight.

    Call this during application startup.
    """
    try:
        Schedule.objects.update_or_create(
            name=SYNC_SCHEDULE_NAME,
            defaults={
                "func": SYNC_TASK_PATH,
                "schedule_type": Schedule.DAILY,
                "next_run": timezone.now() + duration_until_next_midnight_utc(),
                "repeats": -1,
            },
        )
        logger.info("VAT rate sync scheduled daily at 00:00 UTC")
    except Exception as e:
        logger.error(f"Failed to schedule VAT rate sync: {e}")


# --- Async Task Helpers ---


def queue_vat_sync() -> str | None:
    """
    Queue a one-off VAT rate sync.

    Returns:
        Task ID if queued, None if failed
    """
    try:
        task_id = async_task(SYNC_TASK_PATH, timeout=TASK_TIMEOUT)
        logger.info(f"Queued VAT rate sync: task {task_id}")
        return str(task_id)
    except Exception as e:
        logger.error(f"Failed to queue VAT rate sync: {e}")
        return None
