"""
In-process daily VAT rate sync.

One daemon thread runs an initial sync on start, then syncs at every UTC
midnight. Deployments running a django-q2 cluster use the scheduled task in
``apps.vat.tasks`` instead (``VAT_SYNC_BACKEND = "django_q"``).
"""

from __future__ import annotations

import atexit
import logging
import threading
from datetime import UTC, datetime, time, timedelta
from enum import StrEnum

from django.db import close_old_connections

from .sync import RateSyncer


class SchedulerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


def duration_until_next_midnight_utc(now: datetime | None = None) -> timedelta:
    """
    Time left until the next 00:00 UTC, always in (0, 24h].

    Exactly at midnight the answer is a full day, never zero.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    else:
        now = now.astimezone(UTC)

    next_midnight = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=UTC)
    return next_midnight - now


class VATSyncScheduler:
    """
    Drives a RateSyncer once per day at UTC midnight.

    Lifecycle is IDLE -> RUNNING -> IDLE. ``stop()`` is idempotent, safe
    before ``start()`` and wakes the thread out of any pending wait.
    """

    def __init__(
        self,
        syncer: RateSyncer,
        logger: logging.Logger | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self.syncer = syncer
        self.logger = logger or logging.getLogger(__name__)
        self.retry_attempts = syncer.config.sync_retry_attempts if retry_attempts is None else retry_attempts
        self.retry_delay = syncer.config.sync_retry_delay if retry_delay is None else retry_delay

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    def start(self) -> bool:
        """Spawn the sync thread. Returns False if it is already running."""
        with self._lock:
            if self._state is SchedulerState.RUNNING:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="vat-sync-scheduler",
                daemon=True,
            )
            self._state = SchedulerState.RUNNING
            self._thread.start()

        self.logger.info("⏰ [VATScheduler] Started")
        return True

    def stop(self, timeout: float | None = None) -> None:
        """Signal the thread to exit and wait for it (up to ``timeout`` seconds)."""
        with self._lock:
            was_running = self._state is SchedulerState.RUNNING
            self._stop_event.set()
            thread, self._thread = self._thread, None
            self._state = SchedulerState.IDLE

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                self.logger.warning("⚠️ [VATScheduler] Sync thread still busy after stop timeout")

        if was_running:
            self.logger.info("[VATScheduler] Stopped")

    # --- Internal Methods ---

    def _run(self, stop_event: threading.Event) -> None:
        self.logger.info("[VATScheduler] Running initial VAT rate sync")
        self._sync_once("initial")

        while not stop_event.is_set():
            delay = duration_until_next_midnight_utc()
            self.logger.info(f"[VATScheduler] Next sync in {int(delay.total_seconds())}s")
            if stop_event.wait(delay.total_seconds()):
                break

            if not self._sync_once("scheduled"):
                self._retry(stop_event)

        self.logger.debug("[VATScheduler] Sync thread exiting")

    def _retry(self, stop_event: threading.Event) -> None:
        for attempt in range(1, self.retry_attempts + 1):
            self.logger.info(
                f"[VATScheduler] Retry {attempt}/{self.retry_attempts} in {int(self.retry_delay)}s"
            )
            if stop_event.wait(self.retry_delay):
                self.logger.info("[VATScheduler] Retry cancelled: scheduler stopping")
                return
            if self._sync_once(f"retry {attempt}"):
                return

        self.logger.error(f"🔥 [VATScheduler] All {self.retry_attempts} sync retries exhausted")

    def _sync_once(self, label: str) -> bool:
        close_old_connections()
        try:
            result = self.syncer.sync()
        except Exception:
            self.logger.exception(f"🔥 [VATScheduler] {label} sync crashed")
            return False
        finally:
            close_old_connections()

        if result.ok:
            self.logger.info(
                f"✅ [VATScheduler] {label} sync completed: source={result.source} "
                f"loaded={result.rates_loaded} changed={result.rates_changed}"
            )
            return True

        self.logger.error(f"🔥 [VATScheduler] {label} sync failed: {result.error}")
        return False


# Module-level singleton
_scheduler: VATSyncScheduler | None = None
_scheduler_lock = threading.Lock()


def start_scheduler() -> VATSyncScheduler:
    """Start the process-wide scheduler once; later calls return the same instance."""
    global _scheduler  # noqa: PLW0603
    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = VATSyncScheduler(RateSyncer())
            atexit.register(_scheduler.stop, 5.0)
        _scheduler.start()
        return _scheduler


def stop_scheduler(timeout: float | None = None) -> None:
    with _scheduler_lock:
        scheduler = _scheduler
    if scheduler is not None:
        scheduler.stop(timeout)
