"""
VAT rate synchronisation: fetch, persist with history, refresh the rate cache.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import requests
from django.db import DatabaseError, transaction
from django.utils import timezone

from .config import VATConfig
from .constants import RateSource
from .models import VATRate
from .rate_cache import RateCache, get_rate_cache
from .sources import FetchedRate, RateFetcher, RateSourceError, default_sources

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateChange:
    """A rate that was inserted or replaced during a sync."""

    country_code: str
    rate_type: str
    old_rate: Decimal | None
    new_rate: Decimal

    @property
    def is_new(self) -> bool:
        return self.old_rate is None

    def __str__(self) -> str:
        if self.is_new:
            return f"{self.country_code} {self.rate_type}: new {self.new_rate}%"
        return f"{self.country_code} {self.rate_type}: {self.old_rate}% -> {self.new_rate}%"


@dataclass
class SyncResult:
    """Outcome of one sync run. ``error`` is empty when the run fully succeeded."""

    source: str = ""
    rates_loaded: int = 0
    rates_changed: int = 0
    changes: list[RateChange] = field(default_factory=list)
    synced_at: datetime = field(default_factory=timezone.now)
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "rates_loaded": self.rates_loaded,
            "rates_changed": self.rates_changed,
            "changes": [str(change) for change in self.changes],
            "synced_at": self.synced_at.isoformat(),
            "error": self.error,
        }


class RateSyncer:
    """
    Fetches VAT rates from the first source that answers, persists them and
    reloads the rate cache.

    Usage:
        syncer = RateSyncer()
        result = syncer.sync()
        if not result.ok:
            logger.warning(result.error)

    ``sync()`` never raises; every failure ends up in ``SyncResult.error``.
    """

    def __init__(
        self,
        rate_cache: RateCache | None = None,
        sources: Sequence[RateFetcher] | None = None,
        config: VATConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config or VATConfig.from_settings()
        self.rate_cache = rate_cache if rate_cache is not None else get_rate_cache()
        self.sources = list(sources) if sources is not None else default_sources(self.config)
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": "VATCore-RateSync/1.0"})
        return self._session

    def sync(self) -> SyncResult:
        result = SyncResult()
        logger.info(f"🔄 [VATSync] Starting rate sync ({len(self.sources)} sources)")

        try:
            rates, source = self.fetch_rates()
        except RateSourceError as e:
            result.error = str(e)
            logger.error(f"🔥 [VATSync] {e}")
            self._warm_from_database(result)
            return result

        result.source = source
        result.rates_loaded = len(rates)

        try:
            result.changes = self.save_rates(rates, source)
        except DatabaseError as e:
            result.error = f"Failed to persist {source} rates: {e}"
            logger.error(f"🔥 [VATSync] {result.error}")
            # Serve the fresh rates even though they could not be stored
            self.rate_cache.load(self._as_unsaved_rows(rates, source), persisted=False)
            return result

        result.rates_changed = len(result.changes)
        for change in result.changes:
            logger.info(f"[VATSync] Rate change {change}")

        try:
            self.load_active_rates()
        except DatabaseError as e:
            result.error = f"Failed to reload rate cache: {e}"
            logger.error(f"🔥 [VATSync] {result.error}")
            return result

        logger.info(
            f"✅ [VATSync] Synced {result.rates_loaded} rates from {source}, {result.rates_changed} changed"
        )
        return result

    def save_rates(self, rates: Iterable[FetchedRate], source: str) -> list[RateChange]:
        """
        Persist fetched rates against the active rows, in one transaction.

        Unchanged rates only get ``synced_at`` touched. A changed rate closes
        the active row (``valid_to`` = today) and inserts a new active row
        valid from today. Saving identical input twice changes nothing.
        """
        now = timezone.now()
        today = now.date()
        changes: list[RateChange] = []
        unchanged_ids = []

        with transaction.atomic():
            active = {(row.country_code, row.rate_type): row for row in VATRate.objects.active().select_for_update()}

            for fetched in rates:
                key = (fetched.country_code, fetched.rate_type)
                current = active.get(key)

                if current is not None and current.rate == fetched.rate:
                    unchanged_ids.append(current.pk)
                    continue

                if current is not None:
                    current.valid_to = today
                    current.save(update_fields=["valid_to"])

                active[key] = VATRate.objects.create(
                    country_code=fetched.country_code,
                    rate_type=fetched.rate_type,
                    rate=fetched.rate,
                    description=fetched.description,
                    valid_from=today,
                    source=source,
                    synced_at=now,
                )
                changes.append(
                    RateChange(
                        country_code=fetched.country_code,
                        rate_type=fetched.rate_type,
                        old_rate=current.rate if current is not None else None,
                        new_rate=fetched.rate,
                    )
                )

            if unchanged_ids:
                VATRate.objects.filter(pk__in=unchanged_ids).update(synced_at=now)

        return changes

    def detect_changes(self, rates: Iterable[FetchedRate]) -> list[RateChange]:
        """Diff fetched rates against the active rows without writing anything."""
        active = {(row.country_code, row.rate_type): row.rate for row in VATRate.objects.active()}
        changes = []
        for fetched in rates:
            old_rate = active.get((fetched.country_code, fetched.rate_type))
            if old_rate != fetched.rate:
                changes.append(RateChange(fetched.country_code, fetched.rate_type, old_rate, fetched.rate))
        return changes

    def load_active_rates(self) -> int:
        """Reload the rate cache from every active row. Returns the number loaded."""
        rows = list(VATRate.objects.active())
        self.rate_cache.load(rows)
        return len(rows)

    def fetch_rates(self) -> tuple[list[FetchedRate], str]:
        """Try each source in order; raise RateSourceError if none succeeds."""
        failures = []
        for source in self.sources:
            try:
                rates = source.fetch(self.session)
            except RateSourceError as e:
                logger.warning(f"⚠️ [VATSync] Source {source.name} failed: {e}")
                failures.append(f"{source.name}: {e}")
                continue
            except Exception as e:
                logger.exception(f"🔥 [VATSync] Unexpected error from source {source.name}")
                failures.append(f"{source.name}: {e}")
                continue

            logger.info(f"[VATSync] Fetched {len(rates)} rates from {source.name}")
            return rates, str(source.name)

        raise RateSourceError("All VAT rate sources failed: " + "; ".join(failures))

    # --- Internal Methods ---

    def _warm_from_database(self, result: SyncResult) -> None:
        """Fall back to the rates already stored when every source failed."""
        try:
            rows = list(VATRate.objects.active())
        except DatabaseError as e:
            logger.error(f"🔥 [VATSync] Could not load stored rates either: {e}")
            return

        # Keep whatever the cache holds rather than emptying it
        if not rows:
            return

        self.rate_cache.load(rows)
        result.source = RateSource.CACHE.value
        result.rates_loaded = len(rows)
        logger.warning(f"⚠️ [VATSync] Serving {len(rows)} stored rates until the next successful sync")

    @staticmethod
    def _as_unsaved_rows(rates: Iterable[FetchedRate], source: str) -> list[VATRate]:
        today = timezone.now().date()
        return [
            VATRate(
                country_code=fetched.country_code,
                rate_type=fetched.rate_type,
                rate=fetched.rate,
                description=fetched.description,
                valid_from=today,
                source=source,
            )
            for fetched in rates
        ]
