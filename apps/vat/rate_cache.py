"""
In-memory VAT rate table shared by the sync job and request paths.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from .constants import normalize_country_code

if TYPE_CHECKING:
    from .models import VATRate

logger = logging.getLogger(__name__)

RateTable = dict[str, dict[str, Decimal]]


class RateCache:
    """
    Thread-safe (country, rate_type) -> rate lookup.

    ``load()`` builds a complete new table and swaps the reference under the
    lock, so a reader sees either the old table or the new one, never a mix.
    Lookups never touch the database.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rates: RateTable = {}
        self._loaded_at: datetime | None = None
        self._persisted = True

    def load(self, rates: Iterable[VATRate], persisted: bool = True) -> None:
        """
        Replace the whole table with the active rows of ``rates``.

        ``persisted=False`` marks rows that were fetched but never stored, so
        readers refreshing from the database know not to replace them.
        """
        table: RateTable = {}
        for rate in rates:
            if rate.valid_to is not None:
                continue
            country = normalize_country_code(rate.country_code)
            table.setdefault(country, {})[str(rate.rate_type)] = Decimal(rate.rate)

        with self._lock:
            self._rates = table
            self._loaded_at = timezone.now()
            self._persisted = persisted

        logger.info(f"💰 [RateCache] Loaded {sum(len(r) for r in table.values())} rates for {len(table)} countries")

    def get(self, country_code: str, rate_type: str) -> Decimal | None:
        """Return the rate for a country/type, or None when it is not loaded."""
        with self._lock:
            rates = self._rates
        country_rates = rates.get(normalize_country_code(country_code))
        if country_rates is None:
            return None
        return country_rates.get(str(rate_type))

    def get_country_rates(self, country_code: str) -> dict[str, Decimal]:
        """Copy of all rate types loaded for a country (empty if unknown)."""
        with self._lock:
            rates = self._rates
        return dict(rates.get(normalize_country_code(country_code), {}))

    def get_all(self) -> RateTable:
        """Deep copy of the full table."""
        with self._lock:
            rates = self._rates
        return {country: dict(types) for country, types in rates.items()}

    def country_count(self) -> int:
        with self._lock:
            return len(self._rates)

    def rate_count(self) -> int:
        with self._lock:
            rates = self._rates
        return sum(len(types) for types in rates.values())

    @property
    def loaded_at(self) -> datetime | None:
        with self._lock:
            return self._loaded_at

    @property
    def persisted(self) -> bool:
        with self._lock:
            return self._persisted

    @property
    def is_empty(self) -> bool:
        return self.country_count() == 0


# Module-level singleton
_rate_cache = RateCache()


def get_rate_cache() -> RateCache:
    """Return the process-wide rate cache."""
    return _rate_cache
