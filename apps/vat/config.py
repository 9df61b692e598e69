"""
Runtime configuration for VAT rate sync and VIES validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings

DEFAULT_TEDB_URL = "https://ec.europa.eu/taxation_customs/tedb/ws/VatRetrievalService"
DEFAULT_EUVATRATES_URL = "https://euvatrates.com/rates.json"
DEFAULT_VIES_URL = "https://ec.europa.eu/taxation_customs/vies/services/checkVatService"


@dataclass
class VATConfig:
    """Configuration for the VAT rate syncer, scheduler and VIES client."""

    sync_enabled: bool = True
    sync_backend: str = "scheduler"  # 'scheduler' (in-process thread) or 'django_q'
    tedb_url: str = DEFAULT_TEDB_URL
    tedb_timeout: float = 30.0
    fallback_url: str = DEFAULT_EUVATRATES_URL
    vies_url: str = DEFAULT_VIES_URL
    vies_timeout: float = 10.0
    vies_cache_ttl: timedelta = timedelta(hours=24)
    sync_retry_attempts: int = 3
    sync_retry_delay: float = 3600.0
    rate_cache_max_age: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls) -> VATConfig:
        """Create config from Django settings."""
        return cls(
            sync_enabled=bool(getattr(settings, "VAT_SYNC_ENABLED", True)),
            sync_backend=getattr(settings, "VAT_SYNC_BACKEND", "scheduler"),
            tedb_url=getattr(settings, "VAT_TEDB_URL", DEFAULT_TEDB_URL),
            tedb_timeout=float(getattr(settings, "VAT_TEDB_TIMEOUT", 30)),
            fallback_url=getattr(settings, "VAT_EUVATRATES_FALLBACK_URL", DEFAULT_EUVATRATES_URL),
            vies_url=getattr(settings, "VIES_URL", DEFAULT_VIES_URL),
            vies_timeout=float(getattr(settings, "VIES_TIMEOUT", 10)),
            vies_cache_ttl=timedelta(hours=float(getattr(settings, "VIES_CACHE_TTL_HOURS", 24))),
            sync_retry_attempts=int(getattr(settings, "VAT_SYNC_RETRY_ATTEMPTS", 3)),
            sync_retry_delay=float(getattr(settings, "VAT_SYNC_RETRY_DELAY", 3600)),
            rate_cache_max_age=timedelta(seconds=float(getattr(settings, "VAT_RATE_CACHE_MAX_AGE", 3600))),
        )

    @property
    def uses_django_q(self) -> bool:
        return self.sync_backend == "django_q"
