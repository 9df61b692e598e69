"""
VAT calculation engine for EU commerce line items.

Fixed policy:
- VAT disabled in store settings -> zero VAT, exempt reason 'vat_disabled'
- Category precedence: product/country override > product category > store default > standard
- Reverse charge only for cross-border B2B with a fresh, valid VIES cache entry
- Missing category rate falls back to the destination's standard rate
- ROUND_HALF_UP to 2 decimal places on every money leg
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.db import DatabaseError
from django.utils import timezone

from apps.store.models import StoreSettings

from .config import VATConfig
from .constants import CENT, HUNDRED, ONE, ExemptReason, RateType, normalize_country_code
from .models import ProductVATOverride, VATCategory, VATRate
from .rate_cache import RateCache, get_rate_cache
from .vies import VIESClient, VIESResult, sanitize_vat_number

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class VATInput:
    """One priced line item handed in by the cart/checkout layer."""

    price: Decimal
    destination_country: str
    product_id: uuid.UUID | None = None
    product_vat_category_id: uuid.UUID | None = None
    customer_vat_number: str = ""
    quantity: int = 1


@dataclass
class VATCalculationResult:
    """Per-unit breakdown plus line totals (unit amounts x quantity)."""

    rate: Decimal
    rate_type: str
    vat_amount: Decimal
    net_price: Decimal
    gross_price: Decimal
    country_code: str
    quantity: int = 1
    exempt_reason: str = ExemptReason.NONE.value
    reverse_charge: bool = False
    rate_fallback: bool = False  # category had no rate; destination standard rate used
    customer_vat_number: str = ""
    company_name: str = ""
    company_address: str = ""
    line_net_total: Decimal = field(default=ZERO, init=False)
    line_vat_total: Decimal = field(default=ZERO, init=False)
    line_gross_total: Decimal = field(default=ZERO, init=False)

    def __post_init__(self) -> None:
        qty = Decimal(self.quantity)
        self.line_net_total = _money(self.net_price * qty)
        self.line_vat_total = _money(self.vat_amount * qty)
        self.line_gross_total = _money(self.gross_price * qty)

    @property
    def is_exempt(self) -> bool:
        return bool(self.exempt_reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rate": str(self.rate),
            "rate_type": self.rate_type,
            "vat_amount": str(self.vat_amount),
            "net_price": str(self.net_price),
            "gross_price": str(self.gross_price),
            "country_code": self.country_code,
            "quantity": self.quantity,
            "exempt_reason": self.exempt_reason,
            "reverse_charge": self.reverse_charge,
            "rate_fallback": self.rate_fallback,
            "customer_vat_number": self.customer_vat_number,
            "company_name": self.company_name,
            "company_address": self.company_address,
            "line_net_total": str(self.line_net_total),
            "line_vat_total": str(self.line_vat_total),
            "line_gross_total": str(self.line_gross_total),
        }


@dataclass
class VATSummary:
    """Cart-level sums of the line totals."""

    total_net: Decimal = ZERO
    total_vat: Decimal = ZERO
    total_gross: Decimal = ZERO

    @classmethod
    def from_results(cls, results: Iterable[VATCalculationResult]) -> VATSummary:
        summary = cls()
        for result in results:
            summary.total_net += result.line_net_total
            summary.total_vat += result.line_vat_total
            summary.total_gross += result.line_gross_total
        return summary

    def to_dict(self) -> dict[str, str]:
        return {
            "total_net": str(self.total_net),
            "total_vat": str(self.total_vat),
            "total_gross": str(self.total_gross),
        }


class VATService:
    """
    Authoritative VAT breakdown for line items.

    Reads rates from the RateCache and VIES answers from the VIES cache only;
    it never triggers a network call. A cache that was never loaded, or is
    older than ``VAT_RATE_CACHE_MAX_AGE``, is refreshed from the active rows
    (processes that do not run the sync themselves pick up new rates this way).
    """

    def __init__(
        self,
        rate_cache: RateCache | None = None,
        vies_client: VIESClient | None = None,
        config: VATConfig | None = None,
    ):
        self.config = config or VATConfig.from_settings()
        self.rate_cache = rate_cache if rate_cache is not None else get_rate_cache()
        self.vies_client = vies_client or VIESClient(self.config)

    def calculate_for_product(
        self, vat_input: VATInput, store_settings: StoreSettings | None = None
    ) -> VATCalculationResult:
        store = store_settings or StoreSettings.load()
        destination = normalize_country_code(vat_input.destination_country)
        quantity = vat_input.quantity if vat_input.quantity > 0 else 1
        price = _money(Decimal(vat_input.price))

        if not store.vat_enabled:
            return VATCalculationResult(
                rate=ZERO,
                rate_type="",
                vat_amount=ZERO,
                net_price=price,
                gross_price=price,
                country_code=destination,
                quantity=quantity,
                exempt_reason=ExemptReason.DISABLED.value,
            )

        self._ensure_rates_loaded()

        customer_vat_number = sanitize_vat_number(vat_input.customer_vat_number)
        vies_entry = self._lookup_reverse_charge(store, destination, customer_vat_number)
        if vies_entry is not None:
            net_price = self._reverse_charge_net(store, price)
            logger.info(f"💰 [VATService] Reverse charge for {customer_vat_number} shipping to {destination}")
            return VATCalculationResult(
                rate=ZERO,
                rate_type="",
                vat_amount=ZERO,
                net_price=net_price,
                gross_price=net_price,
                country_code=destination,
                quantity=quantity,
                exempt_reason=ExemptReason.REVERSE_CHARGE.value,
                reverse_charge=True,
                customer_vat_number=customer_vat_number,
                company_name=vies_entry.company_name,
                company_address=vies_entry.company_address,
            )

        rate_type = self._resolve_rate_type(vat_input, destination, store.vat_default_category)
        rate, effective_type, fallback = self._lookup_rate(destination, rate_type)

        if rate is None:
            logger.warning(f"⚠️ [VATService] No VAT rates loaded for {destination}, charging no VAT")
            return VATCalculationResult(
                rate=ZERO,
                rate_type=rate_type,
                vat_amount=ZERO,
                net_price=price,
                gross_price=price,
                country_code=destination,
                quantity=quantity,
            )

        if store.vat_prices_include_vat:
            gross_price = price
            net_price = _money(price / (ONE + rate / HUNDRED))
            vat_amount = gross_price - net_price
        else:
            net_price = price
            vat_amount = _money(price * rate / HUNDRED)
            gross_price = net_price + vat_amount

        return VATCalculationResult(
            rate=rate,
            rate_type=effective_type,
            vat_amount=vat_amount,
            net_price=net_price,
            gross_price=gross_price,
            country_code=destination,
            quantity=quantity,
            rate_fallback=fallback,
        )

    def calculate_for_cart(
        self, items: Sequence[VATInput]
    ) -> tuple[list[VATCalculationResult], VATSummary]:
        """Calculate every line in order and sum the line totals."""
        if not items:
            return [], VATSummary()

        store = StoreSettings.load()
        results = [self.calculate_for_product(item, store_settings=store) for item in items]
        return results, VATSummary.from_results(results)

    # --- Internal Methods ---

    def _ensure_rates_loaded(self) -> None:
        cache = self.rate_cache
        # Fetched-but-unsaved rates stay until the next sync stores them
        if not cache.persisted and not cache.is_empty:
            return

        loaded_at = cache.loaded_at
        if loaded_at is not None and timezone.now() - loaded_at < self.config.rate_cache_max_age:
            return

        try:
            rows = list(VATRate.objects.active())
        except DatabaseError as e:
            logger.warning(f"⚠️ [VATService] Could not refresh rate cache from the database: {e}")
            return

        if not rows:
            if not cache.is_empty:
                logger.warning("⚠️ [VATService] No active VAT rates stored, keeping the cached rates")
            return

        cache.load(rows)

    def _lookup_rate(self, country_code: str, rate_type: str) -> tuple[Decimal | None, str, bool]:
        """Return (rate, effective rate type, fell back to standard)."""
        rate = self.rate_cache.get(country_code, rate_type)
        if rate is not None:
            return rate, rate_type, False

        if rate_type != RateType.STANDARD:
            standard = self.rate_cache.get(country_code, RateType.STANDARD)
            if standard is not None:
                logger.info(f"[VATService] No {rate_type} rate for {country_code}, using standard {standard}%")
                return standard, RateType.STANDARD.value, True

        return None, rate_type, False

    def _resolve_rate_type(self, vat_input: VATInput, country_code: str, default_category: str) -> str:
        """Override > product category > store default category > standard."""
        if vat_input.product_id is not None:
            override = (
                ProductVATOverride.objects.select_related("vat_category")
                .filter(product_id=vat_input.product_id, country_code=country_code)
                .first()
            )
            if override is not None:
                return override.vat_category.maps_to_rate_type

        if vat_input.product_vat_category_id is not None:
            rate_type = (
                VATCategory.objects.filter(pk=vat_input.product_vat_category_id)
                .values_list("maps_to_rate_type", flat=True)
                .first()
            )
            if rate_type:
                return rate_type
            logger.warning(f"⚠️ [VATService] Unknown VAT category {vat_input.product_vat_category_id}, falling through")

        if default_category:
            rate_type = (
                VATCategory.objects.filter(name=default_category).values_list("maps_to_rate_type", flat=True).first()
            )
            if rate_type:
                return rate_type
            logger.warning(f"⚠️ [VATService] Store default VAT category '{default_category}' does not exist")

        return RateType.STANDARD.value

    def _lookup_reverse_charge(
        self, store: StoreSettings, destination: str, customer_vat_number: str
    ) -> VIESResult | None:
        """Cached VIES answer when reverse charge applies, else None."""
        if not store.vat_b2b_reverse_charge_enabled or not customer_vat_number:
            return None

        home_country = normalize_country_code(store.vat_country_code)
        # Domestic B2B is always taxed
        if not home_country or destination == home_country:
            return None

        try:
            cached = self.vies_client.get_cached(customer_vat_number)
        except DatabaseError as e:
            logger.warning(f"⚠️ [VATService] VIES cache lookup failed for {customer_vat_number}: {e}")
            return None

        if cached is None or not cached.valid:
            return None
        return cached

    def _reverse_charge_net(self, store: StoreSettings, price: Decimal) -> Decimal:
        """Strip the home country's standard VAT from gross catalog prices."""
        if not store.vat_prices_include_vat:
            return price
        home_rate = self.rate_cache.get(normalize_country_code(store.vat_country_code), RateType.STANDARD)
        if home_rate is None or home_rate <= 0:
            return price
        return _money(price / (ONE + home_rate / HUNDRED))
