"""
VAT models: rate history, categories, per-product overrides and the VIES cache.
"""

from __future__ import annotations

import uuid
from datetime import date

from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .constants import RateSource, RateType

country_code_validator = RegexValidator(
    regex=r"^[A-Z]{2}$",
    message=_("Country code must be two uppercase letters (ISO 3166-1 alpha-2)"),
)


# ===============================================================================
# VAT RATES
# ===============================================================================


class VATRateQuerySet(models.QuerySet["VATRate"]):
    def active(self) -> VATRateQuerySet:
        """Rates currently in force (not superseded)."""
        return self.filter(valid_to__isnull=True)

    def for_country(self, country_code: str) -> VATRateQuerySet:
        return self.filter(country_code=country_code.upper())


class VATRate(models.Model):
    """
    EU VAT rate per country and rate type with temporal validity.

    Rows are written only by the RateSyncer and never deleted: a changed rate
    closes the active row (valid_to set) and inserts a new active row, so the
    full history stays auditable.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    country_code = models.CharField(
        max_length=2,
        validators=[country_code_validator],
        help_text=_("ISO 3166-1 alpha-2 country code (e.g., 'ES', 'DE')"),
    )
    rate_type = models.CharField(max_length=20, choices=RateType.choices())
    rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        help_text=_("Rate as percentage (e.g., 21.00 for 21%)"),
    )
    description = models.CharField(max_length=255, blank=True)

    # Validity period
    valid_from = models.DateField(help_text=_("When this rate became effective"))
    valid_to = models.DateField(null=True, blank=True, help_text=_("When this rate was superseded (null = active)"))

    source = models.CharField(max_length=20, choices=RateSource.choices(), default=RateSource.SEED.value)
    synced_at = models.DateTimeField(default=timezone.now)

    objects = VATRateQuerySet.as_manager()

    class Meta:
        db_table = "vat_rates"
        verbose_name = _("VAT Rate")
        verbose_name_plural = _("VAT Rates")
        constraints = (
            models.UniqueConstraint(
                fields=("country_code", "rate_type"),
                condition=Q(valid_to__isnull=True),
                name="uq_vat_rates_active_country_type",
            ),
        )
        indexes = (
            models.Index(fields=["country_code", "rate_type"], name="idx_vat_rates_country_type"),
            models.Index(fields=["source"], name="idx_vat_rates_source"),
            models.Index(fields=["synced_at"], name="idx_vat_rates_synced_at"),
        )
        ordering = ("country_code", "rate_type", "-valid_from")

    def __str__(self) -> str:
        if self.valid_to:
            return f"{self.country_code} {self.rate_type} {self.rate}% ({self.valid_from} - {self.valid_to})"
        return f"{self.country_code} {self.rate_type} {self.rate}% (from {self.valid_from})"

    @property
    def is_active(self) -> bool:
        return self.valid_to is None

    def was_in_force_on(self, day: date) -> bool:
        if day < self.valid_from:
            return False
        return not (self.valid_to and day > self.valid_to)


# ===============================================================================
# VAT CATEGORIES & OVERRIDES
# ===============================================================================


class VATCategory(models.Model):
    """
    Product-facing VAT category mapped onto an EU rate type.
    Fixed lookup set seeded by migration; products reference it by ID.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=50, unique=True)
    display_name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    maps_to_rate_type = models.CharField(max_length=20, choices=RateType.choices())
    is_default = models.BooleanField(default=False)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "vat_categories"
        verbose_name = _("VAT Category")
        verbose_name_plural = _("VAT Categories")
        ordering = ("position", "name")

    def __str__(self) -> str:
        return self.display_name


class ProductVATOverride(models.Model):
    """
    Per-product, per-destination-country VAT category pin.
    Takes precedence over the product's own category.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product_id = models.UUIDField(db_index=True, help_text=_("Catalog product this override applies to"))
    country_code = models.CharField(max_length=2, validators=[country_code_validator])
    vat_category = models.ForeignKey(VATCategory, on_delete=models.CASCADE, related_name="product_overrides")
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_vat_overrides"
        verbose_name = _("Product VAT Override")
        verbose_name_plural = _("Product VAT Overrides")
        constraints = (
            models.UniqueConstraint(fields=("product_id", "country_code"), name="uq_product_vat_override_country"),
        )
        indexes = (models.Index(fields=["country_code"], name="idx_vat_override_country"),)

    def __str__(self) -> str:
        return f"{self.product_id} @ {self.country_code} -> {self.vat_category.name}"


# ===============================================================================
# VIES VALIDATION CACHE
# ===============================================================================


class VIESValidation(models.Model):
    """
    VIES VAT number validation results cache.
    One row per normalized VAT number (country prefix included), refreshed on
    every live validation. Staleness is detected at read time only.
    """

    vat_number = models.CharField(
        max_length=20,
        primary_key=True,
        help_text=_("Complete VAT number including country prefix (e.g., 'ESB12345678')"),
    )
    is_valid = models.BooleanField(help_text=_("Whether VIES reported the number as valid"))
    company_name = models.CharField(max_length=255, blank=True)
    company_address = models.TextField(blank=True)
    consultation_number = models.CharField(max_length=64, blank=True, help_text=_("VIES request identifier"))
    validated_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(help_text=_("When this validation result stops being trusted"))

    class Meta:
        db_table = "vies_validation_cache"
        verbose_name = _("VIES Validation")
        verbose_name_plural = _("VIES Validations")
        indexes = (models.Index(fields=["expires_at"], name="idx_vies_expires_at"),)
        ordering = ("-validated_at",)

    def __str__(self) -> str:
        status = "Valid" if self.is_valid else "Invalid"
        if self.company_name:
            return f"{self.vat_number} ({self.company_name}) - {status}"
        return f"{self.vat_number} - {status}"

    def is_expired(self) -> bool:
        return timezone.now() > self.expires_at
