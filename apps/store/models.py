"""
Store-level settings singleton.
VAT columns are read by the VAT engine and edited through the admin.
"""

from __future__ import annotations

from django.core.validators import RegexValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

STORE_SETTINGS_PK = 1


class StoreSettings(models.Model):
    """Single-row store configuration, including the VAT setup."""

    # Always STORE_SETTINGS_PK, enforced in save()
    id = models.PositiveSmallIntegerField(primary_key=True, editable=False)

    store_name = models.CharField(max_length=255, default="My Store")
    store_email = models.EmailField(blank=True)
    default_currency = models.CharField(max_length=3, default="EUR")

    # VAT configuration
    vat_enabled = models.BooleanField(default=False)
    vat_number = models.CharField(max_length=20, blank=True, help_text=_("Store's own VAT number, e.g. 'ESB12345678'"))
    vat_country_code = models.CharField(
        max_length=2,
        blank=True,
        validators=[RegexValidator(r"^[A-Z]{2}$", _("Use an ISO 3166-1 alpha-2 code"))],
        help_text=_("Home VAT jurisdiction of the store"),
    )
    vat_prices_include_vat = models.BooleanField(default=True, help_text=_("Whether catalog prices are gross"))
    vat_default_category = models.CharField(max_length=50, default="standard")
    vat_b2b_reverse_charge_enabled = models.BooleanField(
        default=True, help_text=_("Apply reverse charge for VIES-validated cross-border B2B customers")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "store_settings"
        verbose_name = _("Store Settings")
        verbose_name_plural = _("Store Settings")

    def __str__(self) -> str:
        return self.store_name

    def save(self, *args: object, **kwargs: object) -> None:
        self.pk = STORE_SETTINGS_PK
        super().save(*args, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def load(cls) -> StoreSettings:
        """Return the singleton row, creating it with defaults if missing."""
        settings_row, _created = cls.objects.get_or_create(pk=STORE_SETTINGS_PK)
        return settings_row
