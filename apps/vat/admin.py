"""
Django admin configuration for VAT models.
Rates and VIES results are written by the sync job and the VIES client only.
"""

from django.contrib import admin
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _

from .models import ProductVATOverride, VATCategory, VATRate, VIESValidation

# ===============================================================================
# VAT RATES
# ===============================================================================


@admin.register(VATRate)
class VATRateAdmin(admin.ModelAdmin):
    """Synced EU VAT rates with full history (read-only)"""

    list_display = [
        "country_code",
        "rate_type",
        "rate_display",
        "valid_from",
        "valid_to",
        "is_active_now",
        "source",
        "synced_at",
    ]
    list_filter = ["rate_type", "source", "country_code"]
    search_fields = ["country_code", "description"]
    date_hierarchy = "valid_from"
    ordering = ["country_code", "rate_type", "-valid_from"]

    def rate_display(self, obj: VATRate) -> str:
        """Display rate as percentage"""
        return f"{obj.rate}%"

    rate_display.short_description = _("Rate")

    def is_active_now(self, obj: VATRate) -> bool:
        return obj.is_active

    is_active_now.boolean = True
    is_active_now.short_description = _("Active")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(self, request: HttpRequest, obj: VATRate | None = None) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj: VATRate | None = None) -> bool:
        return False


# ===============================================================================
# CATEGORIES & OVERRIDES
# ===============================================================================


@admin.register(VATCategory)
class VATCategoryAdmin(admin.ModelAdmin):
    list_display = ["display_name", "name", "maps_to_rate_type", "is_default", "position"]
    list_editable = ["position"]
    search_fields = ["name", "display_name"]
    ordering = ["position", "name"]


@admin.register(ProductVATOverride)
class ProductVATOverrideAdmin(admin.ModelAdmin):
    """Per-product, per-country VAT category pins"""

    list_display = ["product_id", "country_code", "vat_category", "updated_at"]
    list_filter = ["country_code", "vat_category"]
    search_fields = ["product_id", "notes"]
    list_select_related = ["vat_category"]
    readonly_fields = ("created_at", "updated_at")


# ===============================================================================
# VIES CACHE
# ===============================================================================


@admin.register(VIESValidation)
class VIESValidationAdmin(admin.ModelAdmin):
    """VIES validation results cache"""

    list_display = ["vat_number", "company_name", "is_valid", "validated_at", "expires_at", "is_expired_now"]
    list_filter = ["is_valid"]
    search_fields = ["vat_number", "company_name"]
    date_hierarchy = "validated_at"
    readonly_fields = (
        "vat_number",
        "is_valid",
        "company_name",
        "company_address",
        "consultation_number",
        "validated_at",
        "expires_at",
    )

    def is_expired_now(self, obj: VIESValidation) -> bool:
        """Show if validation has expired"""
        return obj.is_expired()

    is_expired_now.boolean = True
    is_expired_now.short_description = _("Expired")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False
