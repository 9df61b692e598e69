"""
Django admin configuration for the store settings singleton.
"""

from django.contrib import admin
from django.http import HttpRequest

from .models import StoreSettings


@admin.register(StoreSettings)
class StoreSettingsAdmin(admin.ModelAdmin):
    list_display = ["store_name", "vat_enabled", "vat_country_code", "vat_prices_include_vat", "updated_at"]
    readonly_fields = ("created_at", "updated_at")

    fieldsets = (
        ("Store", {"fields": ("store_name", "store_email", "default_currency")}),
        (
            "VAT",
            {
                "fields": (
                    "vat_enabled",
                    "vat_number",
                    "vat_country_code",
                    "vat_prices_include_vat",
                    "vat_default_category",
                    "vat_b2b_reverse_charge_enabled",
                )
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    def has_add_permission(self, request: HttpRequest) -> bool:
        # Single row, created by migration
        return not StoreSettings.objects.exists()

    def has_delete_permission(self, request: HttpRequest, obj: StoreSettings | None = None) -> bool:
        return False
