# Generated manually for the store settings singleton

import django.core.validators
from django.db import migrations, models


def create_default_settings(apps, schema_editor):
    StoreSettings = apps.get_model("store", "StoreSettings")
    StoreSettings.objects.get_or_create(pk=1)


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StoreSettings",
            fields=[
                (
                    "id",
                    models.PositiveSmallIntegerField(editable=False, primary_key=True, serialize=False),
                ),
                ("store_name", models.CharField(default="My Store", max_length=255)),
                ("store_email", models.EmailField(blank=True, max_length=254)),
                ("default_currency", models.CharField(default="EUR", max_length=3)),
                ("vat_enabled", models.BooleanField(default=False)),
                (
                    "vat_number",
                    models.CharField(blank=True, help_text="Store's own VAT number, e.g. 'ESB12345678'", max_length=20),
                ),
                (
                    "vat_country_code",
                    models.CharField(
                        blank=True,
                        help_text="Home VAT jurisdiction of the store",
                        max_length=2,
                        validators=[
                            django.core.validators.RegexValidator("^[A-Z]{2}$", "Use an ISO 3166-1 alpha-2 code")
                        ],
                    ),
                ),
                (
                    "vat_prices_include_vat",
                    models.BooleanField(default=True, help_text="Whether catalog prices are gross"),
                ),
                ("vat_default_category", models.CharField(default="standard", max_length=50)),
                (
                    "vat_b2b_reverse_charge_enabled",
                    models.BooleanField(
                        default=True,
                        help_text="Apply reverse charge for VIES-validated cross-border B2B customers",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Store Settings",
                "verbose_name_plural": "Store Settings",
                "db_table": "store_settings",
            },
        ),
        migrations.RunPython(create_default_settings, migrations.RunPython.noop),
    ]
