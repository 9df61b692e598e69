# Generated manually for the VAT engine tables

import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

RATE_TYPE_CHOICES = [
    ("standard", "Standard"),
    ("reduced", "Reduced"),
    ("reduced_alt", "Reduced Alt"),
    ("super_reduced", "Super Reduced"),
    ("parking", "Parking"),
    ("zero", "Zero"),
]

RATE_SOURCE_CHOICES = [
    ("ec_tedb", "Ec Tedb"),
    ("euvatrates_json", "Euvatrates Json"),
    ("manual", "Manual"),
    ("seed", "Seed"),
    ("cache", "Cache"),
]


def country_code_validator():
    return django.core.validators.RegexValidator(
        message="Country code must be two uppercase letters (ISO 3166-1 alpha-2)",
        regex="^[A-Z]{2}$",
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="VATCategory",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=50, unique=True)),
                ("display_name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("maps_to_rate_type", models.CharField(choices=RATE_TYPE_CHOICES, max_length=20)),
                ("is_default", models.BooleanField(default=False)),
                ("position", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "VAT Category",
                "verbose_name_plural": "VAT Categories",
                "db_table": "vat_categories",
                "ordering": ("position", "name"),
            },
        ),
        migrations.CreateModel(
            name="VATRate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "country_code",
                    models.CharField(
                        help_text="ISO 3166-1 alpha-2 country code (e.g., 'ES', 'DE')",
                        max_length=2,
                        validators=[country_code_validator()],
                    ),
                ),
                ("rate_type", models.CharField(choices=RATE_TYPE_CHOICES, max_length=20)),
                (
                    "rate",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Rate as percentage (e.g., 21.00 for 21%)",
                        max_digits=5,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("description", models.CharField(blank=True, max_length=255)),
                ("valid_from", models.DateField(help_text="When this rate became effective")),
                (
                    "valid_to",
                    models.DateField(blank=True, help_text="When this rate was superseded (null = active)", null=True),
                ),
                ("source", models.CharField(choices=RATE_SOURCE_CHOICES, default="seed", max_length=20)),
                ("synced_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "verbose_name": "VAT Rate",
                "verbose_name_plural": "VAT Rates",
                "db_table": "vat_rates",
                "ordering": ("country_code", "rate_type", "-valid_from"),
                "indexes": [
                    models.Index(fields=["country_code", "rate_type"], name="idx_vat_rates_country_type"),
                    models.Index(fields=["source"], name="idx_vat_rates_source"),
                    models.Index(fields=["synced_at"], name="idx_vat_rates_synced_at"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("valid_to__isnull", True)),
                        fields=("country_code", "rate_type"),
                        name="uq_vat_rates_active_country_type",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="VIESValidation",
            fields=[
                (
                    "vat_number",
                    models.CharField(
                        help_text="Complete VAT number including country prefix (e.g., 'ESB12345678')",
                        max_length=20,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("is_valid", models.BooleanField(help_text="Whether VIES reported the number as valid")),
                ("company_name", models.CharField(blank=True, max_length=255)),
                ("company_address", models.TextField(blank=True)),
                (
                    "consultation_number",
                    models.CharField(blank=True, help_text="VIES request identifier", max_length=64),
                ),
                ("validated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(help_text="When this validation result stops being trusted")),
            ],
            options={
                "verbose_name": "VIES Validation",
                "verbose_name_plural": "VIES Validations",
                "db_table": "vies_validation_cache",
                "ordering": ("-validated_at",),
                "indexes": [models.Index(fields=["expires_at"], name="idx_vies_expires_at")],
            },
        ),
        migrations.CreateModel(
            name="ProductVATOverride",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "product_id",
                    models.UUIDField(db_index=True, help_text="Catalog product this override applies to"),
                ),
                ("country_code", models.CharField(max_length=2, validators=[country_code_validator()])),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "vat_category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_overrides",
                        to="vat.vatcategory",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product VAT Override",
                "verbose_name_plural": "Product VAT Overrides",
                "db_table": "product_vat_overrides",
                "indexes": [models.Index(fields=["country_code"], name="idx_vat_override_country")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("product_id", "country_code"), name="uq_product_vat_override_country"
                    )
                ],
            },
        ),
    ]
