from django.db import migrations

VAT_CATEGORIES = [
    # (name, display_name, description, maps_to_rate_type, is_default, position)
    ("standard", "Standard Rate", "Most goods and services", "standard", True, 1),
    ("reduced", "Reduced Rate", "Food, books, medicines and similar in most member states", "reduced", False, 2),
    ("reduced_alt", "Reduced Rate (Alt)", "Second reduced rate where a country has one", "reduced_alt", False, 3),
    ("super_reduced", "Super Reduced Rate", "Rates below 5% kept by a few member states", "super_reduced", False, 4),
    ("parking", "Parking Rate", "Transitional rate of at least 12%", "parking", False, 5),
    ("zero", "Zero Rate", "Taxable supplies charged at 0%", "zero", False, 6),
]


def seed_categories(apps, schema_editor):
    VATCategory = apps.get_model("vat", "VATCategory")
    for name, display_name, description, rate_type, is_default, position in VAT_CATEGORIES:
        VATCategory.objects.update_or_create(
            name=name,
            defaults={
                "display_name": display_name,
                "description": description,
                "maps_to_rate_type": rate_type,
                "is_default": is_default,
                "position": position,
            },
        )


def unseed_categories(apps, schema_editor):
    VATCategory = apps.get_model("vat", "VATCategory")
    VATCategory.objects.filter(name__in=[row[0] for row in VAT_CATEGORIES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("vat", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_categories, unseed_categories),
    ]
