"""
VAT constants shared across the VAT app.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum


class RateType(StrEnum):
    """EU VAT rate types as published by the EC."""

    STANDARD = "standard"
    REDUCED = "reduced"
    REDUCED_ALT = "reduced_alt"
    SUPER_REDUCED = "super_reduced"
    PARKING = "parking"
    ZERO = "zero"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(rt.value, rt.name.replace("_", " ").title()) for rt in cls]


class RateSource(StrEnum):
    """Provenance of a VAT rate row."""

    EC_TEDB = "ec_tedb"
    EUVATRATES_JSON = "euvatrates_json"
    MANUAL = "manual"
    SEED = "seed"
    CACHE = "cache"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(src.value, src.name.replace("_", " ").title()) for src in cls]


class ExemptReason(StrEnum):
    """Why a calculation produced no VAT."""

    NONE = ""
    DISABLED = "vat_disabled"
    REVERSE_CHARGE = "reverse_charge"


# ISO 3166-1 alpha-2 codes of the 27 EU member states
EU_MEMBER_STATES: frozenset[str] = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI",
        "FR", "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU",
        "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    }
)

# EC publications use "EL" for Greece
COUNTRY_CODE_ALIASES: dict[str, str] = {"EL": "GR"}

HUNDRED = Decimal("100")
ONE = Decimal("1")
CENT = Decimal("0.01")

MIN_VAT_NUMBER_LENGTH = 4


def normalize_country_code(code: str | None) -> str:
    """Uppercase, trim and de-alias a country code ('el ' -> 'GR')."""
    if not code:
        return ""
    code = code.strip().upper()
    return COUNTRY_CODE_ALIASES.get(code, code)


def is_eu_country(code: str | None) -> bool:
    return normalize_country_code(code) in EU_MEMBER_STATES
