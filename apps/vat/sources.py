"""
VAT rate sources used by the RateSyncer, tried in order until one succeeds.

- EC TEDB (Taxes in Europe Database) SOAP service, the authoritative source
- euvatrates.com JSON feed, the fallback

Reference:
- https://ec.europa.eu/taxation_customs/tedb/
- https://euvatrates.com/
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar

import requests
from django.utils import timezone
from lxml import etree

from .config import VATConfig
from .constants import CENT, EU_MEMBER_STATES, RateSource, RateType, normalize_country_code
from .soap import SOAP_ENV_NS, child_text, fault_string, local_name, parse_xml

logger = logging.getLogger(__name__)

TEDB_NS = "urn:ec.europa.eu:taxud:tedb:services:v1:IVatRetrievalService"
TEDB_SOAP_ACTION = "urn:ec.europa.eu:taxud:tedb:services:v1:IVatRetrievalService/retrieveVatRates"

# TEDB rate type labels -> internal rate types
TEDB_RATE_TYPES: dict[str, RateType] = {
    "STANDARD": RateType.STANDARD,
    "REDUCED": RateType.REDUCED,
    "REDUCED_RATE": RateType.REDUCED,
    "REDUCED_ALT": RateType.REDUCED_ALT,
    "SECOND_REDUCED": RateType.REDUCED_ALT,
    "SUPER_REDUCED": RateType.SUPER_REDUCED,
    "SUPER-REDUCED": RateType.SUPER_REDUCED,
    "PARKING": RateType.PARKING,
    "ZERO": RateType.ZERO,
}

# euvatrates.com field names -> internal rate types
EUVATRATES_FIELDS: dict[str, RateType] = {
    "standard_rate": RateType.STANDARD,
    "reduced_rate": RateType.REDUCED,
    "reduced_rate_alt": RateType.REDUCED_ALT,
    "super_reduced_rate": RateType.SUPER_REDUCED,
    "parking_rate": RateType.PARKING,
}


class RateSourceError(Exception):
    """Base exception for VAT rate source failures."""


class RateSourceFetchError(RateSourceError):
    """Source unreachable, timed out, answered non-2xx or with a SOAP fault."""


class RateSourceParseError(RateSourceError):
    """Source answered but the payload could not be understood."""


@dataclass(frozen=True)
class FetchedRate:
    """One (country, rate type, rate) entry as delivered by a source."""

    country_code: str
    rate_type: str
    rate: Decimal
    description: str = ""


def _to_rate(value: Decimal | int | float) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def decode_optional_rate(entry: dict[str, Any], key: str) -> Decimal | None:
    """
    Decode a "number or false" rate field.

    A JSON number is a rate; ``false`` or a missing key means the rate type
    does not apply in that country. Any other value (``true``, ``null``,
    strings, objects, lists) or a negative number is a parse error.
    """
    if key not in entry:
        return None

    value = entry[key]
    if value is False:
        return None
    # bool is an int subclass, so reject True before the numeric check
    if isinstance(value, bool) or not isinstance(value, int | float | Decimal):
        raise RateSourceParseError(f"Field '{key}' must be a number or false, got {value!r}")
    if value < 0:
        raise RateSourceParseError(f"Field '{key}' must not be negative, got {value!r}")
    return _to_rate(value)


def _collect(rates: list[FetchedRate], seen: set[tuple[str, str]], rate: FetchedRate) -> None:
    """Append unless the (country, type) pair was already delivered."""
    key = (rate.country_code, rate.rate_type)
    if key in seen:
        logger.debug(f"💰 [VATSync] Ignoring duplicate {rate.rate_type} rate for {rate.country_code}")
        return
    seen.add(key)
    rates.append(rate)


class RateFetcher(ABC):
    """A single-responsibility rate source: fetch and parse, nothing else."""

    name: ClassVar[RateSource]

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout

    @abstractmethod
    def fetch(self, session: requests.Session) -> list[FetchedRate]:
        """Return the flattened rate list or raise a RateSourceError."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.url}>"


class TEDBRateSource(RateFetcher):
    """EC TEDB ``retrieveVatRates`` SOAP operation."""

    name = RateSource.EC_TEDB

    def build_request(self, day: date) -> bytes:
        """Build the SOAP envelope requesting all member states for ``day``."""
        envelope = etree.Element(f"{{{SOAP_ENV_NS}}}Envelope", nsmap={"soapenv": SOAP_ENV_NS, "urn": TEDB_NS})
        etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
        body = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
        request = etree.SubElement(body, f"{{{TEDB_NS}}}retrieveVatRatesReqMsg")
        member_states = etree.SubElement(request, f"{{{TEDB_NS}}}memberStates")
        for code in sorted(EU_MEMBER_STATES):
            # TEDB identifies Greece as EL
            etree.SubElement(member_states, f"{{{TEDB_NS}}}memberState").text = "EL" if code == "GR" else code
        etree.SubElement(request, f"{{{TEDB_NS}}}dateOfApplication").text = day.isoformat()
        return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")

    def fetch(self, session: requests.Session) -> list[FetchedRate]:
        payload = self.build_request(timezone.now().date())
        try:
            response = session.post(
                self.url,
                data=payload,
                headers={
                    "Content-Type": "text/xml; charset=utf-8",
                    "SOAPAction": TEDB_SOAP_ACTION,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RateSourceFetchError(f"TEDB request failed: {e}") from e

        return self.parse_response(response.content)

    def parse_response(self, content: bytes) -> list[FetchedRate]:
        """Parse a ``retrieveVatRatesRespMsg`` envelope into flat rates."""
        try:
            root = parse_xml(content)
        except etree.XMLSyntaxError as e:
            raise RateSourceParseError(f"TEDB response is not valid XML: {e}") from e

        fault = fault_string(root)
        if fault is not None:
            raise RateSourceFetchError(f"TEDB SOAP fault: {fault}")

        member_states = [el for el in root.iter() if local_name(el) == "memberState" and len(el)]
        if not member_states:
            raise RateSourceParseError("TEDB response contains no member state data")

        rates: list[FetchedRate] = []
        seen: set[tuple[str, str]] = set()
        for member_state in member_states:
            country = normalize_country_code(child_text(member_state, "code"))
            if country not in EU_MEMBER_STATES:
                continue
            country_name = child_text(member_state, "name") or country

            for rate_el in (el for el in member_state if local_name(el) == "rate"):
                label = child_text(rate_el, "type").upper().replace(" ", "_")
                rate_type = TEDB_RATE_TYPES.get(label)
                if rate_type is None:
                    continue
                raw_value = child_text(rate_el, "value")
                try:
                    value = _to_rate(Decimal(raw_value))
                except InvalidOperation as e:
                    raise RateSourceParseError(f"TEDB rate value {raw_value!r} for {country} is not a number") from e
                if value <= 0:
                    continue
                _collect(
                    rates,
                    seen,
                    FetchedRate(country, rate_type.value, value, f"{rate_type.value} rate for {country_name}"),
                )

        if not rates:
            raise RateSourceParseError("TEDB response contains no usable rates")
        return rates


class EUVATRatesJSONSource(RateFetcher):
    """euvatrates.com ``rates.json`` feed."""

    name = RateSource.EUVATRATES_JSON

    def fetch(self, session: requests.Session) -> list[FetchedRate]:
        try:
            response = session.get(self.url, headers={"Accept": "application/json"}, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RateSourceFetchError(f"euvatrates request failed: {e}") from e

        try:
            data = response.json(parse_float=Decimal)
        except ValueError as e:
            raise RateSourceParseError(f"euvatrates response is not valid JSON: {e}") from e

        return self.parse_payload(data)

    def parse_payload(self, data: Any) -> list[FetchedRate]:
        """Flatten ``{"rates": {CC: {...}}}`` into rates, skipping non-applicable fields."""
        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            raise RateSourceParseError("euvatrates payload has no 'rates' object")

        rates: list[FetchedRate] = []
        seen: set[tuple[str, str]] = set()
        for raw_code, entry in data["rates"].items():
            if not isinstance(entry, dict):
                raise RateSourceParseError(f"euvatrates entry for {raw_code!r} is not an object")
            country = normalize_country_code(raw_code)
            if country not in EU_MEMBER_STATES:
                continue
            country_name = entry.get("country") if isinstance(entry.get("country"), str) else country

            for field_name, rate_type in EUVATRATES_FIELDS.items():
                value = decode_optional_rate(entry, field_name)
                if value is None or value <= 0:
                    continue
                _collect(
                    rates,
                    seen,
                    FetchedRate(country, rate_type.value, value, f"{rate_type.value} rate for {country_name}"),
                )

        if not rates:
            raise RateSourceParseError("euvatrates payload contains no usable rates")
        return rates


def default_sources(config: VATConfig) -> list[RateFetcher]:
    """Primary first, fallback second."""
    return [
        TEDBRateSource(config.tedb_url, config.tedb_timeout),
        EUVATRatesJSONSource(config.fallback_url, config.tedb_timeout),
    ]
