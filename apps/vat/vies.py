"""
EU VIES (VAT Information Exchange System) client with a persisted result cache.

Reference:
- https://ec.europa.eu/taxation_customs/vies/
- https://ec.europa.eu/taxation_customs/vies/checkVatService.wsdl
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import requests
from django.db import DatabaseError
from django.utils import timezone
from lxml import etree

from .config import VATConfig
from .constants import MIN_VAT_NUMBER_LENGTH
from .models import VIESValidation
from .soap import SOAP_ENV_NS, child_text, fault_string, find_local, parse_xml

logger = logging.getLogger(__name__)

VIES_NS = "urn:ec.europa.eu:taxud:vies:services:checkVat:types"

# VIES answers "---" when the member state does not disclose trader details
VIES_UNDISCLOSED = "---"

_STRIP_RE = re.compile(r"[\s.]+")


class VIESError(Exception):
    """Base exception for VIES client errors."""


class VIESInputError(VIESError, ValueError):
    """VAT number rejected before any network call."""


class VIESServiceError(VIESError):
    """Validity could not be determined (as opposed to 'not valid')."""


class VIESNetworkError(VIESServiceError):
    """Registry unreachable or timed out."""


class VIESResponseError(VIESServiceError):
    """Registry answered with an HTTP error, a SOAP fault or unreadable XML."""


@dataclass
class VIESResult:
    """Answer for one VAT number, live or from the cache."""

    valid: bool
    vat_number: str
    country_code: str = ""
    company_name: str = ""
    company_address: str = ""
    consultation_number: str = ""
    request_date: date | None = None
    validated_at: datetime = field(default_factory=timezone.now)
    from_cache: bool = False

    @classmethod
    def from_cache_entry(cls, entry: VIESValidation) -> VIESResult:
        return cls(
            valid=entry.is_valid,
            vat_number=entry.vat_number,
            country_code=entry.vat_number[:2],
            company_name=entry.company_name,
            company_address=entry.company_address,
            consultation_number=entry.consultation_number,
            validated_at=entry.validated_at,
            from_cache=True,
        )


def sanitize_vat_number(vat_number: str | None) -> str:
    """Strip whitespace and dots and uppercase: 'es b12.345.678' -> 'ESB12345678'."""
    if not vat_number:
        return ""
    return _STRIP_RE.sub("", vat_number).upper()


def split_vat_number(vat_number: str) -> tuple[str, str]:
    """Split a sanitized VAT number into (country prefix, national number)."""
    cleaned = sanitize_vat_number(vat_number)
    if len(cleaned) < MIN_VAT_NUMBER_LENGTH:
        raise VIESInputError(f"VAT number too short: {vat_number!r}")
    return cleaned[:2], cleaned[2:]


class VIESClient:
    """
    Client for the VIES ``checkVat`` SOAP service.

    Usage:
        client = VIESClient()
        result = client.validate("ESB12345678")
        if result.valid:
            ...

    Fresh cached answers are returned without a network call. Live answers
    are written back to the cache with ``expires_at = now + VIES_CACHE_TTL``.
    """

    def __init__(self, config: VATConfig | None = None, session: requests.Session | None = None):
        self.config = config or VATConfig.from_settings()
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": "VATCore-VIES/1.0"})
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> VIESClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def validate(self, vat_number: str, timeout: float | None = None) -> VIESResult:
        """
        Validate a VAT number (country prefix included).

        Raises:
            VIESInputError: number shorter than the minimum length
            VIESServiceError: registry could not give an answer
        """
        country_code, number = split_vat_number(vat_number)
        cleaned = f"{country_code}{number}"

        try:
            cached = self.get_cached(cleaned)
        except DatabaseError as e:
            logger.warning(f"⚠️ [VIES] Cache lookup failed for {cleaned}, validating live: {e}")
            cached = None
        if cached is not None:
            logger.debug(f"[VIES] Cache hit for {cleaned} (valid={cached.valid})")
            return cached

        logger.info(f"🔍 [VIES] Live validation for {cleaned}")
        result = self._call_vies(country_code, number, timeout if timeout is not None else self.config.vies_timeout)
        result.vat_number = cleaned
        result.country_code = country_code

        self._save_to_cache(result)
        return result

    def get_cached(self, vat_number: str) -> VIESResult | None:
        """Return the cached answer if one exists and has not expired."""
        cleaned = sanitize_vat_number(vat_number)
        if len(cleaned) < MIN_VAT_NUMBER_LENGTH:
            return None

        entry = VIESValidation.objects.filter(vat_number=cleaned).first()
        if entry is None or entry.is_expired():
            return None
        return VIESResult.from_cache_entry(entry)

    # --- Internal Methods ---

    def build_request(self, country_code: str, number: str) -> bytes:
        envelope = etree.Element(f"{{{SOAP_ENV_NS}}}Envelope", nsmap={"soapenv": SOAP_ENV_NS, "urn": VIES_NS})
        body = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
        check_vat = etree.SubElement(body, f"{{{VIES_NS}}}checkVat")
        # VIES identifies Greece as EL
        etree.SubElement(check_vat, f"{{{VIES_NS}}}countryCode").text = "EL" if country_code == "GR" else country_code
        etree.SubElement(check_vat, f"{{{VIES_NS}}}vatNumber").text = number
        return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")

    def _call_vies(self, country_code: str, number: str, timeout: float) -> VIESResult:
        try:
            response = self.session.post(
                self.config.vies_url,
                data=self.build_request(country_code, number),
                headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": ""},
                timeout=timeout,
            )
        except requests.RequestException as e:
            logger.error(f"🔥 [VIES] Request failed for {country_code}{number}: {e}")
            raise VIESNetworkError(f"VIES request failed: {e}") from e

        if response.status_code != 200:
            fault = self._fault_message(response.content)
            detail = fault or response.text[:200]
            logger.error(f"🔥 [VIES] HTTP {response.status_code} for {country_code}{number}: {detail}")
            raise VIESResponseError(f"VIES returned HTTP {response.status_code}: {detail}")

        return self.parse_response(response.content)

    def parse_response(self, content: bytes) -> VIESResult:
        """Parse a ``checkVatResponse`` envelope."""
        try:
            root = parse_xml(content)
        except etree.XMLSyntaxError as e:
            raise VIESResponseError(f"VIES response is not valid XML: {e}") from e

        fault = fault_string(root)
        if fault is not None:
            raise VIESResponseError(f"VIES SOAP fault: {fault}")

        payload = find_local(root, "checkVatResponse")
        if payload is None:
            raise VIESResponseError("VIES response has no checkVatResponse element")

        valid_text = child_text(payload, "valid").lower()
        if valid_text not in ("true", "false"):
            raise VIESResponseError(f"VIES response has unexpected 'valid' value {valid_text!r}")

        return VIESResult(
            valid=valid_text == "true",
            vat_number=child_text(payload, "countryCode") + child_text(payload, "vatNumber"),
            country_code=child_text(payload, "countryCode"),
            company_name=_disclosed(child_text(payload, "name")),
            company_address=_disclosed(child_text(payload, "address")),
            consultation_number=child_text(payload, "requestIdentifier"),
            request_date=_parse_request_date(child_text(payload, "requestDate")),
        )

    def _save_to_cache(self, result: VIESResult) -> None:
        now = timezone.now()
        try:
            VIESValidation.objects.update_or_create(
                vat_number=result.vat_number,
                defaults={
                    "is_valid": result.valid,
                    "company_name": result.company_name[:255],
                    "company_address": result.company_address,
                    "consultation_number": result.consultation_number[:64],
                    "validated_at": now,
                    "expires_at": now + self.config.vies_cache_ttl,
                },
            )
        except DatabaseError as e:
            logger.warning(f"⚠️ [VIES] Failed to cache result for {result.vat_number}: {e}")

    @staticmethod
    def _fault_message(content: bytes) -> str:
        try:
            return fault_string(parse_xml(content)) or ""
        except etree.XMLSyntaxError:
            return ""


def _disclosed(value: str) -> str:
    return "" if value == VIES_UNDISCLOSED else value


def _parse_request_date(value: str) -> date | None:
    # VIES sends dates with a zone suffix, e.g. '2024-01-15+01:00'
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
