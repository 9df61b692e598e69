"""
Namespace-agnostic helpers for reading EC SOAP responses with lxml.
"""

from __future__ import annotations

from lxml import etree

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"


def parse_xml(content: bytes) -> etree._Element:
    """Parse untrusted XML with entity resolution and network access disabled."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True, remove_pis=True)
    return etree.fromstring(content, parser=parser)


def local_name(element: etree._Element) -> str:
    # Unresolved entity references have no string tag
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def find_local(root: etree._Element, name: str) -> etree._Element | None:
    """First descendant (or root) whose local name is ``name``."""
    for element in root.iter():
        if local_name(element) == name:
            return element
    return None


def child_text(parent: etree._Element, name: str) -> str:
    """Stripped text of the first direct child named ``name``, or ''."""
    for child in parent:
        if local_name(child) == name:
            return (child.text or "").strip()
    return ""


def fault_string(root: etree._Element) -> str | None:
    """``faultcode: faultstring`` of a SOAP fault, or None if there is no fault."""
    fault = find_local(root, "Fault")
    if fault is None:
        return None
    code = child_text(fault, "faultcode")
    message = child_text(fault, "faultstring") or "unknown"
    return f"{code}: {message}" if code else message
