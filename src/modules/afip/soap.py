"""Minimal SOAP envelope helpers on top of ElementTree.

Lookups go by local name so responses parse the same whether the server
prefixes elements, uses a default namespace, or none at all.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator, Mapping
from typing import Any

from src.exceptions import SoapFaultException
from src.modules.afip.constants import (
    SOAP11_ENVELOPE_NS,
    SOAP12_ENVELOPE_NS,
    WSAA_NS,
    WSFE_NS,
)

ET.register_namespace("soapenv", SOAP11_ENVELOPE_NS)
ET.register_namespace("soap12", SOAP12_ENVELOPE_NS)
ET.register_namespace("wsaa", WSAA_NS)
ET.register_namespace("ar", WSFE_NS)


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def _append_value(parent: ET.Element, namespace: str, name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, list):
        for item in value:
            _append_value(parent, namespace, name, item)
        return
    child = ET.SubElement(parent, f"{{{namespace}}}{name}")
    if isinstance(value, Mapping):
        append_fields(child, namespace, value)
    else:
        child.text = str(value)


def append_fields(parent: ET.Element, namespace: str, fields: Mapping[str, Any]) -> None:
    """Append ``fields`` as child elements; lists repeat the element, None is skipped."""
    for name, value in fields.items():
        _append_value(parent, namespace, name, value)


def build_envelope(
    envelope_ns: str,
    operation_ns: str,
    operation: str,
    fields: Mapping[str, Any],
) -> bytes:
    envelope = ET.Element(f"{{{envelope_ns}}}Envelope")
    ET.SubElement(envelope, f"{{{envelope_ns}}}Header")
    body = ET.SubElement(envelope, f"{{{envelope_ns}}}Body")
    operation_element = ET.SubElement(body, f"{{{operation_ns}}}{operation}")
    append_fields(operation_element, operation_ns, fields)
    return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def local_name(tag: str) -> str:
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def parse_xml(payload: str | bytes, what: str = "SOAP response") -> ET.Element:
    try:
        return ET.fromstring(payload)
    except ET.ParseError as exc:
        raise SoapFaultException(f"Malformed {what}: {exc}") from exc


def iter_local(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for candidate in element.iter():
        if local_name(candidate.tag) == name:
            yield candidate


def find_local(element: ET.Element, name: str) -> ET.Element | None:
    return next(iter_local(element, name), None)


def find_text(element: ET.Element, name: str) -> str | None:
    found = find_local(element, name)
    if found is None or found.text is None:
        return None
    return found.text.strip()


def children_local(element: ET.Element | None, name: str) -> list[ET.Element]:
    if element is None:
        return []
    return [child for child in element if local_name(child.tag) == name]


def fault_message(root: ET.Element) -> str | None:
    """Return ``faultcode: faultstring`` (SOAP 1.1) or the Reason text (SOAP 1.2)."""
    fault = find_local(root, "Fault")
    if fault is None:
        return None
    message = find_text(fault, "faultstring") or find_text(fault, "Text") or "SOAP fault"
    code = find_text(fault, "faultcode") or find_text(fault, "Value")
    return f"{code}: {message}" if code else message
