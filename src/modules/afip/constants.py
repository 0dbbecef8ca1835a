"""AFIP endpoints, namespaces, timing margins and voucher codes."""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Endpoints per environment
# ---------------------------------------------------------------------------

WSAA_URLS: dict[str, str] = {
    "homo": "https://wsaahomo.afip.gov.ar/ws/services/LoginCms",
    "prod": "https://wsaa.afip.gov.ar/ws/services/LoginCms",
}

WSFE_URLS: dict[str, str] = {
    "homo": "https://wswhomo.afip.gov.ar/wsfev1/service.asmx",
    "prod": "https://servicios1.afip.gov.ar/wsfev1/service.asmx",
}

WSAA_SERVICE_NAME = "wsfe"

# ---------------------------------------------------------------------------
# SOAP namespaces and content types
# ---------------------------------------------------------------------------

SOAP11_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP12_ENVELOPE_NS = "http://www.w3.org/2003/05/soap-envelope"
WSAA_NS = "http://wsaa.view.sua.dvadac.desein.afip.gov"
WSFE_NS = "http://ar.gov.afip.dif.FEV1/"

WSAA_CONTENT_TYPE = "text/xml; charset=utf-8"
WSFE_CONTENT_TYPE = "application/soap+xml; charset=utf-8"

# ---------------------------------------------------------------------------
# Ticket timing
# ---------------------------------------------------------------------------

TICKET_SAFETY_MARGIN = timedelta(minutes=10)
TICKET_CACHE_TTL = timedelta(hours=10)
TICKET_DEFAULT_LIFETIME = timedelta(hours=12)
TRA_CLOCK_SKEW = timedelta(minutes=5)

# Markers in a WSAA fault meaning "a valid ticket was already issued to you"
ALREADY_AUTHENTICATED_MARKERS: tuple[str, ...] = (
    "coe.alreadyauthenticated",
    "ya posee un ta valido",
)

# ---------------------------------------------------------------------------
# Voucher codes
# ---------------------------------------------------------------------------

CBTE_TIPO_FACTURA_A = 1
CBTE_TIPO_FACTURA_B = 6
CBTE_TIPO_FACTURA_C = 11

# Voucher types that carry a discriminated VAT breakdown
VAT_BEARING_CBTE_TIPOS: frozenset[int] = frozenset({CBTE_TIPO_FACTURA_A, CBTE_TIPO_FACTURA_B})

CONCEPTO_PRODUCTOS = 1
CONCEPTO_SERVICIOS = 2
CONCEPTO_PRODUCTOS_Y_SERVICIOS = 3
SERVICE_CONCEPTS: frozenset[int] = frozenset({CONCEPTO_SERVICIOS, CONCEPTO_PRODUCTOS_Y_SERVICIOS})

DOC_TIPO_CUIT = 80
DOC_TIPO_DNI = 96
DOC_TIPO_CONSUMIDOR_FINAL = 99

CONDICION_IVA_CONSUMIDOR_FINAL = 5

ALIC_IVA_21_ID = 5
ALIC_IVA_21_RATE = "0.21"

CURRENCY_CODES: dict[str, str] = {
    "ARS": "PES",
    "USD": "DOL",
}
