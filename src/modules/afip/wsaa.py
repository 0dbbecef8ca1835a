"""WSAA client: obtains, persists and reuses the signed access ticket."""

from __future__ import annotations

import asyncio
import base64
import html
import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx

from src.database.base import utcnow
from src.exceptions import (
    AlreadyAuthenticatedException,
    IdentityServiceUnreachableException,
    SoapFaultException,
)
from src.modules.afip.constants import (
    ALREADY_AUTHENTICATED_MARKERS,
    SOAP11_ENVELOPE_NS,
    TICKET_DEFAULT_LIFETIME,
    TICKET_SAFETY_MARGIN,
    TRA_CLOCK_SKEW,
    WSAA_CONTENT_TYPE,
    WSAA_NS,
    WSAA_SERVICE_NAME,
)
from src.modules.afip.credential_store import CredentialStore
from src.modules.afip.schemas import AuthTicket
from src.modules.afip.signer import CmsSigner
from src.modules.afip.soap import build_envelope, fault_message, find_local, find_text, parse_xml
from src.modules.afip.ticket_cache import Clock, TicketCache

logger = logging.getLogger(__name__)

ARGENTINA_TZ = timezone(timedelta(hours=-3))


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def format_afip_datetime(value: datetime) -> str:
    """``2026-10-19T09:30:00.000-03:00``: Argentina local time, millisecond precision."""
    return value.astimezone(ARGENTINA_TZ).isoformat(timespec="milliseconds")


def build_login_ticket_request(now: datetime, service: str = WSAA_SERVICE_NAME) -> bytes:
    """Build the TRA document, valid from five minutes ago to five minutes ahead."""
    root = ET.Element("loginTicketRequest", version="1.0")
    header = ET.SubElement(root, "header")
    ET.SubElement(header, "uniqueId").text = str(int(now.timestamp()))
    ET.SubElement(header, "generationTime").text = format_afip_datetime(now - TRA_CLOCK_SKEW)
    ET.SubElement(header, "expirationTime").text = format_afip_datetime(now + TRA_CLOCK_SKEW)
    ET.SubElement(root, "service").text = service
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def build_login_envelope(signed_cms_b64: str) -> bytes:
    return build_envelope(SOAP11_ENVELOPE_NS, WSAA_NS, "loginCms", {"in0": signed_cms_b64})


def _is_already_authenticated(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in ALREADY_AUTHENTICATED_MARKERS)


def parse_login_cms_response(payload: str | bytes, now: datetime) -> AuthTicket:
    """Extract the ticket from a ``loginCms`` response.

    The ticket document travels entity-escaped inside ``loginCmsReturn``.
    The XML parser undoes one level of escaping; a second level, sent by some
    gateways, is decoded explicitly before the inner document is parsed.
    """
    root = parse_xml(payload, "WSAA response")

    fault = fault_message(root)
    if fault is not None:
        if _is_already_authenticated(fault):
            raise AlreadyAuthenticatedException(f"WSAA: {fault}")
        raise SoapFaultException(f"WSAA fault: {fault}")

    return_element = find_local(root, "loginCmsReturn")
    raw = (return_element.text or "").strip() if return_element is not None else ""
    if not raw:
        raise SoapFaultException("WSAA response has no loginCmsReturn")
    if raw.startswith("&lt;"):
        raw = html.unescape(raw)

    ticket_root = parse_xml(raw, "login ticket response")
    token = find_text(ticket_root, "token")
    sign = find_text(ticket_root, "sign")
    if not token or not sign:
        raise SoapFaultException("Login ticket response lacks token or sign")

    expiration = find_text(ticket_root, "expirationTime")
    expiration_time = now + TICKET_DEFAULT_LIFETIME
    if expiration:
        try:
            expiration_time = datetime.fromisoformat(expiration)
        except ValueError:
            logger.warning("Unparseable ticket expirationTime %r, assuming default", expiration)
    if expiration_time.tzinfo is None:
        expiration_time = expiration_time.replace(tzinfo=ARGENTINA_TZ)

    return AuthTicket(token=token, sign=sign, expiration_time=expiration_time)


# ---------------------------------------------------------------------------
# Ticket manager
# ---------------------------------------------------------------------------


class TicketManager:
    """Hands out a usable ticket, logging in to WSAA only when needed.

    Lookup order: persisted ticket, in-process cache, fresh login. Logins are
    single-flight within the process. When WSAA answers that a ticket was
    already issued (another process minted it), the persisted ticket is
    accepted with zero safety margin before giving up.
    """

    def __init__(
        self,
        *,
        environment: str,
        wsaa_url: str,
        store: CredentialStore,
        signer_factory: Callable[[], CmsSigner],
        cache: TicketCache,
        http_client: httpx.AsyncClient,
        clock: Clock = utcnow,
        safety_margin: timedelta = TICKET_SAFETY_MARGIN,
        service: str = WSAA_SERVICE_NAME,
    ) -> None:
        self.environment = environment
        self.wsaa_url = wsaa_url
        self.store = store
        self.cache = cache
        self.http_client = http_client
        self.clock = clock
        self.safety_margin = safety_margin
        self.service = service
        self._signer_factory = signer_factory
        self._signer: CmsSigner | None = None
        self._lock = asyncio.Lock()

    def _persisted(self, margin: timedelta) -> AuthTicket | None:
        ticket = self.store.load(self.environment)
        if ticket is not None and ticket.is_usable(self.clock(), margin):
            return ticket
        return None

    def _reusable(self) -> AuthTicket | None:
        return self._persisted(self.safety_margin) or self.cache.get(
            self.environment, self.safety_margin
        )

    async def get_ticket(self) -> AuthTicket:
        ticket = self._reusable()
        if ticket is not None:
            return ticket

        async with self._lock:
            ticket = self._reusable()
            if ticket is not None:
                return ticket
            return await self._login()

    def _get_signer(self) -> CmsSigner:
        if self._signer is None:
            self._signer = self._signer_factory()
        return self._signer

    async def _login(self) -> AuthTicket:
        now = self.clock()
        request_document = build_login_ticket_request(now, self.service)
        signed = await self._get_signer().sign(request_document)
        envelope = build_login_envelope(base64.b64encode(signed).decode("ascii"))

        logger.info("Requesting new WSAA ticket (%s)", self.environment)
        try:
            response = await self.http_client.post(
                self.wsaa_url,
                content=envelope,
                headers={"Content-Type": WSAA_CONTENT_TYPE, "SOAPAction": ""},
            )
        except httpx.TransportError as exc:
            raise IdentityServiceUnreachableException(f"WSAA unreachable: {exc}") from exc

        if response.status_code >= 400 and "Fault" not in response.text:
            raise IdentityServiceUnreachableException(f"WSAA returned HTTP {response.status_code}")

        try:
            ticket = parse_login_cms_response(response.content, now=now)
        except AlreadyAuthenticatedException:
            fallback = self._persisted(timedelta(0))
            if fallback is None:
                logger.error("WSAA reports an active ticket and none is persisted (%s)", self.environment)
                raise
            logger.warning("WSAA reports an active ticket; reusing persisted one (%s)", self.environment)
            self.cache.put(self.environment, fallback)
            return fallback

        self.cache.put(self.environment, ticket)
        try:
            self.store.save(self.environment, ticket)
        except OSError:
            logger.exception("Could not persist WSAA ticket (%s); keeping it in memory", self.environment)
        return ticket
