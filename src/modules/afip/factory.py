"""Build the AFIP client stack from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from redis.asyncio import Redis

from src.config import settings
from src.exceptions import ConfigurationException
from src.modules.afip.constants import WSAA_URLS, WSFE_URLS
from src.modules.afip.credential_store import FileCredentialStore
from src.modules.afip.sales_point_lock import SalesPointLock
from src.modules.afip.signer import build_signer
from src.modules.afip.ticket_cache import TicketCache
from src.modules.afip.wsaa import TicketManager
from src.modules.afip.wsfe import InvoiceWireClient

logger = logging.getLogger(__name__)

# Survives stack rebuilds so each Celery run does not start cold
_ticket_cache = TicketCache()
_stack: AfipStack | None = None


@dataclass
class AfipStack:
    tickets: TicketManager
    wire: InvoiceWireClient
    http_client: httpx.AsyncClient
    redis: Redis | None = None

    async def aclose(self) -> None:
        if not self.http_client.is_closed:
            await self.http_client.aclose()
        if self.redis is not None:
            await self.redis.aclose()


def _signer_factory():
    return build_signer(
        settings.afip_cert_path,
        settings.afip_key_path,
        settings.afip_chain_path,
        backend=settings.afip_signer,
        openssl_path=settings.afip_openssl_path,
    )


def build_afip_stack() -> AfipStack:
    if len(settings.afip_cuit_digits) != 11:
        raise ConfigurationException("AFIP_CUIT must have 11 digits")

    environment = settings.afip_environment
    http_client = httpx.AsyncClient(timeout=settings.afip_request_timeout_seconds)
    redis = Redis.from_url(settings.afip_lock_redis_url) if settings.afip_lock_redis_url else None

    tickets = TicketManager(
        environment=environment,
        wsaa_url=settings.afip_wsaa_url or WSAA_URLS[environment],
        store=FileCredentialStore(settings.afip_work_dir),
        signer_factory=_signer_factory,
        cache=_ticket_cache,
        http_client=http_client,
    )
    wire = InvoiceWireClient(
        wsfe_url=settings.afip_wsfe_url or WSFE_URLS[environment],
        cuit=settings.afip_cuit_digits,
        tickets=tickets,
        http_client=http_client,
        lock=SalesPointLock(redis, namespace=f"afip:wsfe:{settings.afip_cuit_digits}"),
    )
    logger.info("AFIP stack ready for %s (CUIT %s)", environment, settings.afip_cuit_digits)
    return AfipStack(tickets=tickets, wire=wire, http_client=http_client, redis=redis)


def get_afip_stack() -> AfipStack:
    global _stack
    if _stack is None:
        _stack = build_afip_stack()
    return _stack


async def close_afip_stack() -> None:
    """Close HTTP and Redis clients.

    Must be called at the end of each asyncio.run() invocation in Celery tasks
    so clients and locks are not reused across event loops.
    """
    global _stack
    if _stack is not None:
        await _stack.aclose()
        _stack = None
