"""Celery tasks for the invoice issuer worker."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.config import settings
from src.database.engine import engine
from src.modules.afip.factory import close_afip_stack
from src.modules.invoicing.worker import build_issuer_worker

logger = logging.getLogger(__name__)


async def _process_pending_async(limit: int) -> dict:
    try:
        worker = build_issuer_worker()
        stats = await worker.process_pending_orders(limit)
    finally:
        await close_afip_stack()
        # Pooled connections are bound to this run's event loop
        await engine.dispose()
    return stats.model_dump()


@celery.task(name="src.modules.invoicing.tasks.process_pending_invoice_orders")
def process_pending_invoice_orders(limit: int | None = None):
    """Drain a batch of pending invoice orders through AFIP, PDF and email."""
    stats = asyncio.run(_process_pending_async(limit or settings.issuer_worker_batch_size))
    logger.info("process_pending_invoice_orders complete: %s", stats)
    return stats
