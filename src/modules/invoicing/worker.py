"""Issuer worker: drives pending invoice orders through AFIP, PDF and email.

Each order runs in its own session and commits after every step, so a crash
leaves the order at the last completed status. An order that already holds
an AFIP authorization is never sent to AFIP again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.database.base import utcnow
from src.exceptions import StaleStateException, is_retryable
from src.models.customer import Customer
from src.models.enums import InvoiceOrderStatus
from src.models.invoice_order import InvoiceOrder
from src.modules.events.outbox_service import OutboxService
from src.modules.invoicing.constants import EVENT_INVOICE_ORDER_ISSUED
from src.modules.invoicing.email import EmailQueue, OutboxEmailQueue, build_invoice_email
from src.modules.invoicing.emitter import VoucherIssuer
from src.modules.invoicing.pdf import InvoicePdfRenderer, PdfStorage, build_pdf_fields
from src.modules.invoicing.schemas import WorkerRunResponse
from src.modules.invoicing.service import InvoiceOrderService

logger = logging.getLogger(__name__)


class IssuerWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        voucher_issuer: VoucherIssuer,
        pdf_renderer: InvoicePdfRenderer,
        pdf_storage: PdfStorage,
        email_queue_factory: Callable[[AsyncSession], EmailQueue] = OutboxEmailQueue,
        max_retries: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.voucher_issuer = voucher_issuer
        self.pdf_renderer = pdf_renderer
        self.pdf_storage = pdf_storage
        self.email_queue_factory = email_queue_factory
        self.max_retries = max_retries or settings.issuer_worker_max_retries

    async def process_pending_orders(self, limit: int | None = None) -> WorkerRunResponse:
        """Process up to ``limit`` pending orders, oldest first. One failure never stops the batch."""
        limit = limit or settings.issuer_worker_batch_size
        limit = max(1, min(limit, settings.issuer_worker_max_batch_size))

        async with self.session_factory() as session:
            pending = await InvoiceOrderService(session).get_pending_orders(limit)
            order_ids = [order.id for order in pending]

        stats = WorkerRunResponse()
        for order_id in order_ids:
            try:
                outcome = await self.process_order(order_id)
            except Exception:
                logger.exception("Could not record outcome for invoice order %s", order_id)
                outcome = "skipped"
            setattr(stats, outcome, getattr(stats, outcome) + 1)

        if order_ids:
            logger.info("Issuer worker batch complete: %s", stats.model_dump())
        return stats

    async def process_order(self, order_id: str) -> str:
        """Run one order; returns ``processed``, ``requeued``, ``failed`` or ``skipped``."""
        async with self.session_factory() as session:
            service = InvoiceOrderService(session)
            order = await service.get_order(order_id)
            if order.status != InvoiceOrderStatus.PENDING:
                return "skipped"

            try:
                await service.transition(order, InvoiceOrderStatus.ISSUING)
                await session.commit()
            except StaleStateException:
                await session.rollback()
                logger.info("Invoice order %s claimed by another worker", order_id)
                return "skipped"

            try:
                await self._run_steps(session, service, order)
            except Exception as exc:
                logger.exception("Invoice order %s failed", order_id)
                await session.rollback()
                order = await service.get_order(order_id)
                await service.record_failure(
                    order,
                    reason=str(exc) or exc.__class__.__name__,
                    retryable=is_retryable(exc),
                    max_retries=self.max_retries,
                )
                await session.commit()
                return "failed" if order.status == InvoiceOrderStatus.FAILED else "requeued"

            return "processed"

    async def _run_steps(
        self, session: AsyncSession, service: InvoiceOrderService, order: InvoiceOrder
    ) -> None:
        customer = await session.get(Customer, order.customer_id)

        # AFIP authorization
        afip = order.afip
        if afip is None:
            voucher = await self.voucher_issuer.issue(order, customer)
            afip = {
                "pto_vta": voucher.sales_point,
                "cbte_tipo": voucher.voucher_type,
                "cbte_nro": voucher.voucher_number,
                "cbte_fch": voucher.voucher_date.isoformat(),
                "cae": voucher.cae,
                "cae_vto": voucher.cae_expires_on.isoformat(),
            }
        else:
            logger.info("Invoice order %s already authorized (CAE %s), resuming", order.id, afip["cae"])
        await service.transition(order, InvoiceOrderStatus.ISSUED, afip=afip)
        await OutboxService(session).publish_event(
            event_type=EVENT_INVOICE_ORDER_ISSUED,
            aggregate_type="invoice_order",
            aggregate_id=order.id,
            payload={"customer_id": order.customer_id, **afip},
        )
        await session.commit()

        # PDF
        content = self.pdf_renderer.render(build_pdf_fields(order, customer))
        pdf_url = await self.pdf_storage.save(order.id, content)
        await service.transition(order, InvoiceOrderStatus.PDF_READY, pdf_url=pdf_url)
        await session.commit()

        # Email; without an address the order rests at pdf_ready
        if customer is None or not customer.email:
            return
        try:
            await self.email_queue_factory(session).enqueue(build_invoice_email(order, customer))
            await service.transition(
                order,
                InvoiceOrderStatus.EMAIL_SENT,
                email={"to": customer.email, "sent_at": utcnow().isoformat()},
            )
            await session.commit()
        except Exception:
            logger.exception("Could not queue invoice email for order %s; left at pdf_ready", order.id)
            await session.rollback()


def build_issuer_worker(session_factory: async_sessionmaker[AsyncSession] | None = None) -> IssuerWorker:
    """Wire the worker with the configured voucher issuer and the default PDF/email collaborators."""
    from src.database.engine import async_session
    from src.modules.invoicing.emitter import build_voucher_issuer
    from src.modules.invoicing.pdf import LocalPdfStorage, ReportLabInvoicePdfRenderer

    return IssuerWorker(
        session_factory=session_factory or async_session,
        voucher_issuer=build_voucher_issuer(),
        pdf_renderer=ReportLabInvoicePdfRenderer(settings.invoice_pdf_font_path),
        pdf_storage=LocalPdfStorage(settings.invoice_pdf_dir, settings.invoice_pdf_base_url),
    )


def get_issuer_worker() -> IssuerWorker:
    """FastAPI dependency."""
    return build_issuer_worker()
