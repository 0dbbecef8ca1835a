"""Invoice order store: idempotent creation and the status state machine."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.database.insert import insert_or_ignore
from src.exceptions import InvalidTransitionException, NotFoundException, StaleStateException
from src.models.enums import InvoiceOrderStatus
from src.models.invoice_order import InvoiceOrder
from src.modules.events.outbox_service import OutboxService
from src.modules.invoicing.constants import (
    EVENT_INVOICE_ORDER_CREATED,
    EVENT_INVOICE_ORDER_FAILED,
    FAILURE_REASON_MAX_LENGTH,
    ORDER_TERMINAL_STATUSES,
    ORDER_TRANSITIONS,
)
from src.modules.invoicing.invoice_key import compute_invoice_key

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class InvoiceOrderService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = OutboxService(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_invoice_order(
        self,
        *,
        customer_id: str,
        concept: str,
        amount: Decimal,
        currency: str = "ARS",
        period_key: str | None = None,
        payment_ids_applied: list[str] | None = None,
        school_context_id: str | None = None,
        duplicate_case_id: str | None = None,
    ) -> tuple[InvoiceOrder, bool]:
        """Create the order for this content, or return the one that already exists.

        Returns ``(order, created)``. An existing order is returned untouched,
        whatever its status.
        """
        amount = Decimal(amount).quantize(CENTS)
        key = compute_invoice_key(customer_id, concept, period_key, amount, currency)
        created = await insert_or_ignore(
            self.db,
            InvoiceOrder,
            {
                "id": key,
                "customer_id": customer_id,
                "school_context_id": school_context_id,
                "concept": concept,
                "period_key": period_key,
                "amount": amount,
                "currency": currency,
                "payment_ids_applied": list(payment_ids_applied or []),
                "duplicate_case_id": duplicate_case_id,
                "status": InvoiceOrderStatus.PENDING,
                "retry_count": 0,
            },
            conflict_columns=["id"],
        )
        order = await self.get_order(key)

        if created:
            logger.info("Created invoice order %s for %s (%s %s)", key[:12], customer_id, amount, currency)
            await self.outbox.publish_event(
                event_type=EVENT_INVOICE_ORDER_CREATED,
                aggregate_type="invoice_order",
                aggregate_id=key,
                payload={"customer_id": customer_id, "concept": concept, "amount": str(amount)},
            )
        return order, created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str) -> InvoiceOrder:
        order = await self.db.get(InvoiceOrder, order_id, populate_existing=True)
        if order is None:
            raise NotFoundException(f"Invoice order {order_id} not found")
        return order

    async def list_orders(
        self,
        status: InvoiceOrderStatus | None = None,
        customer_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[InvoiceOrder], int]:
        filters = []
        if status is not None:
            filters.append(InvoiceOrder.status == status)
        if customer_id is not None:
            filters.append(InvoiceOrder.customer_id == customer_id)

        total = await self.db.scalar(select(func.count()).select_from(InvoiceOrder).where(*filters))
        result = await self.db.execute(
            select(InvoiceOrder)
            .where(*filters)
            .order_by(InvoiceOrder.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def get_pending_orders(self, limit: int = 10) -> list[InvoiceOrder]:
        """Oldest pending orders first."""
        result = await self.db.execute(
            select(InvoiceOrder)
            .where(InvoiceOrder.status == InvoiceOrderStatus.PENDING)
            .order_by(InvoiceOrder.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_transition(current: InvoiceOrderStatus, target: InvoiceOrderStatus) -> None:
        if current in ORDER_TERMINAL_STATUSES:
            raise InvalidTransitionException(
                f"Invoice order is in terminal status '{current.value}'"
            )
        if target not in ORDER_TRANSITIONS.get(current, set()):
            raise InvalidTransitionException(
                f"Cannot transition invoice order from '{current.value}' to '{target.value}'"
            )

    async def transition(
        self, order: InvoiceOrder, target: InvoiceOrderStatus, **changes
    ) -> InvoiceOrder:
        """Move ``order`` to ``target`` if it is still in the status we loaded.

        Raises InvalidTransitionException for illegal moves and
        StaleStateException when another writer changed the status first.
        """
        current = order.status
        self._validate_transition(current, target)

        result = await self.db.execute(
            update(InvoiceOrder)
            .where(InvoiceOrder.id == order.id, InvoiceOrder.status == current)
            .values(status=target, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleStateException(
                f"Invoice order {order.id} is no longer '{current.value}'"
            )
        await self.db.refresh(order)
        return order

    async def record_failure(
        self,
        order: InvoiceOrder,
        reason: str,
        retryable: bool,
        max_retries: int,
    ) -> InvoiceOrder:
        """Count the failed attempt; park the order as FAILED at the ceiling."""
        retry_count = order.retry_count + 1
        target = (
            InvoiceOrderStatus.FAILED
            if not retryable or retry_count >= max_retries
            else InvoiceOrderStatus.PENDING
        )
        await self.transition(
            order,
            target,
            retry_count=retry_count,
            failure_reason=reason[:FAILURE_REASON_MAX_LENGTH],
        )
        if target == InvoiceOrderStatus.FAILED:
            logger.error("Invoice order %s failed after %d attempts: %s", order.id, retry_count, reason)
            await self.outbox.publish_event(
                event_type=EVENT_INVOICE_ORDER_FAILED,
                aggregate_type="invoice_order",
                aggregate_id=order.id,
                payload={"reason": order.failure_reason, "retry_count": retry_count},
            )
        else:
            logger.warning("Invoice order %s attempt %d failed, re-queued: %s", order.id, retry_count, reason)
        return order

    async def requeue_failed_order(self, order_id: str) -> InvoiceOrder:
        """Operator retry: a FAILED order goes back to PENDING with a fresh retry budget.

        Orders in flight are refused; re-queueing one would authorize a second voucher.
        """
        order = await self.get_order(order_id)
        if order.status != InvoiceOrderStatus.FAILED:
            raise InvalidTransitionException(
                f"Only failed invoice orders can be re-queued (order is '{order.status.value}')"
            )
        return await self.transition(order, InvoiceOrderStatus.PENDING, retry_count=0)
