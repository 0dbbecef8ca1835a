"""Tests for InvoiceOrderService — idempotent creation and the status machine."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from src.exceptions import InvalidTransitionException, NotFoundException, StaleStateException
from src.models.enums import InvoiceOrderStatus
from src.models.event_outbox import EventOutbox
from src.models.invoice_order import InvoiceOrder
from src.modules.invoicing.invoice_key import compute_invoice_key
from src.modules.invoicing.service import InvoiceOrderService


@pytest_asyncio.fixture
async def order(async_session) -> InvoiceOrder:
    created, _ = await InvoiceOrderService(async_session).create_invoice_order(
        customer_id="player-1",
        concept="Cuota marzo",
        amount=Decimal("15000"),
        period_key="2026-03",
        payment_ids_applied=["mercadopago_mp-1"],
    )
    await async_session.commit()
    return created


class TestCreateInvoiceOrder:
    @pytest.mark.asyncio
    async def test_id_is_the_invoice_key(self, order):
        assert order.id == compute_invoice_key("player-1", "Cuota marzo", "2026-03", "15000", "ARS")
        assert order.status == InvoiceOrderStatus.PENDING
        assert order.retry_count == 0

    @pytest.mark.asyncio
    async def test_same_content_returns_existing_order(self, async_session, order):
        service = InvoiceOrderService(async_session)

        again, created = await service.create_invoice_order(
            customer_id="player-1",
            concept="Cuota marzo",
            amount=Decimal("15000.00"),
            period_key="2026-03",
            payment_ids_applied=["other"],
        )

        assert created is False
        assert again.id == order.id
        assert again.payment_ids_applied == ["mercadopago_mp-1"]
        count = len((await async_session.execute(select(InvoiceOrder))).scalars().all())
        assert count == 1

    @pytest.mark.asyncio
    async def test_existing_order_returned_whatever_its_status(self, async_session, order):
        await async_session.execute(
            update(InvoiceOrder)
            .where(InvoiceOrder.id == order.id)
            .values(status=InvoiceOrderStatus.EMAIL_SENT)
        )
        await async_session.commit()

        again, created = await InvoiceOrderService(async_session).create_invoice_order(
            customer_id="player-1", concept="Cuota marzo", amount=15000, period_key="2026-03"
        )

        assert created is False
        assert again.status == InvoiceOrderStatus.EMAIL_SENT

    @pytest.mark.asyncio
    async def test_creation_event_published_once(self, async_session, order):
        await InvoiceOrderService(async_session).create_invoice_order(
            customer_id="player-1", concept="Cuota marzo", amount=15000, period_key="2026-03"
        )

        events = (await async_session.execute(select(EventOutbox))).scalars().all()
        assert [event.event_type for event in events] == ["invoice_order.created"]

    @pytest.mark.asyncio
    async def test_concurrent_creates_yield_one_order(self, serialized_session_factory):
        async def create() -> tuple[str, bool]:
            async with serialized_session_factory() as session:
                created_order, created = await InvoiceOrderService(session).create_invoice_order(
                    customer_id="player-1",
                    concept="Cuota marzo",
                    amount=Decimal("15000"),
                    period_key="2026-03",
                )
                await session.commit()
                return created_order.id, created

        results = await asyncio.gather(*(create() for _ in range(4)))

        assert len({order_id for order_id, _ in results}) == 1
        assert sorted(created for _, created in results) == [False, False, False, True]
        async with serialized_session_factory() as session:
            orders = (await session.execute(select(InvoiceOrder))).scalars().all()
            events = (await session.execute(select(EventOutbox))).scalars().all()
        assert len(orders) == 1
        assert [event.event_type for event in events] == ["invoice_order.created"]

    @pytest.mark.asyncio
    async def test_missing_order(self, async_session):
        with pytest.raises(NotFoundException):
            await InvoiceOrderService(async_session).get_order("0" * 64)


class TestTransitions:
    @pytest.mark.asyncio
    async def test_happy_path(self, async_session, order):
        service = InvoiceOrderService(async_session)

        for target in (
            InvoiceOrderStatus.ISSUING,
            InvoiceOrderStatus.ISSUED,
            InvoiceOrderStatus.PDF_READY,
            InvoiceOrderStatus.EMAIL_SENT,
        ):
            await service.transition(order, target)

        assert order.status == InvoiceOrderStatus.EMAIL_SENT

    @pytest.mark.asyncio
    async def test_cannot_skip_issuing(self, async_session, order):
        with pytest.raises(InvalidTransitionException):
            await InvoiceOrderService(async_session).transition(order, InvoiceOrderStatus.ISSUED)

    @pytest.mark.asyncio
    async def test_email_sent_is_terminal(self, async_session, order):
        service = InvoiceOrderService(async_session)
        for target in (
            InvoiceOrderStatus.ISSUING,
            InvoiceOrderStatus.ISSUED,
            InvoiceOrderStatus.PDF_READY,
            InvoiceOrderStatus.EMAIL_SENT,
        ):
            await service.transition(order, target)

        with pytest.raises(InvalidTransitionException):
            await service.transition(order, InvoiceOrderStatus.PENDING)

    @pytest.mark.asyncio
    async def test_stale_status_detected(self, async_session, order):
        await async_session.execute(
            update(InvoiceOrder)
            .where(InvoiceOrder.id == order.id)
            .values(status=InvoiceOrderStatus.ISSUING)
            .execution_options(synchronize_session=False)
        )

        # ``order`` still believes it is PENDING
        with pytest.raises(StaleStateException):
            await InvoiceOrderService(async_session).transition(order, InvoiceOrderStatus.ISSUING)


class TestRecordFailure:
    @pytest.mark.asyncio
    async def test_retryable_failure_requeues(self, async_session, order):
        service = InvoiceOrderService(async_session)
        await service.transition(order, InvoiceOrderStatus.ISSUING)

        await service.record_failure(order, "WSFE unreachable", retryable=True, max_retries=3)

        assert order.status == InvoiceOrderStatus.PENDING
        assert order.retry_count == 1
        assert order.failure_reason == "WSFE unreachable"

    @pytest.mark.asyncio
    async def test_third_failure_parks_order(self, async_session, order):
        service = InvoiceOrderService(async_session)

        for _ in range(3):
            await service.transition(order, InvoiceOrderStatus.ISSUING)
            await service.record_failure(order, "timeout", retryable=True, max_retries=3)

        assert order.status == InvoiceOrderStatus.FAILED
        assert order.retry_count == 3
        events = (await async_session.execute(select(EventOutbox))).scalars().all()
        assert "invoice_order.failed" in [event.event_type for event in events]

    @pytest.mark.asyncio
    async def test_non_retryable_failure_fails_immediately(self, async_session, order):
        service = InvoiceOrderService(async_session)
        await service.transition(order, InvoiceOrderStatus.ISSUING)

        await service.record_failure(order, "AFIP (10016): rechazado", retryable=False, max_retries=3)

        assert order.status == InvoiceOrderStatus.FAILED
        assert order.retry_count == 1

    @pytest.mark.asyncio
    async def test_failure_reason_is_truncated(self, async_session, order):
        service = InvoiceOrderService(async_session)
        await service.transition(order, InvoiceOrderStatus.ISSUING)

        await service.record_failure(order, "x" * 5000, retryable=True, max_retries=3)

        assert len(order.failure_reason) == 2000

    @pytest.mark.asyncio
    async def test_operator_requeue_resets_retries(self, async_session, order):
        service = InvoiceOrderService(async_session)
        await service.transition(order, InvoiceOrderStatus.ISSUING)
        await service.record_failure(order, "bad data", retryable=False, max_retries=3)

        requeued = await service.requeue_failed_order(order.id)

        assert requeued.status == InvoiceOrderStatus.PENDING
        assert requeued.retry_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [InvoiceOrderStatus.PENDING, InvoiceOrderStatus.ISSUING, InvoiceOrderStatus.ISSUED, InvoiceOrderStatus.PDF_READY]
    )
    async def test_requeue_refuses_orders_that_are_not_failed(self, async_session, order, status):
        afip = {"pto_vta": 1, "cbte_tipo": 6, "cbte_nro": 7, "cae": "76123456789012", "cae_vto": "2026-03-20"}
        await async_session.execute(
            update(InvoiceOrder)
            .where(InvoiceOrder.id == order.id)
            .values(status=status, retry_count=1, afip=afip if status != InvoiceOrderStatus.PENDING else None)
            .execution_options(synchronize_session=False)
        )
        await async_session.commit()
        service = InvoiceOrderService(async_session)

        with pytest.raises(InvalidTransitionException):
            await service.requeue_failed_order(order.id)

        await async_session.refresh(order)
        assert order.status == status
        assert order.retry_count == 1

    @pytest.mark.asyncio
    async def test_in_flight_worker_keeps_its_authorization(self, async_session, order):
        service = InvoiceOrderService(async_session)
        await service.transition(order, InvoiceOrderStatus.ISSUING)
        await async_session.commit()

        with pytest.raises(InvalidTransitionException):
            await service.requeue_failed_order(order.id)
        await service.transition(order, InvoiceOrderStatus.ISSUED, afip={"cae": "76123456789012"})

        assert order.status == InvoiceOrderStatus.ISSUED
        assert order.afip == {"cae": "76123456789012"}

    @pytest.mark.asyncio
    async def test_pending_orders_oldest_first(self, async_session, order):
        service = InvoiceOrderService(async_session)
        newer, _ = await service.create_invoice_order(
            customer_id="player-2", concept="Cuota marzo", amount=15000, period_key="2026-03"
        )

        pending = await service.get_pending_orders(limit=10)

        assert [o.id for o in pending] == [order.id, newer.id]
