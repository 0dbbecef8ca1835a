"""Duplicate case queries and operator resolutions.

A resolution is one unit of work: the case is claimed with a conditional
update, then orders, credits and payment flags are written in the same
transaction. If any step fails the caller's rollback undoes the claim too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.exceptions import InvalidCaseStateException, NotFoundException, ValidationException
from src.models.customer_credit import CustomerCredit
from src.models.duplicate_case import DuplicateCase
from src.models.enums import DuplicateCaseStatus, DuplicateStatus, PaymentStatus, ResolutionType
from src.models.invoice_order import InvoiceOrder
from src.models.payment import Payment
from src.modules.duplicates.constants import (
    DEFAULT_OPEN_CASES_LIMIT,
    DUPLICATE_INVOICE_ALL_CONCEPT,
    DUPLICATE_INVOICE_CONCEPT,
    EVENT_DUPLICATE_CASE_RESOLVED,
    RESOLUTION_TARGET_STATUS,
    RESOLUTIONS_REQUIRING_CHOICE,
)
from src.modules.events.outbox_service import OutboxService
from src.modules.invoicing.service import InvoiceOrderService

logger = logging.getLogger(__name__)


@dataclass
class ResolutionOutcome:
    case: DuplicateCase
    invoice_order: InvoiceOrder | None = None
    credit: CustomerCredit | None = None


class DuplicateCaseService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = InvoiceOrderService(db)
        self.outbox = OutboxService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_case(self, case_id: str) -> DuplicateCase:
        case = await self.db.get(DuplicateCase, case_id)
        if case is None:
            raise NotFoundException(f"Duplicate case {case_id} not found")
        return case

    async def list_open_cases(
        self, school_context_id: str | None = None, limit: int = DEFAULT_OPEN_CASES_LIMIT
    ) -> list[DuplicateCase]:
        statement = select(DuplicateCase).where(DuplicateCase.status == DuplicateCaseStatus.OPEN)
        if school_context_id is not None:
            statement = statement.where(DuplicateCase.school_context_id == school_context_id)
        result = await self.db.execute(
            statement.order_by(DuplicateCase.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_case_payments(self, case: DuplicateCase) -> list[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.id.in_(case.payment_ids)).order_by(Payment.paid_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _claim(self, case: DuplicateCase, target: DuplicateCaseStatus, resolution: dict) -> None:
        result = await self.db.execute(
            update(DuplicateCase)
            .where(
                DuplicateCase.id == case.id,
                DuplicateCase.status == DuplicateCaseStatus.OPEN,
                DuplicateCase.version == case.version,
            )
            .values(
                status=target,
                resolution=resolution,
                resolved_at=utcnow(),
                version=case.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidCaseStateException(f"Duplicate case {case.id} changed while resolving")
        await self.db.refresh(case)

    async def resolve(
        self,
        case_id: str,
        resolution_type: ResolutionType,
        chosen_payment_ids: list[str],
        notes: str | None,
        resolved_by: str,
    ) -> ResolutionOutcome:
        case = await self.get_case(case_id)
        if case.status != DuplicateCaseStatus.OPEN:
            raise InvalidCaseStateException(
                f"Duplicate case {case_id} is already '{case.status.value}'"
            )

        chosen = list(dict.fromkeys(chosen_payment_ids))
        foreign = [payment_id for payment_id in chosen if payment_id not in case.payment_ids]
        if foreign:
            raise ValidationException(
                "Chosen payments do not belong to this case",
                details=[{"field": "chosen_payment_ids", "message": pid} for pid in foreign],
            )
        if resolution_type in RESOLUTIONS_REQUIRING_CHOICE and not chosen:
            raise ValidationException(f"'{resolution_type.value}' needs at least one chosen payment")

        payments = {payment.id: payment for payment in await self.get_case_payments(case)}
        missing = [payment_id for payment_id in chosen if payment_id not in payments]
        if missing:
            raise ValidationException(f"Chosen payments no longer exist: {', '.join(missing)}")

        await self._claim(
            case,
            RESOLUTION_TARGET_STATUS[resolution_type],
            {
                "type": resolution_type.value,
                "chosen_payment_ids": chosen,
                "notes": notes,
                "resolved_by": resolved_by,
                "resolved_at": utcnow().isoformat(),
            },
        )

        outcome = ResolutionOutcome(case=case)
        if resolution_type == ResolutionType.INVOICE_ONE_CREDIT_REST:
            await self._invoice_one_credit_rest(case, payments, chosen, outcome)
        elif resolution_type == ResolutionType.INVOICE_ALL:
            await self._invoice_all(case, payments, outcome)
        elif resolution_type == ResolutionType.REFUND_ONE:
            self._mark(payments.values(), DuplicateStatus.IGNORED)
            for payment_id in chosen:
                payments[payment_id].status = PaymentStatus.REFUNDED
        else:
            self._mark(payments.values(), DuplicateStatus.IGNORED)
        await self.db.flush()

        await self.outbox.publish_event(
            event_type=EVENT_DUPLICATE_CASE_RESOLVED,
            aggregate_type="duplicate_case",
            aggregate_id=case.id,
            payload={
                "type": resolution_type.value,
                "status": case.status.value,
                "invoice_order_id": outcome.invoice_order.id if outcome.invoice_order else None,
                "credit_id": str(outcome.credit.id) if outcome.credit else None,
            },
        )
        logger.info(
            "Duplicate case %s %s by %s via %s",
            case.id, case.status.value, resolved_by, resolution_type.value,
        )
        return outcome

    @staticmethod
    def _mark(payments, duplicate_status: DuplicateStatus) -> None:
        for payment in payments:
            payment.duplicate_status = duplicate_status

    async def _invoice_one_credit_rest(
        self,
        case: DuplicateCase,
        payments: dict[str, Payment],
        chosen: list[str],
        outcome: ResolutionOutcome,
    ) -> None:
        invoiced = payments[chosen[0]]
        outcome.invoice_order, _ = await self.orders.create_invoice_order(
            customer_id=case.customer_id,
            concept=DUPLICATE_INVOICE_CONCEPT.format(case_id=case.id),
            amount=invoiced.amount,
            currency=invoiced.currency,
            period_key=invoiced.period,
            payment_ids_applied=[invoiced.id],
            school_context_id=case.school_context_id,
            duplicate_case_id=case.id,
        )

        rest = [payments[payment_id] for payment_id in chosen[1:]]
        credit_total = sum((payment.amount for payment in rest), Decimal("0"))
        if credit_total > 0:
            outcome.credit = CustomerCredit(
                customer_id=case.customer_id,
                amount=credit_total,
                currency=invoiced.currency,
                source_payment_ids=[payment.id for payment in rest],
                source_duplicate_case_id=case.id,
            )
            self.db.add(outcome.credit)

        for payment in payments.values():
            payment.duplicate_status = (
                DuplicateStatus.CONFIRMED if payment.id in chosen else DuplicateStatus.IGNORED
            )

    async def _invoice_all(
        self,
        case: DuplicateCase,
        payments: dict[str, Payment],
        outcome: ResolutionOutcome,
    ) -> None:
        ordered = sorted(payments.values(), key=lambda payment: payment.paid_at)
        if not ordered:
            raise ValidationException(f"Duplicate case {case.id} has no payments to invoice")
        outcome.invoice_order, _ = await self.orders.create_invoice_order(
            customer_id=case.customer_id,
            concept=DUPLICATE_INVOICE_ALL_CONCEPT.format(case_id=case.id),
            amount=sum((payment.amount for payment in ordered), Decimal("0")),
            currency=ordered[0].currency,
            period_key=ordered[0].period,
            payment_ids_applied=[payment.id for payment in ordered],
            school_context_id=case.school_context_id,
            duplicate_case_id=case.id,
        )
        self._mark(ordered, DuplicateStatus.CONFIRMED)
