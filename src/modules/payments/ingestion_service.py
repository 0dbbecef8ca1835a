"""Payment ingestion: technical dedupe, then economic (fingerprint) dedupe."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.base import ensure_utc
from src.database.insert import insert_or_ignore
from src.exceptions import ConflictException, NotFoundException, UnknownCustomerException
from src.models.customer import Customer
from src.models.duplicate_case import DuplicateCase
from src.models.enums import DuplicateCaseStatus, DuplicateStatus, PaymentProvider, PaymentStatus
from src.models.payment import Payment
from src.modules.events.outbox_service import OutboxService
from src.modules.payments.constants import (
    CASE_APPEND_ATTEMPTS,
    EVENT_DUPLICATE_CASE_EXTENDED,
    EVENT_DUPLICATE_CASE_OPENED,
    EVENT_PAYMENT_INGESTED,
)
from src.modules.payments.fingerprint import compute_fingerprint
from src.modules.payments.schemas import PaymentIngestRequest, PaymentIngestResult

logger = logging.getLogger(__name__)


def build_payment_id(provider: PaymentProvider, provider_payment_id: str | None) -> str:
    if provider_payment_id:
        return f"{provider.value}_{provider_payment_id}"
    return str(uuid.uuid4())


class PaymentIngestionService:
    def __init__(self, db: AsyncSession, window_minutes: int | None = None) -> None:
        self.db = db
        self.window_minutes = window_minutes or settings.duplicate_window_minutes
        self.outbox = OutboxService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: str) -> Payment:
        payment = await self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundException(f"Payment {payment_id} not found")
        return payment

    async def find_by_provider_id(
        self, provider: PaymentProvider, provider_payment_id: str
    ) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(
                Payment.provider == provider,
                Payment.provider_payment_id == provider_payment_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_similar_payments(
        self, school_context_id: str, fingerprint_hash: str, paid_at: datetime
    ) -> list[Payment]:
        """Approved payments with this fingerprint paid within the window of ``paid_at``."""
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.school_context_id == school_context_id,
                Payment.fingerprint_hash == fingerprint_hash,
                Payment.status == PaymentStatus.APPROVED,
            )
            .order_by(Payment.paid_at.asc())
        )
        window = timedelta(minutes=self.window_minutes)
        return [
            payment
            for payment in result.scalars().all()
            if abs(ensure_utc(payment.paid_at) - paid_at) <= window
        ]

    async def _require_customer(self, customer_id: str, school_context_id: str) -> Customer:
        customer = await self.db.get(Customer, customer_id)
        if (
            customer is None
            or customer.school_context_id != school_context_id
            or customer.archived
        ):
            raise UnknownCustomerException(
                f"Customer {customer_id} is not active in school {school_context_id}"
            )
        return customer

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def ingest(self, data: PaymentIngestRequest) -> PaymentIngestResult:
        # 1. Technical dedupe: the provider already told us about this payment
        if data.provider_payment_id:
            existing = await self.find_by_provider_id(data.provider, data.provider_payment_id)
            if existing is not None:
                return self._technical_duplicate(existing)

        # 2. The customer must belong to the school and not be archived
        await self._require_customer(data.customer_id, data.school_context_id)

        # 3. Fingerprint
        paid_at = ensure_utc(data.paid_at)
        fingerprint = compute_fingerprint(
            customer_id=data.customer_id,
            amount=data.amount,
            currency=data.currency,
            paid_at=paid_at,
            method=data.method,
            reference=data.reference,
            window_minutes=self.window_minutes,
        )

        # 4. Economic dedupe only concerns money that actually moved
        similar: list[Payment] = []
        if data.status == PaymentStatus.APPROVED:
            similar = await self.find_similar_payments(data.school_context_id, fingerprint, paid_at)

        # 5. Persist; the identity insert loses cleanly against a concurrent replay
        payment_id = build_payment_id(data.provider, data.provider_payment_id)
        created = await insert_or_ignore(
            self.db,
            Payment,
            {
                "id": payment_id,
                "customer_id": data.customer_id,
                "school_context_id": data.school_context_id,
                "period": data.period,
                "amount": data.amount,
                "currency": data.currency,
                "provider": data.provider,
                "provider_payment_id": data.provider_payment_id,
                "status": data.status,
                "paid_at": paid_at,
                "method": data.method,
                "reference": data.reference,
                "fingerprint_hash": fingerprint,
                "duplicate_status": DuplicateStatus.SUSPECTED if similar else DuplicateStatus.NONE,
            },
            conflict_columns=["id"],
        )
        payment = await self.get_payment(payment_id)
        if not created:
            logger.info("Concurrent replay of payment %s", payment_id)
            return self._technical_duplicate(payment)

        # 6. Open or extend the duplicate case
        case_id = None
        if similar:
            case_id = await self._attach_to_case(payment, similar)

        await self.outbox.publish_event(
            event_type=EVENT_PAYMENT_INGESTED,
            aggregate_type="payment",
            aggregate_id=payment.id,
            payload={
                "customer_id": payment.customer_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "status": payment.status.value,
                "duplicate_case_id": case_id,
            },
        )
        return PaymentIngestResult(
            payment_id=payment.id,
            is_duplicate_technical=False,
            duplicate_case_id=case_id,
            created=True,
        )

    @staticmethod
    def _technical_duplicate(payment: Payment) -> PaymentIngestResult:
        return PaymentIngestResult(
            payment_id=payment.id,
            is_duplicate_technical=True,
            duplicate_case_id=payment.duplicate_case_id,
            created=False,
        )

    # ------------------------------------------------------------------
    # Duplicate cases
    # ------------------------------------------------------------------

    async def _find_open_case(self, school_context_id: str, fingerprint_hash: str) -> DuplicateCase | None:
        result = await self.db.execute(
            select(DuplicateCase).where(
                DuplicateCase.school_context_id == school_context_id,
                DuplicateCase.fingerprint_hash == fingerprint_hash,
                DuplicateCase.status == DuplicateCaseStatus.OPEN,
            )
        )
        return result.scalar_one_or_none()

    async def _attach_to_case(self, payment: Payment, similar: list[Payment]) -> str:
        for _ in range(CASE_APPEND_ATTEMPTS):
            case = await self._find_open_case(payment.school_context_id, payment.fingerprint_hash)
            if case is None:
                case = await self._open_case(payment, similar)
                break
            if await self._append_to_case(case, payment.id):
                break
        else:
            raise ConflictException(
                f"Duplicate case for payment {payment.id} kept changing; retry the ingestion"
            )

        await self.db.execute(
            update(Payment)
            .where(Payment.id.in_(case.payment_ids))
            .values(duplicate_status=DuplicateStatus.SUSPECTED, duplicate_case_id=case.id)
            .execution_options(synchronize_session="fetch")
        )
        return case.id

    async def _open_case(self, payment: Payment, similar: list[Payment]) -> DuplicateCase:
        case = DuplicateCase(
            id=str(uuid.uuid4()),
            school_context_id=payment.school_context_id,
            customer_id=payment.customer_id,
            fingerprint_hash=payment.fingerprint_hash,
            window_minutes=self.window_minutes,
            payment_ids=[p.id for p in similar] + [payment.id],
            status=DuplicateCaseStatus.OPEN,
            version=1,
        )
        # A concurrent opener trips the open-case unique index here
        self.db.add(case)
        await self.db.flush()

        logger.warning(
            "Opened duplicate case %s for customer %s with %d payments",
            case.id, case.customer_id, len(case.payment_ids),
        )
        await self.outbox.publish_event(
            event_type=EVENT_DUPLICATE_CASE_OPENED,
            aggregate_type="duplicate_case",
            aggregate_id=case.id,
            payload={"customer_id": case.customer_id, "payment_ids": list(case.payment_ids)},
        )
        return case

    async def _append_to_case(self, case: DuplicateCase, payment_id: str) -> bool:
        """Conditionally append; False when another writer got there first."""
        if payment_id in case.payment_ids:
            return True

        result = await self.db.execute(
            update(DuplicateCase)
            .where(
                DuplicateCase.id == case.id,
                DuplicateCase.version == case.version,
                DuplicateCase.status == DuplicateCaseStatus.OPEN,
            )
            .values(payment_ids=[*case.payment_ids, payment_id], version=case.version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(case)
        if result.rowcount != 1:
            logger.info("Duplicate case %s changed concurrently, retrying append", case.id)
            return False

        await self.outbox.publish_event(
            event_type=EVENT_DUPLICATE_CASE_EXTENDED,
            aggregate_type="duplicate_case",
            aggregate_id=case.id,
            payload={"payment_id": payment_id, "payment_count": len(case.payment_ids)},
        )
        return True
