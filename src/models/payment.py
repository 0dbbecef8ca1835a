"""Payment model — one provider-reported payment event."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin
from src.models.enums import DuplicateStatus, PaymentMethod, PaymentProvider, PaymentStatus


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    # "{provider}_{provider_payment_id}" when the provider id is known
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    customer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    school_context_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS")
    provider: Mapped[PaymentProvider] = mapped_column(
        SQLAlchemyEnum(PaymentProvider, name="paymentprovider"), nullable=False
    )
    provider_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLAlchemyEnum(PaymentStatus, name="paymentstatus"), nullable=False
    )
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(
        SQLAlchemyEnum(PaymentMethod, name="paymentmethod"),
        nullable=False,
        default=PaymentMethod.UNKNOWN,
    )
    reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    duplicate_status: Mapped[DuplicateStatus] = mapped_column(
        SQLAlchemyEnum(DuplicateStatus, name="duplicatestatus"),
        nullable=False,
        default=DuplicateStatus.NONE,
    )
    duplicate_case_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "provider_payment_id", name="uq_payments_provider_payment"),
        Index("ix_payments_fingerprint", "school_context_id", "fingerprint_hash", "status"),
        Index("ix_payments_customer_id", "customer_id"),
    )

    def __repr__(self) -> str:
        return f"<Payment id={self.id} amount={self.amount} {self.currency} status={self.status}>"
