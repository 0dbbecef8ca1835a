"""InvoiceOrder model — an idempotent request to issue one AFIP voucher."""

from decimal import Decimal

from sqlalchemy import Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin
from src.models.enums import InvoiceOrderStatus
from src.models.types import JSONType


class InvoiceOrder(TimestampMixin, Base):
    __tablename__ = "invoice_orders"

    # sha256 invoice key; identical content maps to the same row
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    school_context_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    concept: Mapped[str] = mapped_column(String(255), nullable=False)
    period_key: Mapped[str | None] = mapped_column(String(32), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS")
    payment_ids_applied: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    duplicate_case_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[InvoiceOrderStatus] = mapped_column(
        SQLAlchemyEnum(InvoiceOrderStatus, name="invoiceorderstatus"),
        nullable=False,
        default=InvoiceOrderStatus.PENDING,
    )
    # {pto_vta, cbte_tipo, cbte_nro, cae, cae_vto}
    afip: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # {to, sent_at}
    email: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_invoice_orders_status_created", "status", "created_at"),
        Index("ix_invoice_orders_customer_id", "customer_id"),
    )

    def __repr__(self) -> str:
        return f"<InvoiceOrder id={self.id[:12]} status={self.status} amount={self.amount}>"
