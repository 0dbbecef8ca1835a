"""CustomerCredit model — balance in favour of a customer from duplicate payments."""

from decimal import Decimal

from sqlalchemy import Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.types import JSONType


class CustomerCredit(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "customer_credits"

    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS")
    source_payment_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    source_duplicate_case_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (Index("ix_customer_credits_customer_id", "customer_id"),)
