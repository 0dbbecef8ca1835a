"""Customer model — the billed party (a player's payer within a school)."""

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin


class Customer(TimestampMixin, Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_context_id: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # AFIP document: 80 CUIT, 96 DNI, 99 consumidor final
    doc_tipo: Mapped[int] = mapped_column(Integer, nullable=False, default=99)
    doc_nro: Mapped[str | None] = mapped_column(String(20), nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_customers_school_context_id", "school_context_id"),)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.id

    def __repr__(self) -> str:
        return f"<Customer id={self.id} school={self.school_context_id}>"
