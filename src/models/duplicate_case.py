"""DuplicateCase model — a group of payments suspected to be the same event."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin
from src.models.enums import DuplicateCaseStatus
from src.models.types import JSONType


class DuplicateCase(TimestampMixin, Base):
    __tablename__ = "duplicate_cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    school_context_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    window_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[DuplicateCaseStatus] = mapped_column(
        SQLAlchemyEnum(DuplicateCaseStatus, name="duplicatecasestatus"),
        nullable=False,
        default=DuplicateCaseStatus.OPEN,
    )
    resolution: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Bumped on every write; conditional updates compare against it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index(
            "uq_duplicate_cases_open_fingerprint",
            "school_context_id",
            "fingerprint_hash",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        Index("ix_duplicate_cases_school_status", "school_context_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<DuplicateCase id={self.id} status={self.status} payments={len(self.payment_ids)}>"
