"""Pydantic v2 schemas for duplicate cases and their resolution."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.enums import DuplicateCaseStatus, ResolutionType
from src.modules.duplicates.constants import RESOLUTIONS_REQUIRING_CHOICE
from src.modules.invoicing.schemas import InvoiceOrderResponse
from src.modules.payments.schemas import PaymentResponse


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ResolveCaseRequest(BaseModel):
    type: ResolutionType
    chosen_payment_ids: list[str] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _require_choice(self) -> ResolveCaseRequest:
        if self.type in RESOLUTIONS_REQUIRING_CHOICE and not self.chosen_payment_ids:
            raise ValueError(f"'{self.type.value}' needs at least one chosen payment")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class DuplicateCaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    school_context_id: str
    customer_id: str
    fingerprint_hash: str
    window_minutes: int
    payment_ids: list[str]
    status: DuplicateCaseStatus
    resolution: dict | None = None
    resolved_at: datetime | None = None
    created_at: datetime


class DuplicateCaseListResponse(BaseModel):
    items: list[DuplicateCaseResponse]


class DuplicateCaseDetailResponse(DuplicateCaseResponse):
    payments: list[PaymentResponse] = Field(default_factory=list)


class ResolutionResponse(BaseModel):
    case: DuplicateCaseResponse
    invoice_order: InvoiceOrderResponse | None = None
    credit_id: str | None = None
