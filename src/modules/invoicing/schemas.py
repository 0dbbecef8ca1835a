"""Pydantic v2 schemas for invoice orders and the issuer worker."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.enums import InvoiceOrderStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class InvoiceOrderCreate(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=64)
    school_context_id: str | None = Field(None, max_length=64)
    concept: str = Field(..., min_length=1, max_length=255)
    period_key: str | None = Field(None, max_length=32)
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: str = Field("ARS", min_length=3, max_length=3)
    payment_ids_applied: list[str] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class InvoiceOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    school_context_id: str | None = None
    concept: str
    period_key: str | None = None
    amount: Decimal
    currency: str
    payment_ids_applied: list[str]
    duplicate_case_id: str | None = None
    status: InvoiceOrderStatus
    afip: dict | None = None
    pdf_url: str | None = None
    email: dict | None = None
    failure_reason: str | None = None
    retry_count: int
    created_at: datetime
    updated_at: datetime


class InvoiceOrderListResponse(BaseModel):
    items: list[InvoiceOrderResponse]
    total: int
    limit: int
    offset: int


class WorkerRunResponse(BaseModel):
    processed: int = 0
    requeued: int = 0
    failed: int = 0
    skipped: int = 0
