"""Pydantic v2 schemas for payment ingestion."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.enums import (
    DuplicateStatus,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
)
from src.modules.payments.constants import PROVIDER_PAYMENT_ID_MAX_LENGTH, PROVIDER_STATUS_ALIASES


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PaymentIngestRequest(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=64)
    school_context_id: str = Field(..., min_length=1, max_length=64)
    period: str | None = Field(None, pattern=r"^\d{4}-\d{2}$")
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: str = Field("ARS", min_length=3, max_length=3)
    provider: PaymentProvider
    provider_payment_id: str | None = Field(None, max_length=PROVIDER_PAYMENT_ID_MAX_LENGTH)
    status: PaymentStatus
    paid_at: datetime
    method: PaymentMethod = PaymentMethod.UNKNOWN
    reference: str | None = Field(None, max_length=500)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("status", mode="before")
    @classmethod
    def _map_provider_status(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return PROVIDER_STATUS_ALIASES.get(lowered, lowered)
        return value

    @field_validator("provider_payment_id")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PaymentIngestResult(BaseModel):
    payment_id: str
    is_duplicate_technical: bool
    duplicate_case_id: str | None = None
    created: bool


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    school_context_id: str
    period: str | None = None
    amount: Decimal
    currency: str
    provider: PaymentProvider
    provider_payment_id: str | None = None
    status: PaymentStatus
    paid_at: datetime
    method: PaymentMethod
    reference: str | None = None
    fingerprint_hash: str
    duplicate_status: DuplicateStatus
    duplicate_case_id: str | None = None
    created_at: datetime
