"""Pydantic v2 models for AFIP tickets and vouchers."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.modules.afip.constants import (
    CONCEPTO_SERVICIOS,
    CONDICION_IVA_CONSUMIDOR_FINAL,
    DOC_TIPO_CONSUMIDOR_FINAL,
)


# ---------------------------------------------------------------------------
# WSAA
# ---------------------------------------------------------------------------


class AuthTicket(BaseModel):
    """Signed WSAA access ticket, persisted as ``{token, sign, expirationTime}``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token: str
    sign: str
    expiration_time: datetime = Field(alias="expirationTime")

    def is_usable(self, now: datetime, margin: timedelta) -> bool:
        return now + margin < self.expiration_time


class TicketStatusResponse(BaseModel):
    environment: str
    expiration_time: datetime
    token_preview: str


class LastVoucherResponse(BaseModel):
    sales_point: int
    voucher_type: int
    last_voucher_number: int


# ---------------------------------------------------------------------------
# WSFE
# ---------------------------------------------------------------------------


class VatRate(BaseModel):
    id: int
    base_amount: Decimal
    amount: Decimal


class VoucherRequest(BaseModel):
    """One voucher for ``FECAESolicitar``; amounts in the voucher currency."""

    sales_point: int
    voucher_type: int
    concept: int = CONCEPTO_SERVICIOS
    doc_tipo: int = DOC_TIPO_CONSUMIDOR_FINAL
    doc_nro: int = 0
    voucher_date: date
    # Set by issue_next_voucher; required for a direct issue_voucher call
    voucher_from: int | None = None
    voucher_to: int | None = None
    total: Decimal
    non_taxed: Decimal = Decimal("0")
    net: Decimal
    exempt: Decimal = Decimal("0")
    vat: Decimal = Decimal("0")
    other_taxes: Decimal = Decimal("0")
    currency_id: str = "PES"
    currency_rate: Decimal = Decimal("1")
    service_from: date | None = None
    service_to: date | None = None
    payment_due: date | None = None
    recipient_vat_condition: int = CONDICION_IVA_CONSUMIDOR_FINAL
    vat_rates: list[VatRate] = Field(default_factory=list)


class VoucherAuthorization(BaseModel):
    cae: str
    cae_expires_on: date


class IssuedVoucher(BaseModel):
    sales_point: int
    voucher_type: int
    voucher_number: int
    voucher_date: date
    cae: str
    cae_expires_on: date
