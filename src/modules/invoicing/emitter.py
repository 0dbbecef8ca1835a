"""Voucher issuers: turn an invoice order into an authorized AFIP voucher."""

from __future__ import annotations

import calendar
import logging
import random
import re
import uuid
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from src.config import settings
from src.database.base import utcnow
from src.exceptions import ConfigurationException
from src.models.customer import Customer
from src.models.invoice_order import InvoiceOrder
from src.modules.afip.constants import (
    ALIC_IVA_21_ID,
    CONCEPTO_SERVICIOS,
    CURRENCY_CODES,
    DOC_TIPO_CONSUMIDOR_FINAL,
    VAT_BEARING_CBTE_TIPOS,
)
from src.modules.afip.schemas import IssuedVoucher, VatRate, VoucherRequest
from src.modules.afip.wsaa import ARGENTINA_TZ
from src.modules.afip.wsfe import InvoiceWireClient
from src.modules.invoicing.constants import STUB_CAE_VALID_DAYS, VAT_RATE

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class VoucherIssuer(Protocol):
    async def issue(self, order: InvoiceOrder, customer: Customer | None) -> IssuedVoucher: ...


def split_vat(total: Decimal, voucher_type: int) -> tuple[Decimal, Decimal]:
    """Split a gross amount into (net, vat). Type C vouchers carry no VAT."""
    total = Decimal(total).quantize(CENTS)
    if voucher_type not in VAT_BEARING_CBTE_TIPOS:
        return total, Decimal("0.00")
    net = (total / (1 + Decimal(VAT_RATE))).quantize(CENTS, rounding=ROUND_HALF_UP)
    return net, total - net


def service_period(period_key: str | None, fallback: date) -> tuple[date, date]:
    """A ``YYYY-MM`` period covers that calendar month; anything else, the voucher date."""
    match = _PERIOD_RE.match(period_key or "")
    if match is None:
        return fallback, fallback
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return fallback, fallback
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def recipient_document(customer: Customer | None) -> tuple[int, int]:
    """(doc_tipo, doc_nro) as AFIP expects them; no customer bills the final consumer."""
    if customer is None:
        return DOC_TIPO_CONSUMIDOR_FINAL, 0
    digits = re.sub(r"\D", "", customer.doc_nro or "")
    return customer.doc_tipo, int(digits) if digits else 0


def build_voucher_request(
    order: InvoiceOrder,
    customer: Customer | None,
    sales_point: int,
    voucher_type: int,
    voucher_date: date,
) -> VoucherRequest:
    net, vat = split_vat(order.amount, voucher_type)
    vat_rates = (
        [VatRate(id=ALIC_IVA_21_ID, base_amount=net, amount=vat)]
        if voucher_type in VAT_BEARING_CBTE_TIPOS
        else []
    )

    doc_tipo, doc_nro = recipient_document(customer)
    service_from, service_to = service_period(order.period_key, voucher_date)

    return VoucherRequest(
        sales_point=sales_point,
        voucher_type=voucher_type,
        concept=CONCEPTO_SERVICIOS,
        doc_tipo=doc_tipo,
        doc_nro=doc_nro,
        voucher_date=voucher_date,
        total=Decimal(order.amount).quantize(CENTS),
        net=net,
        vat=vat,
        currency_id=CURRENCY_CODES.get(order.currency, order.currency),
        currency_rate=Decimal("1"),
        service_from=service_from,
        service_to=service_to,
        payment_due=voucher_date,
        vat_rates=vat_rates,
    )


class AfipVoucherIssuer:
    def __init__(
        self,
        wire: InvoiceWireClient,
        sales_point: int,
        voucher_type: int,
        clock=utcnow,
    ) -> None:
        self.wire = wire
        self.sales_point = sales_point
        self.voucher_type = voucher_type
        self.clock = clock

    async def issue(self, order: InvoiceOrder, customer: Customer | None) -> IssuedVoucher:
        today = self.clock().astimezone(ARGENTINA_TZ).date()
        request = build_voucher_request(order, customer, self.sales_point, self.voucher_type, today)
        return await self.wire.issue_next_voucher(request)


class StubVoucherIssuer:
    """Fake authorizations for development environments without AFIP certificates."""

    def __init__(self, sales_point: int, voucher_type: int) -> None:
        self.sales_point = sales_point
        self.voucher_type = voucher_type

    async def issue(self, order: InvoiceOrder, customer: Customer | None) -> IssuedVoucher:
        logger.warning("Issuing STUB voucher for order %s; not a legal invoice", order.id)
        today = datetime.now(ARGENTINA_TZ).date()
        return IssuedVoucher(
            sales_point=self.sales_point,
            voucher_type=self.voucher_type,
            voucher_number=random.randint(1, 99_999_999),
            voucher_date=today,
            cae=f"STUB-{uuid.uuid4().hex[:14].upper()}",
            cae_expires_on=today + timedelta(days=STUB_CAE_VALID_DAYS),
        )


def build_voucher_issuer() -> VoucherIssuer:
    if settings.afip_configured:
        from src.modules.afip.factory import get_afip_stack

        return AfipVoucherIssuer(
            get_afip_stack().wire, settings.afip_pto_vta, settings.afip_cbte_tipo
        )
    if settings.afip_stub_enabled:
        return StubVoucherIssuer(settings.afip_pto_vta, settings.afip_cbte_tipo)
    raise ConfigurationException(
        "AFIP is not configured (AFIP_CUIT, AFIP_CERT_PATH, AFIP_KEY_PATH) and stub mode is off"
    )
