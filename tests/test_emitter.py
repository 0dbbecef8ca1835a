"""Tests for voucher request building, invoice PDFs with the AFIP QR and invoice emails."""

from __future__ import annotations

import base64
import json
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from src.models.customer import Customer
from src.models.invoice_order import InvoiceOrder
from src.modules.afip.schemas import IssuedVoucher
from src.modules.invoicing.email import build_invoice_email
from src.modules.invoicing.emitter import (
    AfipVoucherIssuer,
    StubVoucherIssuer,
    build_voucher_request,
    service_period,
    split_vat,
)
from src.modules.invoicing.pdf import (
    AFIP_QR_BASE_URL,
    ReportLabInvoicePdfRenderer,
    build_afip_qr_url,
    build_pdf_fields,
)

AFIP = {
    "pto_vta": 2,
    "cbte_tipo": 6,
    "cbte_nro": 15,
    "cbte_fch": "2026-03-10",
    "cae": "76123456789012",
    "cae_vto": "2026-03-20",
}
DEJAVU_SANS = Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf")


def make_order(**overrides) -> InvoiceOrder:
    values = dict(
        id="a" * 64,
        customer_id="player-1",
        concept="Cuota marzo",
        period_key="2026-02",
        amount=Decimal("12100.00"),
        currency="ARS",
    )
    values.update(overrides)
    return InvoiceOrder(**values)


def make_customer(**overrides) -> Customer:
    values = dict(
        id="player-1",
        school_context_id="school-1",
        first_name="Lionel",
        last_name="Pérez <Jr>",
        email="familia@example.com",
        doc_tipo=96,
        doc_nro="30.123.456",
    )
    values.update(overrides)
    return Customer(**values)


class TestSplitVat:
    def test_factura_b_discriminates_21_percent(self):
        assert split_vat(Decimal("12100"), 6) == (Decimal("10000.00"), Decimal("2100.00"))

    def test_net_plus_vat_equals_total_after_rounding(self):
        net, vat = split_vat(Decimal("15000"), 6)

        assert net == Decimal("12396.69")
        assert net + vat == Decimal("15000.00")

    def test_factura_c_has_no_vat(self):
        assert split_vat(Decimal("15000"), 11) == (Decimal("15000.00"), Decimal("0.00"))


class TestServicePeriod:
    def test_month_period(self):
        assert service_period("2026-02", date(2026, 3, 10)) == (date(2026, 2, 1), date(2026, 2, 28))

    @pytest.mark.parametrize("period", [None, "marzo", "2026-13"])
    def test_other_periods_use_voucher_date(self, period):
        assert service_period(period, date(2026, 3, 10)) == (date(2026, 3, 10), date(2026, 3, 10))


class TestBuildVoucherRequest:
    def test_maps_order_and_customer(self):
        request = build_voucher_request(make_order(), make_customer(), 2, 6, date(2026, 3, 10))

        assert request.doc_tipo == 96
        assert request.doc_nro == 30123456
        assert request.total == Decimal("12100.00")
        assert request.net == Decimal("10000.00")
        assert request.vat_rates[0].id == 5
        assert request.currency_id == "PES"
        assert request.service_from == date(2026, 2, 1)
        assert request.payment_due == date(2026, 3, 10)

    def test_without_customer_bills_final_consumer(self):
        request = build_voucher_request(make_order(currency="USD"), None, 2, 11, date(2026, 3, 10))

        assert request.doc_tipo == 99
        assert request.doc_nro == 0
        assert request.vat_rates == []
        assert request.currency_id == "DOL"


class FakeWire:
    def __init__(self) -> None:
        self.requests = []

    async def issue_next_voucher(self, request):
        self.requests.append(request)
        return IssuedVoucher(
            sales_point=request.sales_point,
            voucher_type=request.voucher_type,
            voucher_number=16,
            voucher_date=request.voucher_date,
            cae="76123456789012",
            cae_expires_on=date(2026, 3, 20),
        )


class TestIssuers:
    @pytest.mark.asyncio
    async def test_voucher_date_is_argentina_calendar_day(self):
        wire = FakeWire()
        # 01:30 UTC is still the previous day in Buenos Aires
        issuer = AfipVoucherIssuer(wire, 2, 6, clock=lambda: datetime(2026, 3, 11, 1, 30, tzinfo=UTC))

        voucher = await issuer.issue(make_order(), make_customer())

        assert voucher.voucher_number == 16
        assert voucher.voucher_date == date(2026, 3, 10)
        assert wire.requests[0].voucher_date == date(2026, 3, 10)

    @pytest.mark.asyncio
    async def test_stub_issuer_marks_its_cae(self):
        voucher = await StubVoucherIssuer(1, 11).issue(make_order(), None)

        assert voucher.cae.startswith("STUB-")
        assert voucher.voucher_type == 11
        assert voucher.cae_expires_on > voucher.voucher_date


class TestInvoicePdf:
    def test_pdf_fields(self):
        fields = build_pdf_fields(make_order(afip=AFIP), make_customer())

        assert fields["letter"] == "B"
        assert fields["number"] == "0002-00000015"
        assert fields["customer_name"] == "Lionel Pérez <Jr>"
        assert fields["amount"] == "12100.00"
        assert fields["date"] == "2026-03-10"

    def test_pdf_fields_without_voucher_date_have_no_qr(self):
        afip = {key: value for key, value in AFIP.items() if key != "cbte_fch"}

        fields = build_pdf_fields(make_order(afip=afip), make_customer())

        assert fields["qr_url"] is None
        assert fields["date"] == ""

    def test_rendered_pdf_is_a_pdf(self):
        renderer = ReportLabInvoicePdfRenderer(compress=False)

        content = renderer.render(build_pdf_fields(make_order(afip=AFIP), make_customer()))

        assert content.startswith(b"%PDF-")
        assert content.rstrip().endswith(b"%%EOF")
        assert b"76123456789012" in content

    def test_names_outside_latin1_are_not_replaced(self):
        customer = make_customer(first_name="Łukasz", last_name="Nowak €")
        renderer = ReportLabInvoicePdfRenderer(compress=False)

        content = renderer.render(build_pdf_fields(make_order(afip=AFIP), customer))

        assert b"?ukasz" not in content
        assert b"ukasz Nowak" in content

    def test_long_concept_wraps_without_losing_text(self):
        order = make_order(afip=AFIP, concept="matricula " * 60)
        renderer = ReportLabInvoicePdfRenderer(compress=False)

        content = renderer.render(build_pdf_fields(order, make_customer()))

        assert content.count(b"matricula") == 60

    @pytest.mark.skipif(not DEJAVU_SANS.is_file(), reason="DejaVu Sans not installed")
    def test_truetype_font_is_embedded(self):
        renderer = ReportLabInvoicePdfRenderer(str(DEJAVU_SANS), compress=False)

        content = renderer.render(build_pdf_fields(make_order(afip=AFIP), make_customer()))

        assert b"DejaVuSans" in content

    def test_missing_font_falls_back_to_helvetica(self, tmp_path):
        renderer = ReportLabInvoicePdfRenderer(str(tmp_path / "missing.ttf"))

        assert renderer.font_name == "Helvetica"


class TestAfipQr:
    @staticmethod
    def decode(url: str) -> dict:
        assert url.startswith(AFIP_QR_BASE_URL)
        return json.loads(base64.b64decode(url[len(AFIP_QR_BASE_URL):]))

    def test_encodes_voucher_summary(self):
        url = build_afip_qr_url(AFIP, make_order(), make_customer(), "20123456789")

        assert self.decode(url) == {
            "ver": 1,
            "fecha": "2026-03-10",
            "cuit": 20123456789,
            "ptoVta": 2,
            "tipoCmp": 6,
            "nroCmp": 15,
            "importe": 12100.0,
            "moneda": "PES",
            "ctz": 1,
            "tipoDocRec": 96,
            "nroDocRec": 30123456,
            "tipoCodAut": "E",
            "codAut": 76123456789012,
        }

    def test_final_consumer_and_stub_cae(self):
        afip = {**AFIP, "cae": "STUB-ABC"}

        payload = self.decode(build_afip_qr_url(afip, make_order(currency="USD"), None, ""))

        assert payload["tipoDocRec"] == 99
        assert payload["nroDocRec"] == 0
        assert payload["moneda"] == "DOL"
        assert payload["codAut"] == "STUB-ABC"

    def test_pdf_fields_carry_the_qr(self):
        fields = build_pdf_fields(make_order(afip=AFIP), make_customer())

        assert self.decode(fields["qr_url"])["nroCmp"] == 15


class TestInvoiceEmail:
    def test_invoice_email_escapes_html(self):
        message = build_invoice_email(
            make_order(afip=AFIP, pdf_url="/files/invoices/a.pdf"), make_customer()
        )

        assert message.to == "familia@example.com"
        assert message.subject == "Factura 0002-00000015"
        assert "Pérez &lt;Jr&gt;" in message.html
        assert "Pérez <Jr>" in message.text
        assert message.attachment_url == "/files/invoices/a.pdf"
