"""Invoice PDF rendering (ReportLab, with the AFIP verification QR) and storage."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from io import BytesIO
from pathlib import Path
from typing import Protocol

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from src.config import settings
from src.models.customer import Customer
from src.models.invoice_order import InvoiceOrder
from src.modules.afip.constants import CURRENCY_CODES
from src.modules.invoicing.emitter import recipient_document

logger = logging.getLogger(__name__)

VOUCHER_LETTERS = {1: "A", 6: "B", 11: "C"}

AFIP_QR_BASE_URL = "https://www.afip.gob.ar/fe/qr/?p="
AFIP_QR_VERSION = 1
# CAE-authorized voucher
AFIP_QR_AUTH_TYPE = "E"

BUILTIN_FONT = "Helvetica"
MARGIN = 50
LINE_HEIGHT = 16
QR_SIZE = 90


class InvoicePdfRenderer(Protocol):
    def render(self, fields: dict) -> bytes: ...


class PdfStorage(Protocol):
    async def save(self, name: str, content: bytes) -> str:
        """Persist ``content`` and return the URL it is served from."""
        ...


def voucher_display_number(afip: dict) -> str:
    return f"{int(afip['pto_vta']):04d}-{int(afip['cbte_nro']):08d}"


def build_afip_qr_url(
    afip: dict, order: InvoiceOrder, customer: Customer | None, issuer_cuit: str
) -> str:
    """``https://www.afip.gob.ar/fe/qr/?p=`` + base64 of the voucher's JSON summary."""
    doc_tipo, doc_nro = recipient_document(customer)
    cae = str(afip["cae"])
    payload = {
        "ver": AFIP_QR_VERSION,
        "fecha": afip["cbte_fch"],
        "cuit": int(issuer_cuit) if issuer_cuit else 0,
        "ptoVta": int(afip["pto_vta"]),
        "tipoCmp": int(afip["cbte_tipo"]),
        "nroCmp": int(afip["cbte_nro"]),
        "importe": float(order.amount),
        "moneda": CURRENCY_CODES.get(order.currency, order.currency),
        "ctz": 1,
        "tipoDocRec": doc_tipo,
        "nroDocRec": doc_nro,
        "tipoCodAut": AFIP_QR_AUTH_TYPE,
        "codAut": int(cae) if cae.isdigit() else cae,
    }
    encoded = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return AFIP_QR_BASE_URL + encoded.decode("ascii")


def build_pdf_fields(order: InvoiceOrder, customer: Customer | None) -> dict:
    afip = order.afip or {}
    issuer_cuit = settings.afip_cuit_digits
    return {
        "issuer_name": settings.issuer_name,
        "issuer_address": settings.issuer_address,
        "issuer_cuit": issuer_cuit,
        "letter": VOUCHER_LETTERS.get(int(afip.get("cbte_tipo", 0)), "X"),
        "number": voucher_display_number(afip) if afip else "",
        "date": afip.get("cbte_fch", ""),
        "customer_name": customer.display_name if customer is not None else order.customer_id,
        "customer_doc": (customer.doc_nro or "") if customer is not None else "",
        "concept": order.concept,
        "period": order.period_key or "",
        "amount": f"{order.amount:.2f}",
        "currency": order.currency,
        "cae": afip.get("cae", ""),
        "cae_vto": afip.get("cae_vto", ""),
        # Authorizations stored before the voucher date was recorded render without a QR
        "qr_url": (
            build_afip_qr_url(afip, order, customer, issuer_cuit) if afip.get("cbte_fch") else None
        ),
    }


def _register_font(font_path: str | None) -> str:
    """Register a TrueType font for full Unicode output; Helvetica when there is none."""
    if not font_path:
        return BUILTIN_FONT
    path = Path(font_path)
    if not path.is_file():
        logger.warning("Invoice font %s not found; falling back to %s", font_path, BUILTIN_FONT)
        return BUILTIN_FONT
    name = path.stem
    if name not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(name, str(path)))
    return name


class ReportLabInvoicePdfRenderer:
    """Single A4 invoice: issuer and customer blocks, total, CAE and the AFIP QR.

    Long lines wrap to the page width and flow onto a new page when needed.
    """

    def __init__(self, font_path: str | None = None, compress: bool = True) -> None:
        self.font_name = _register_font(font_path)
        self.compress = compress

    def render(self, fields: dict) -> bytes:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4, pageCompression=1 if self.compress else 0)
        pdf.setTitle(f"Factura {fields['letter']} {fields['number']}")
        width, height = A4
        text_width = width - 2 * MARGIN
        y = height - MARGIN

        def draw(text: str, size: int = 11) -> None:
            nonlocal y
            pdf.setFont(self.font_name, size)
            for line in simpleSplit(text, self.font_name, size, text_width) or [""]:
                if y < MARGIN:
                    pdf.showPage()
                    pdf.setFont(self.font_name, size)
                    y = height - MARGIN
                pdf.drawString(MARGIN, y, line)
                y -= LINE_HEIGHT

        def separator() -> None:
            nonlocal y
            pdf.setStrokeColorRGB(0.7, 0.7, 0.7)
            pdf.line(MARGIN, y + 5, width - MARGIN, y + 5)
            y -= LINE_HEIGHT

        # Header
        draw(f"FACTURA {fields['letter']}", size=18)
        draw(f"N° {fields['number']}    Fecha: {fields['date'] or '-'}")
        separator()

        # Issuer
        draw(fields["issuer_name"], size=13)
        if fields["issuer_address"]:
            draw(fields["issuer_address"])
        draw(f"CUIT: {fields['issuer_cuit'] or '-'}")
        separator()

        # Customer
        draw(f"Cliente: {fields['customer_name']}")
        draw(f"Documento: {fields['customer_doc'] or '-'}")
        separator()

        # Detail
        draw(f"Concepto: {fields['concept']}")
        draw(f"Período: {fields['period'] or '-'}")
        draw(f"Total: {fields['currency']} {fields['amount']}", size=13)
        separator()

        # Authorization
        draw(f"CAE: {fields['cae']}", size=9)
        draw(f"Vencimiento CAE: {fields['cae_vto']}", size=9)

        if fields.get("qr_url"):
            if y - QR_SIZE < MARGIN:
                pdf.showPage()
                y = height - MARGIN
            widget = QrCodeWidget(fields["qr_url"])
            x1, y1, x2, y2 = widget.getBounds()
            drawing = Drawing(
                QR_SIZE,
                QR_SIZE,
                transform=[QR_SIZE / (x2 - x1), 0, 0, QR_SIZE / (y2 - y1), 0, 0],
            )
            drawing.add(widget)
            renderPDF.draw(drawing, pdf, MARGIN, y - QR_SIZE)
            y -= QR_SIZE + 4
            draw("Código QR para verificación AFIP", size=7)

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()


class LocalPdfStorage:
    def __init__(self, directory: str | Path, base_url: str) -> None:
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    def _write(self, name: str, content: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / f"{name}.pdf").write_bytes(content)

    async def save(self, name: str, content: bytes) -> str:
        await asyncio.to_thread(self._write, name, content)
        return f"{self.base_url}/{name}.pdf"
