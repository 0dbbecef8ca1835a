"""Invoice email composition and hand-off to the outbound mailer."""

from __future__ import annotations

import html
from dataclasses import asdict, dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.customer import Customer
from src.models.invoice_order import InvoiceOrder
from src.modules.events.outbox_service import OutboxService
from src.modules.invoicing.constants import EVENT_EMAIL_REQUESTED
from src.modules.invoicing.pdf import voucher_display_number


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    attachment_url: str | None = None


class EmailQueue(Protocol):
    async def enqueue(self, message: EmailMessage) -> None: ...


def build_invoice_email(order: InvoiceOrder, customer: Customer) -> EmailMessage:
    number = voucher_display_number(order.afip) if order.afip else order.id[:12]
    name = customer.display_name
    text = (
        f"Hola {name},\n\n"
        f"Adjuntamos la factura {number} por {order.currency} {order.amount:.2f} "
        f"en concepto de {order.concept}.\n"
    )
    if order.pdf_url:
        text += f"\nDescargala desde: {order.pdf_url}\n"
    body = (
        f"<p>Hola {html.escape(name)},</p>"
        f"<p>Adjuntamos la factura <strong>{html.escape(number)}</strong> por "
        f"{html.escape(order.currency)} {order.amount:.2f} en concepto de "
        f"{html.escape(order.concept)}.</p>"
    )
    if order.pdf_url:
        body += f'<p><a href="{html.escape(order.pdf_url, quote=True)}">Descargar PDF</a></p>'
    return EmailMessage(
        to=customer.email or "",
        subject=f"Factura {number}",
        html=body,
        text=text,
        attachment_url=order.pdf_url,
    )


class OutboxEmailQueue:
    """Queues the message as an ``email.requested`` outbox event for the mailer relay."""

    def __init__(self, session: AsyncSession) -> None:
        self.outbox = OutboxService(session)

    async def enqueue(self, message: EmailMessage) -> None:
        await self.outbox.publish_event(
            event_type=EVENT_EMAIL_REQUESTED,
            aggregate_type="email",
            aggregate_id=message.to,
            payload=asdict(message),
        )
