"""Invoice order status transitions and outbox event types."""

from __future__ import annotations

from src.models.enums import InvoiceOrderStatus

# ---------------------------------------------------------------------------
# Valid status transitions: current_status -> set of allowed next statuses
# ---------------------------------------------------------------------------

ORDER_TRANSITIONS: dict[InvoiceOrderStatus, set[InvoiceOrderStatus]] = {
    InvoiceOrderStatus.PENDING: {
        InvoiceOrderStatus.ISSUING,
    },
    InvoiceOrderStatus.ISSUING: {
        InvoiceOrderStatus.ISSUED,
        InvoiceOrderStatus.PENDING,
        InvoiceOrderStatus.FAILED,
    },
    InvoiceOrderStatus.ISSUED: {
        InvoiceOrderStatus.PDF_READY,
        InvoiceOrderStatus.PENDING,
        InvoiceOrderStatus.FAILED,
    },
    InvoiceOrderStatus.PDF_READY: {
        InvoiceOrderStatus.EMAIL_SENT,
        InvoiceOrderStatus.PENDING,
        InvoiceOrderStatus.FAILED,
    },
    # Operator re-queue
    InvoiceOrderStatus.FAILED: {
        InvoiceOrderStatus.PENDING,
    },
}

ORDER_TERMINAL_STATUSES: set[InvoiceOrderStatus] = {
    InvoiceOrderStatus.EMAIL_SENT,
}

FAILURE_REASON_MAX_LENGTH = 2000

# VAT rate applied to gross amounts on A/B vouchers
VAT_RATE = "0.21"

STUB_CAE_VALID_DAYS = 10

# ---------------------------------------------------------------------------
# Event type strings for the outbox
# ---------------------------------------------------------------------------

EVENT_INVOICE_ORDER_CREATED = "invoice_order.created"
EVENT_INVOICE_ORDER_ISSUED = "invoice_order.issued"
EVENT_INVOICE_ORDER_FAILED = "invoice_order.failed"
EVENT_EMAIL_REQUESTED = "email.requested"
