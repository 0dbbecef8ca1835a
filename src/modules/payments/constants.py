"""Payment ingestion constants and outbox event types."""

from __future__ import annotations

from src.models.enums import PaymentProvider, PaymentStatus

# Provider-specific status words folded onto our status set
PROVIDER_STATUS_ALIASES: dict[str, PaymentStatus] = {
    "accredited": PaymentStatus.APPROVED,
    "received": PaymentStatus.APPROVED,
    "cancelled": PaymentStatus.REJECTED,
}

DEFAULT_DUPLICATE_WINDOW_MINUTES = 30

# Attempts at the conditional append before giving up on a hot case
CASE_APPEND_ATTEMPTS = 5

# Payment ids are "{provider}_{provider_payment_id}" in a 255-character column
PAYMENT_ID_MAX_LENGTH = 255
PROVIDER_PAYMENT_ID_MAX_LENGTH = (
    PAYMENT_ID_MAX_LENGTH - max(len(provider.value) for provider in PaymentProvider) - 1
)

# ---------------------------------------------------------------------------
# Event type strings for the outbox
# ---------------------------------------------------------------------------

EVENT_PAYMENT_INGESTED = "payment.ingested"
EVENT_DUPLICATE_CASE_OPENED = "duplicate_case.opened"
EVENT_DUPLICATE_CASE_EXTENDED = "duplicate_case.extended"
