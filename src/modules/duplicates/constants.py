"""Duplicate case resolution constants and outbox event types."""

from __future__ import annotations

from src.models.enums import DuplicateCaseStatus, ResolutionType

# Resolutions that act on the operator's chosen payments
RESOLUTIONS_REQUIRING_CHOICE: set[ResolutionType] = {
    ResolutionType.INVOICE_ONE_CREDIT_REST,
    ResolutionType.REFUND_ONE,
}

RESOLUTION_TARGET_STATUS: dict[ResolutionType, DuplicateCaseStatus] = {
    ResolutionType.INVOICE_ONE_CREDIT_REST: DuplicateCaseStatus.RESOLVED,
    ResolutionType.INVOICE_ALL: DuplicateCaseStatus.RESOLVED,
    ResolutionType.REFUND_ONE: DuplicateCaseStatus.RESOLVED,
    ResolutionType.IGNORE_DUPLICATES: DuplicateCaseStatus.DISMISSED,
}

DUPLICATE_INVOICE_CONCEPT = "Cuota - Caso duplicado {case_id}"
DUPLICATE_INVOICE_ALL_CONCEPT = "Cuota múltiple - Caso duplicado {case_id}"

DEFAULT_OPEN_CASES_LIMIT = 50

EVENT_DUPLICATE_CASE_RESOLVED = "duplicate_case.resolved"
