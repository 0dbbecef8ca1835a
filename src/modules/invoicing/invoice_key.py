"""Content-derived identity of an invoice order."""

from __future__ import annotations

import hashlib
from decimal import Decimal

from src.modules.payments.fingerprint import canonical_amount


def compute_invoice_key(
    customer_id: str,
    concept: str,
    period_key: str | None,
    amount: Decimal | int | float | str,
    currency: str,
) -> str:
    """sha256 of ``customer|concept|period|amount|currency``; same content, same key."""
    raw = "|".join([customer_id, concept, period_key or "", canonical_amount(amount), currency])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
