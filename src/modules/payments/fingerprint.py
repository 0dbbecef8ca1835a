"""Stable economic fingerprint of a payment.

Two payments share a fingerprint when they have the same customer, amount,
currency, normalized reference and method and fall in the same fixed time
bucket. Buckets start at the Unix epoch, so payments a few seconds apart can
straddle a boundary; the ingestion service compensates by also comparing
``paid_at`` directly.
"""

from __future__ import annotations

import enum
import hashlib
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from src.modules.payments.constants import DEFAULT_DUPLICATE_WINDOW_MINUTES

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def normalize_reference(reference: str | None) -> str:
    if not reference:
        return ""
    return " ".join(reference.strip().lower().split())


def canonical_amount(amount: Decimal | int | float | str) -> str:
    """``100``, ``100.0`` and ``100.00`` all render as ``100``."""
    return format(Decimal(str(amount)).normalize(), "f")


def time_bucket(paid_at: datetime, window_minutes: int) -> int:
    if window_minutes <= 0:
        raise ValueError("window_minutes must be positive")
    if paid_at.tzinfo is None:
        paid_at = paid_at.replace(tzinfo=UTC)
    epoch_ms = (paid_at - _EPOCH) // _ONE_MS
    return epoch_ms // (window_minutes * 60_000)


def compute_fingerprint(
    customer_id: str,
    amount: Decimal | int | float | str,
    currency: str,
    paid_at: datetime,
    method: str | enum.Enum | None = None,
    reference: str | None = None,
    window_minutes: int = DEFAULT_DUPLICATE_WINDOW_MINUTES,
) -> str:
    if isinstance(method, enum.Enum):
        method = method.value
    parts = [
        customer_id,
        canonical_amount(amount),
        currency,
        normalize_reference(reference),
        method or "unknown",
        str(time_bucket(paid_at, window_minutes)),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
