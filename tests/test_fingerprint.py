"""Tests for payment fingerprints and invoice keys."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.models.enums import PaymentMethod
from src.modules.invoicing.invoice_key import compute_invoice_key
from src.modules.payments.fingerprint import (
    canonical_amount,
    compute_fingerprint,
    normalize_reference,
    time_bucket,
)

PAID_AT = datetime(2026, 3, 10, 14, 5, tzinfo=UTC)


class TestNormalization:
    def test_reference_is_trimmed_lowercased_and_collapsed(self):
        assert normalize_reference("  Cuota   MARZO\t2026 ") == "cuota marzo 2026"

    def test_missing_reference_is_empty(self):
        assert normalize_reference(None) == ""
        assert normalize_reference("") == ""

    @pytest.mark.parametrize("value", [100, "100", "100.0", Decimal("100.00"), 100.0])
    def test_canonical_amount_drops_trailing_zeros(self, value):
        assert canonical_amount(value) == "100"

    def test_canonical_amount_keeps_significant_decimals(self):
        assert canonical_amount(Decimal("1500.50")) == "1500.5"


class TestTimeBucket:
    def test_same_window_same_bucket(self):
        assert time_bucket(PAID_AT, 30) == time_bucket(PAID_AT + timedelta(minutes=20), 30)

    def test_next_window_different_bucket(self):
        assert time_bucket(PAID_AT, 30) != time_bucket(PAID_AT + timedelta(minutes=31), 30)

    def test_naive_datetime_is_read_as_utc(self):
        assert time_bucket(PAID_AT.replace(tzinfo=None), 30) == time_bucket(PAID_AT, 30)

    def test_offset_datetime_matches_its_utc_instant(self):
        local = PAID_AT.astimezone(timezone(timedelta(hours=-3)))
        assert time_bucket(local, 30) == time_bucket(PAID_AT, 30)

    def test_non_positive_window_rejected(self):
        with pytest.raises(ValueError):
            time_bucket(PAID_AT, 0)


class TestComputeFingerprint:
    def test_equivalent_payments_share_fingerprint(self):
        first = compute_fingerprint("player-1", "15000", "ARS", PAID_AT, "transfer", "Cuota Marzo")
        second = compute_fingerprint(
            "player-1",
            Decimal("15000.00"),
            "ARS",
            PAID_AT + timedelta(minutes=3),
            PaymentMethod.TRANSFER,
            "  cuota   marzo ",
        )
        assert first == second
        assert len(first) == 64

    def test_amount_changes_fingerprint(self):
        assert compute_fingerprint("player-1", 100, "ARS", PAID_AT) != compute_fingerprint(
            "player-1", 101, "ARS", PAID_AT
        )

    def test_customer_changes_fingerprint(self):
        assert compute_fingerprint("player-1", 100, "ARS", PAID_AT) != compute_fingerprint(
            "player-2", 100, "ARS", PAID_AT
        )

    def test_missing_method_matches_unknown(self):
        assert compute_fingerprint("player-1", 100, "ARS", PAID_AT) == compute_fingerprint(
            "player-1", 100, "ARS", PAID_AT, PaymentMethod.UNKNOWN
        )


class TestInvoiceKey:
    def test_same_content_same_key(self):
        first = compute_invoice_key("player-1", "Cuota marzo", "2026-03", Decimal("15000.00"), "ARS")
        second = compute_invoice_key("player-1", "Cuota marzo", "2026-03", 15000, "ARS")
        assert first == second

    def test_missing_period_is_distinct_from_a_period(self):
        assert compute_invoice_key("player-1", "Cuota", None, 100, "ARS") != compute_invoice_key(
            "player-1", "Cuota", "2026-03", 100, "ARS"
        )
