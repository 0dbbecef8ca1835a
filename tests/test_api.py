"""HTTP-level tests for the payments, duplicate-case and invoice-order routers."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.app import app
from src.modules.afip.factory import get_afip_stack
from src.modules.afip.schemas import AuthTicket
from src.modules.auth.dependencies import create_access_token, get_current_operator
from src.modules.invoicing.schemas import WorkerRunResponse
from src.modules.invoicing.worker import get_issuer_worker

PAYMENT = {
    "customer_id": "player-1",
    "school_context_id": "school-1",
    "period": "2026-03",
    "amount": "15000.00",
    "currency": "ARS",
    "provider": "mercadopago",
    "provider_payment_id": "mp-1",
    "status": "approved",
    "paid_at": "2026-03-10T11:05:00-03:00",
    "method": "transfer",
}


class TestPaymentsApi:
    @pytest.mark.asyncio
    async def test_ingest_then_replay(self, async_client, customer):
        first = await async_client.post("/api/v1/payments/ingest", json=PAYMENT)
        replay = await async_client.post("/api/v1/payments/ingest", json=PAYMENT)

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert replay.status_code == 200
        assert replay.json()["is_duplicate_technical"] is True

        fetched = await async_client.get("/api/v1/payments/mercadopago_mp-1")
        assert fetched.status_code == 200
        assert fetched.json()["duplicate_status"] == "none"

    @pytest.mark.asyncio
    async def test_unknown_customer_is_404(self, async_client, customer):
        response = await async_client.post(
            "/api/v1/payments/ingest", json={**PAYMENT, "customer_id": "ghost"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "UNKNOWN_CUSTOMER"
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_invalid_body_is_422(self, async_client):
        response = await async_client.post("/api/v1/payments/ingest", json={**PAYMENT, "amount": "-1"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestDuplicateCasesApi:
    @pytest.mark.asyncio
    async def test_review_and_resolve(self, async_client, customer):
        await async_client.post("/api/v1/payments/ingest", json=PAYMENT)
        second = await async_client.post(
            "/api/v1/payments/ingest",
            json={**PAYMENT, "provider_payment_id": "mp-2", "paid_at": "2026-03-10T11:09:00-03:00"},
        )
        case_id = second.json()["duplicate_case_id"]
        assert case_id

        listing = await async_client.get("/api/v1/duplicate-cases", params={"school_context_id": "school-1"})
        assert [item["id"] for item in listing.json()["items"]] == [case_id]

        detail = await async_client.get(f"/api/v1/duplicate-cases/{case_id}")
        assert [p["id"] for p in detail.json()["payments"]] == ["mercadopago_mp-1", "mercadopago_mp-2"]

        resolved = await async_client.post(
            f"/api/v1/duplicate-cases/{case_id}/resolve",
            json={"type": "invoice_one_credit_rest", "chosen_payment_ids": ["mercadopago_mp-1"]},
        )
        body = resolved.json()
        assert resolved.status_code == 200
        assert body["case"]["status"] == "resolved"
        assert body["case"]["resolution"]["resolved_by"] == "operator-1"
        assert body["invoice_order"]["status"] == "pending"
        assert body["credit_id"] is None

        again = await async_client.post(
            f"/api/v1/duplicate-cases/{case_id}/resolve", json={"type": "ignore_duplicates"}
        )
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "INVALID_CASE_STATE"

    @pytest.mark.asyncio
    async def test_resolution_without_choice_is_422(self, async_client):
        response = await async_client.post(
            "/api/v1/duplicate-cases/some-case/resolve", json={"type": "refund_one"}
        )

        assert response.status_code == 422


class TestInvoiceOrdersApi:
    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, async_client):
        body = {"customer_id": "player-1", "concept": "Cuota marzo", "period_key": "2026-03", "amount": "15000"}

        first = await async_client.post("/api/v1/invoice-orders", json=body)
        second = await async_client.post("/api/v1/invoice-orders", json={**body, "amount": "15000.00"})

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["id"] == second.json()["id"]

        listing = await async_client.get("/api/v1/invoice-orders", params={"status": "pending"})
        assert listing.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_retry_of_pending_order_is_conflict(self, async_client):
        created = await async_client.post(
            "/api/v1/invoice-orders", json={"customer_id": "player-1", "concept": "Cuota", "amount": "100"}
        )

        response = await async_client.post(f"/api/v1/invoice-orders/{created.json()['id']}/retry")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_missing_order_is_404(self, async_client):
        response = await async_client.get(f"/api/v1/invoice-orders/{'0' * 64}")

        assert response.status_code == 404


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, async_client):
        app.dependency_overrides.pop(get_current_operator)

        response = await async_client.get("/api/v1/duplicate-cases")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_valid_token_is_accepted(self, async_client):
        app.dependency_overrides.pop(get_current_operator)
        token = create_access_token({"sub": "operator-9", "email": "ops@example.com"})

        response = await async_client.get(
            "/api/v1/duplicate-cases", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        assert response.json() == {"items": []}


@pytest.mark.asyncio
async def test_health():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health")

    assert response.json() == {"status": "ok"}


class TestOperationsApi:
    @pytest.mark.asyncio
    async def test_issuer_worker_sweep(self, async_client):
        worker = MagicMock()
        worker.process_pending_orders = AsyncMock(
            return_value=WorkerRunResponse(processed=2, requeued=1)
        )
        app.dependency_overrides[get_issuer_worker] = lambda: worker

        response = await async_client.post("/api/v1/issuer-worker/process", params={"limit": 5})

        assert response.status_code == 200
        assert response.json() == {"processed": 2, "requeued": 1, "failed": 0, "skipped": 0}
        worker.process_pending_orders.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_issuer_worker_limit_is_capped(self, async_client):
        app.dependency_overrides[get_issuer_worker] = lambda: MagicMock()

        response = await async_client.post("/api/v1/issuer-worker/process", params={"limit": 500})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_afip_diagnostics(self, async_client):
        stack = MagicMock()
        stack.tickets.environment = "homo"
        stack.tickets.get_ticket = AsyncMock(
            return_value=AuthTicket(
                token="PD94bWwgdmVyc2lvbj0iMS4wIg", sign="secret", expiration_time=datetime(2026, 3, 11, tzinfo=UTC)
            )
        )
        stack.wire.get_last_voucher_number = AsyncMock(return_value=41)
        app.dependency_overrides[get_afip_stack] = lambda: stack

        auth = await async_client.get("/api/v1/afip/auth")
        last = await async_client.get(
            "/api/v1/afip/last-voucher", params={"sales_point": 3, "voucher_type": 6}
        )

        assert auth.json()["token_preview"] == "PD94bWwgdmVy..."
        assert "secret" not in auth.text
        assert last.json() == {"sales_point": 3, "voucher_type": 6, "last_voucher_number": 41}
        stack.wire.get_last_voucher_number.assert_awaited_once_with(3, 6)
