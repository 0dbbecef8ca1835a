"""Invoice order and issuer worker API routers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import get_db
from src.models.enums import InvoiceOrderStatus
from src.modules.auth.dependencies import Operator, get_current_operator
from src.modules.invoicing.schemas import (
    InvoiceOrderCreate,
    InvoiceOrderListResponse,
    InvoiceOrderResponse,
    WorkerRunResponse,
)
from src.modules.invoicing.service import InvoiceOrderService
from src.modules.invoicing.worker import IssuerWorker, get_issuer_worker

router = APIRouter(prefix="/invoice-orders", tags=["invoice-orders"])
worker_router = APIRouter(prefix="/issuer-worker", tags=["issuer-worker"])


# ---------------------------------------------------------------------------
# Invoice orders
# ---------------------------------------------------------------------------


@router.post("", response_model=InvoiceOrderResponse)
async def create_invoice_order(
    body: InvoiceOrderCreate,
    response: Response,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    """Create an order; identical content returns the existing order with 200."""
    order, created = await InvoiceOrderService(db).create_invoice_order(**body.model_dump())
    response.status_code = 201 if created else 200
    return InvoiceOrderResponse.model_validate(order)


@router.get("", response_model=InvoiceOrderListResponse)
async def list_invoice_orders(
    status: InvoiceOrderStatus | None = Query(None),
    customer_id: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    items, total = await InvoiceOrderService(db).list_orders(
        status=status, customer_id=customer_id, limit=limit, offset=offset
    )
    return InvoiceOrderListResponse(
        items=[InvoiceOrderResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=InvoiceOrderResponse)
async def get_invoice_order(
    order_id: str,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    order = await InvoiceOrderService(db).get_order(order_id)
    return InvoiceOrderResponse.model_validate(order)


@router.post("/{order_id}/retry", response_model=InvoiceOrderResponse)
async def retry_invoice_order(
    order_id: str,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    """Put a failed order back in the queue with a fresh retry budget."""
    order = await InvoiceOrderService(db).requeue_failed_order(order_id)
    return InvoiceOrderResponse.model_validate(order)


# ---------------------------------------------------------------------------
# Issuer worker
# ---------------------------------------------------------------------------


@worker_router.post("/process", response_model=WorkerRunResponse)
async def process_pending_orders(
    limit: int = Query(settings.issuer_worker_batch_size, ge=1, le=settings.issuer_worker_max_batch_size),
    _: Operator = Depends(get_current_operator),
    worker: IssuerWorker = Depends(get_issuer_worker),
):
    """Run one bounded sweep synchronously (the beat schedule does the same)."""
    return await worker.process_pending_orders(limit)
