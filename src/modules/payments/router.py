"""Payment ingestion API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.modules.auth.dependencies import Operator, get_current_operator
from src.modules.payments.ingestion_service import PaymentIngestionService
from src.modules.payments.schemas import PaymentIngestRequest, PaymentIngestResult, PaymentResponse

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/ingest", response_model=PaymentIngestResult)
async def ingest_payment(
    body: PaymentIngestRequest,
    response: Response,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    """Record a provider payment. Replays answer 200 with ``created=false``."""
    result = await PaymentIngestionService(db).ingest(body)
    response.status_code = 201 if result.created else 200
    return result


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    payment = await PaymentIngestionService(db).get_payment(payment_id)
    return PaymentResponse.model_validate(payment)
