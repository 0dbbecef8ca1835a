"""Duplicate case API router: review and resolve suspected double payments."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.modules.auth.dependencies import Operator, get_current_operator
from src.modules.duplicates.constants import DEFAULT_OPEN_CASES_LIMIT
from src.modules.duplicates.schemas import (
    DuplicateCaseDetailResponse,
    DuplicateCaseListResponse,
    DuplicateCaseResponse,
    ResolutionResponse,
    ResolveCaseRequest,
)
from src.modules.duplicates.service import DuplicateCaseService
from src.modules.invoicing.schemas import InvoiceOrderResponse
from src.modules.payments.schemas import PaymentResponse

router = APIRouter(prefix="/duplicate-cases", tags=["duplicate-cases"])


@router.get("", response_model=DuplicateCaseListResponse)
async def list_open_cases(
    school_context_id: str | None = Query(None),
    limit: int = Query(DEFAULT_OPEN_CASES_LIMIT, ge=1, le=200),
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    cases = await DuplicateCaseService(db).list_open_cases(school_context_id, limit)
    return DuplicateCaseListResponse(
        items=[DuplicateCaseResponse.model_validate(case) for case in cases]
    )


@router.get("/{case_id}", response_model=DuplicateCaseDetailResponse)
async def get_case_detail(
    case_id: str,
    _: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    svc = DuplicateCaseService(db)
    case = await svc.get_case(case_id)
    payments = await svc.get_case_payments(case)
    detail = DuplicateCaseDetailResponse.model_validate(case)
    detail.payments = [PaymentResponse.model_validate(payment) for payment in payments]
    return detail


@router.post("/{case_id}/resolve", response_model=ResolutionResponse)
async def resolve_case(
    case_id: str,
    body: ResolveCaseRequest,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    outcome = await DuplicateCaseService(db).resolve(
        case_id,
        resolution_type=body.type,
        chosen_payment_ids=body.chosen_payment_ids,
        notes=body.notes,
        resolved_by=operator.id,
    )
    return ResolutionResponse(
        case=DuplicateCaseResponse.model_validate(outcome.case),
        invoice_order=(
            InvoiceOrderResponse.model_validate(outcome.invoice_order)
            if outcome.invoice_order
            else None
        ),
        credit_id=str(outcome.credit.id) if outcome.credit else None,
    )
