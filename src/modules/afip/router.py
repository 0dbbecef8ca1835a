"""AFIP diagnostics: ticket status and last authorized voucher."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.config import settings
from src.modules.afip.factory import AfipStack, get_afip_stack
from src.modules.afip.schemas import LastVoucherResponse, TicketStatusResponse
from src.modules.auth.dependencies import Operator, get_current_operator

router = APIRouter(prefix="/afip", tags=["afip"])


@router.get("/auth", response_model=TicketStatusResponse)
async def get_auth_status(
    _: Operator = Depends(get_current_operator),
    stack: AfipStack = Depends(get_afip_stack),
):
    """Obtain (or reuse) the WSAA ticket. The sign is never returned."""
    ticket = await stack.tickets.get_ticket()
    return TicketStatusResponse(
        environment=stack.tickets.environment,
        expiration_time=ticket.expiration_time,
        token_preview=f"{ticket.token[:12]}...",
    )


@router.get("/last-voucher", response_model=LastVoucherResponse)
async def get_last_voucher(
    sales_point: int = Query(default=settings.afip_pto_vta, ge=1),
    voucher_type: int = Query(default=settings.afip_cbte_tipo, ge=1),
    _: Operator = Depends(get_current_operator),
    stack: AfipStack = Depends(get_afip_stack),
):
    number = await stack.wire.get_last_voucher_number(sales_point, voucher_type)
    return LastVoucherResponse(
        sales_point=sales_point, voucher_type=voucher_type, last_voucher_number=number
    )
