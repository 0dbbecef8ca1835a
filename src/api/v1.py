"""Centralized v1 API router — all module routers are included here."""

from fastapi import APIRouter

from src.modules.afip.router import router as afip_router
from src.modules.duplicates.router import router as duplicates_router
from src.modules.invoicing.router import router as invoice_orders_router
from src.modules.invoicing.router import worker_router as issuer_worker_router
from src.modules.payments.router import router as payments_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(payments_router)
v1_router.include_router(duplicates_router)
v1_router.include_router(invoice_orders_router)
v1_router.include_router(issuer_worker_router)
v1_router.include_router(afip_router)
