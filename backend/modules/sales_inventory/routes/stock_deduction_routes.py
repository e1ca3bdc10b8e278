# backend/modules/sales_inventory/routes/stock_deduction_routes.py

from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, get_session_factory
from core.exceptions import AuthenticationError, ConflictError, ValidationError

from ..schemas.deduction_schemas import (
    DeductionOutcome,
    LedgerEntryResponse,
    ReversalOutcome,
    ReversalRequest,
    SaleDeductionRequest,
    SalePreview,
    SalePreviewRequest,
)
from ..services.audit_ledger import AuditLedger
from ..services.deduction_orchestrator import DeductionOrchestrator


router = APIRouter(prefix="/stock-deductions", tags=["Stock Deductions"])

# HTTP status for each InventoryDeductionError code that escapes a route
DEDUCTION_ERROR_STATUS: Dict[str, int] = {
    "SALE_DEDUCTION_FAILED": status.HTTP_409_CONFLICT,
    "AUTHENTICATION_MISSING": status.HTTP_401_UNAUTHORIZED,
    "NO_RECIPE_FOUND": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "NO_INVENTORY_MAPPING": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "COMBINATION_EXPANSION_FAILED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "INSUFFICIENT_STOCK": status.HTTP_409_CONFLICT,
    "CONCURRENT_MODIFICATION": status.HTTP_409_CONFLICT,
    "LEDGER_IMMUTABLE": status.HTTP_409_CONFLICT,
    "TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
}


@lru_cache()
def get_orchestrator() -> DeductionOrchestrator:
    """Process-wide orchestrator so per-item locks are shared between requests"""
    return DeductionOrchestrator(get_session_factory())


async def get_actor_id(
    x_actor_id: Optional[int] = Header(None, alias="X-Actor-Id")
) -> int:
    if x_actor_id is None:
        raise AuthenticationError(
            "X-Actor-Id header is required to mutate stock", "AUTHENTICATION_MISSING"
        )
    return x_actor_id


@router.post("/sales/{sale_ref}", response_model=DeductionOutcome)
async def deduct_sale_stock(
    sale_ref: str,
    request: SaleDeductionRequest,
    actor_id: int = Depends(get_actor_id),
    orchestrator: DeductionOrchestrator = Depends(get_orchestrator),
):
    """
    Deduct stock for a completed sale.

    A FAILED sale surfaces as SaleDeductionFailedError, answered 409 with the
    full outcome; the sale must then not be marked complete (or must be
    reversed).
    """
    return await orchestrator.process_sale(
        sale_ref,
        actor_id,
        request.store_id,
        request.items,
        timeout_seconds=request.timeout_seconds,
    )


@router.post("/sales/{sale_ref}/preview", response_model=SalePreview)
async def preview_sale_stock(
    sale_ref: str,
    request: SalePreviewRequest,
    orchestrator: DeductionOrchestrator = Depends(get_orchestrator),
):
    """Show what a sale would deduct and whether stock covers it; changes nothing"""
    return await orchestrator.preview_sale(sale_ref, request.store_id, request.items)


@router.post("/sales/{sale_ref}/reversal", response_model=ReversalOutcome)
async def reverse_sale_stock(
    sale_ref: str,
    request: ReversalRequest,
    actor_id: int = Depends(get_actor_id),
    orchestrator: DeductionOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.reverse_sale(sale_ref, actor_id, request.reason)
    if not outcome.success:
        raise ConflictError(
            detail=outcome.model_dump(mode="json"), error_code="REVERSAL_INCOMPLETE"
        )
    return outcome


@router.get("/ledger", response_model=List[LedgerEntryResponse])
async def get_ledger_entries(
    sale_ref: Optional[str] = Query(None),
    store_id: Optional[int] = Query(None),
    inventory_item_id: Optional[int] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Ledger entries by sale, by inventory item, or by store within a time window"""
    ledger = AuditLedger()

    if sale_ref is not None:
        records = await ledger.get_records_for_sale(db, sale_ref)
    elif inventory_item_id is not None:
        records = await ledger.get_records_for_item(db, inventory_item_id)
    elif store_id is not None:
        records = await ledger.get_records_for_store(db, store_id, start, end)
    else:
        raise ValidationError(
            "One of sale_ref, store_id or inventory_item_id is required"
        )

    return records
