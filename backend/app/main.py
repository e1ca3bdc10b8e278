import logging

from fastapi import FastAPI

from core.config import get_settings
from core.database import get_engine, init_models
from core.exceptions import register_exception_handlers

from modules.sales_inventory.exceptions.inventory_exceptions import (
    InventoryDeductionError,
)
from modules.sales_inventory.routes.stock_deduction_routes import (
    DEDUCTION_ERROR_STATUS,
    router as stock_deduction_router,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(
    title="Stock Deduction API",
    description="""
    Sale-to-stock deduction engine for multi-store food retail.

    * **Deduction** - Turn completed sales into stock mutations with an audit trail
    * **Preview** - Resolve recipes, addons and combos and check stock without mutating
    * **Reversal** - Compensate a sale's deductions
    * **Ledger** - Query deduction records by sale, store or inventory item

    Stock-mutating endpoints require an `X-Actor-Id` header.
    """,
    version="1.0.0",
)

register_exception_handlers(
    app, domain_errors={InventoryDeductionError: DEDUCTION_ERROR_STATUS}
)

app.include_router(stock_deduction_router)


@app.on_event("startup")
async def startup_event():
    """Create tables outside production; production schemas are managed externally"""
    if not settings.is_production:
        await init_models(get_engine())


@app.on_event("shutdown")
async def shutdown_event():
    await get_engine().dispose()


@app.get("/")
def read_root():
    return {"message": "Stock deduction backend is running"}
