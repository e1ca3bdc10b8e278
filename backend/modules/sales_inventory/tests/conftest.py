# backend/modules/sales_inventory/tests/conftest.py

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from app.main import app
from core.database import Base, create_session_factory, get_db
from core.inventory_models import InventoryItem
from modules.sales_inventory.config import StockDeductionConfig
from modules.sales_inventory.routes.stock_deduction_routes import get_orchestrator
from modules.sales_inventory.services.deduction_executor import DeductionExecutor
from modules.sales_inventory.services.deduction_orchestrator import DeductionOrchestrator


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite per test; each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stock_deduction.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def persist(session_factory):
    """Save ORM objects in their own transaction and return them."""
    async def _persist(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects[0] if len(objects) == 1 else objects

    return _persist


@pytest.fixture
def load_item(session_factory):
    """Read an inventory item back through a fresh session."""
    async def _load(item_id: int) -> InventoryItem:
        async with session_factory() as session:
            return await session.get(InventoryItem, item_id)

    return _load


@pytest.fixture
def config():
    return StockDeductionConfig(
        BLOCK_ON_SHORTFALL=False,
        ABORT_ON_RESOLUTION_ERRORS=True,
        MAX_CONFLICT_RETRIES=60,
        MAX_LOCK_RETRIES=5,
        LOCK_RETRY_INITIAL_DELAY=0.01,
        DEFAULT_TIMEOUT_SECONDS=None,
        ENABLE_LOW_STOCK_WARNINGS=True,
    )


@pytest.fixture
def executor(session_factory, config):
    return DeductionExecutor(session_factory, config=config)


@pytest.fixture
def orchestrator(session_factory, config):
    return DeductionOrchestrator(session_factory, config=config)


@pytest_asyncio.fixture
async def client(session_factory, orchestrator):
    """HTTP client for the app, bound to the test database and orchestrator."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
