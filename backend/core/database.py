# backend/core/database.py

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings

Base = declarative_base()


@lru_cache()
def get_engine():
    """Create the async engine for the configured database URL."""
    settings = get_settings()
    database_url = settings.database_url

    engine_kwargs = {
        "echo": settings.log_sql_queries,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url.endswith(":memory:") or database_url.endswith("://"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine) -> sessionmaker:
    """Session factory producing independent AsyncSessions bound to engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return create_session_factory(get_engine())


async def get_db():
    async with get_session_factory()() as db:
        yield db


async def init_models(engine=None):
    """Create all tables (development and tests)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
