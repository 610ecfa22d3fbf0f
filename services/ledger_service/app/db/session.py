from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from services.ledger_service.app.settings import ledger_settings


def build_engine(url: str | None = None) -> AsyncEngine:
    """Async engine for the ledger database; every unit of work opens its own session from it."""
    return create_async_engine(url or ledger_settings().async_db_url, echo=False, pool_pre_ping=True)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Committed rows stay readable after the unit of work returns them to the API layer
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async_engine = build_engine()
async_session_factory = build_session_factory(async_engine)
