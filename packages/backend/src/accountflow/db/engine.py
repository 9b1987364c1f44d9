"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The engine is process-wide and created once by the app lifespan before
the listener takes traffic. Until init_engine() has run, get_db()
answers 503 instead of crashing, so a request that races startup gets
a retryable error.
"""

from typing import AsyncIterator, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from accountflow.config import settings
from accountflow.db.models import Base

logger = structlog.get_logger()

# Global engine + session factory (initialized in lifespan)
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_engine(
    database_url: Optional[str] = None,
    create_schema: bool = False,
) -> AsyncEngine:
    """Create the connection pool and verify the store is reachable."""
    global _engine, _session_factory
    url = database_url or settings.database_url

    # Pool sizing only applies to server databases; SQLite uses its own pool.
    options: dict = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=15, pool_pre_ping=True)

    engine = create_async_engine(url, **options)
    async with engine.begin() as conn:
        if create_schema:
            await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))

    _engine = engine
    _session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info("store.ready", dialect=engine.dialect.name, schema_created=create_schema)
    return engine


async def close_engine() -> None:
    """Dispose the connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def is_ready() -> bool:
    return _session_factory is not None


def get_engine() -> AsyncEngine:
    """Get the engine (must be initialized first)."""
    if _engine is None:
        raise RuntimeError("Profile store not initialized. Call init_engine() first.")
    return _engine


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    if _session_factory is None:
        raise HTTPException(status_code=503, detail="Profile store is starting up")
    async with _session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
