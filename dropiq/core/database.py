"""Async database engine and session management.

Provides an async SQLAlchemy engine, session factory, and simple helpers for
initializing the schema (for dev) and checking connectivity. This module does
not run on import; call its functions explicitly from startup hooks.
"""
from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from dropiq.core.config import DATABASE_URL, get_enable_db
from dropiq.models.database import Base

logger = logging.getLogger(__name__)

# Async engine/session globals; initialize on app startup to bind to the running loop
engine = None  # type: Optional[object]
SessionLocal = None  # will be set to async_sessionmaker when started
_DB_ENABLED = False

# Detect greenlet availability; SQLAlchemy's async layer relies on it
try:  # pragma: no cover - environment dependent
    import greenlet  # type: ignore  # noqa: F401
    _GREENLET_OK = True
except ImportError:  # pragma: no cover
    _GREENLET_OK = False


def is_db_enabled() -> bool:
    """Return True if the async DB is usable in this process."""
    return bool(_DB_ENABLED and engine is not None and SessionLocal is not None)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency-style session generator.

    Every DROPIQ route persists through the database, so a disabled DB
    surfaces as 503 rather than an in-memory fallback.
    """
    if not is_db_enabled():
        raise HTTPException(status_code=503, detail="Database unavailable")
    async with SessionLocal() as session:  # type: ignore[misc]
        yield session


def _engine_kwargs_for(url: str) -> dict:
    """Construct engine kwargs appropriate for a given database URL."""
    from dropiq.core.config import (
        DB_ECHO,
        DB_POOL_PRE_PING,
        DB_POOL_SIZE,
        DB_MAX_OVERFLOW,
        DB_POOL_TIMEOUT,
        DB_POOL_RECYCLE,
    )
    engine_kwargs = {
        "echo": DB_ECHO,
        "pool_pre_ping": DB_POOL_PRE_PING,
    }
    if str(url).startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update({
            "pool_size": DB_POOL_SIZE,
            "max_overflow": DB_MAX_OVERFLOW,
            "pool_timeout": DB_POOL_TIMEOUT,
            "pool_recycle": DB_POOL_RECYCLE,
        })
    return engine_kwargs


async def init_db() -> None:
    """Create the schema using metadata.create_all."""
    if not is_db_enabled():
        logger.warning("init_db called but database is disabled")
        return
    async with engine.begin() as conn:  # type: ignore[union-attr]
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured via metadata.create_all")


async def check_database() -> bool:
    """Perform a simple health check against the database connection."""
    if not is_db_enabled():
        return False
    try:
        async with engine.connect() as conn:  # type: ignore[union-attr]
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        return False


async def start_db() -> None:
    """Initialize the async engine/sessionmaker within the current event loop.

    Safe to call multiple times; a no-op if already started.
    """
    global engine, SessionLocal, _DB_ENABLED
    if not get_enable_db():
        logger.warning("ENABLE_DB is false; database layer will remain disabled")
        _DB_ENABLED = False
        return
    if not _GREENLET_OK:
        logger.warning("greenlet not available; database layer will remain disabled")
        _DB_ENABLED = False
        return
    if engine is not None and SessionLocal is not None:
        _DB_ENABLED = True
        return
    engine = create_async_engine(DATABASE_URL, **_engine_kwargs_for(DATABASE_URL))
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    _DB_ENABLED = True
    logger.info("db_started", extra={"dialect": engine.dialect.name})


async def shutdown_db() -> None:
    """Dispose the async engine within the running event loop."""
    global engine, SessionLocal, _DB_ENABLED
    try:
        if engine is not None:
            await engine.dispose()  # type: ignore[union-attr]
    except Exception as exc:
        # Never break shutdown due to DB cleanup issues
        logger.warning("Error disposing DB engine: %s", exc)
    finally:
        engine = None
        SessionLocal = None
        _DB_ENABLED = False
