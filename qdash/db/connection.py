"""Engine and session lifecycle for QDash.

One async engine per process, created on first use from ``DATABASE_URL``.
SQLite URLs (development and tests) get foreign-key enforcement so upload
batch deletes cascade; every other backend gets a pre-pinged pool.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from qdash.config import DBConfig, get_config
from qdash.db.models import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Issue ``PRAGMA foreign_keys=ON`` on every new SQLite connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _foreign_keys_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(db: DBConfig) -> AsyncEngine:
    """Create an engine for ``db`` without caching it."""
    options: dict[str, Any] = {"echo": db.echo}
    if not _is_sqlite(db.url):
        options.update(
            pool_size=db.pool_size,
            max_overflow=db.pool_max_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    engine = create_async_engine(db.url, **options)
    if _is_sqlite(db.url):
        enable_sqlite_foreign_keys(engine)
    return engine


def get_engine() -> AsyncEngine:
    """Process-wide engine, built from ``get_config().db`` on first call.

    Raises:
        KeyError: If DATABASE_URL is not configured
    """
    global _engine
    if _engine is None:
        _engine = build_engine(get_config().db)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # Upload results are read after commit, so keep attributes loaded
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session scoped to one unit of work.

    Commits when the block exits cleanly and rolls back when it raises.
    Store-level code commits explicitly as well; the final commit is then
    a no-op.
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(drop: bool = False) -> None:
    """Create every QDash table, optionally dropping them first."""
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ready ({len(Base.metadata.tables)} tables, drop={drop})")


async def close_db() -> None:
    """Dispose the engine; the next ``get_engine()`` call builds a new one."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
