"""
SQLite / PostgreSQL async engine configuration for the SQL draft store.

Optimized for:
- Concurrent readers with WAL mode
- Async operations via aiosqlite
- Safe concurrency with busy_timeout
"""

import logging
from pathlib import Path
from sqlalchemy import event, make_url, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from trailkeeper.core.db.base import Base

logger = logging.getLogger(__name__)


def _get_engine_options(database_url: str) -> dict:
    """
    Get engine options based on database type.
    SQLite requires special handling for async and concurrency.
    """
    options = {"echo": False}

    if database_url.startswith("sqlite"):
        # In-memory databases must share one connection or each session
        # would see its own empty database
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["poolclass"] = NullPool

    return options


def _configure_sqlite_connection(dbapi_connection, connection_record):
    """
    Configure SQLite connection with settings for concurrent access.
    Called on every new connection to the database.

    Settings:
    - WAL mode: readers don't block the writer
    - busy_timeout: wait up to 30s for locks instead of failing immediately
    - synchronous=NORMAL: safe with WAL and faster than FULL
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def create_engine_for(database_url: str) -> AsyncEngine:
    """Create an async engine, registering SQLite pragmas where relevant."""
    if database_url.startswith("sqlite"):
        _ensure_sqlite_directory(database_url)

    engine = create_async_engine(database_url, **_get_engine_options(database_url))

    if database_url.startswith("sqlite"):
        # For aiosqlite, pragmas go through the sync_engine's pool events
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            _configure_sqlite_connection(dbapi_connection, connection_record)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,  # Manual control over flushing
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create missing tables. Production deployments run Alembic instead;
    this serves tests and single-file SQLite setups.
    """
    # Registers DraftTrailRow on Base.metadata
    from trailkeeper.modules.draft_trails import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def check_database_connection(engine: AsyncEngine) -> bool:
    """
    Verify database connection is working.
    Useful for health checks and startup validation.
    """
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception:
        logger.exception("Database connection check failed")
        return False
