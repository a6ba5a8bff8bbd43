"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session lifecycle. Request handlers, webhook
processing and each per-tenant sync pipeline open their own session through
``get_db()``; sessions are never shared across tenants.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import time

import structlog
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from storelens.config import get_settings
from storelens.database.models import Base

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str, echo: bool) -> dict:
    options = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # In-memory SQLite must keep a single connection alive
            options["poolclass"] = StaticPool
    else:
        # asyncpg pools connections itself
        options["poolclass"] = NullPool
    return options


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy emit BEGIN for SQLite connections.

    The sqlite3 driver defers BEGIN until the first DML statement, which
    turns a leading SAVEPOINT into the outer transaction. Per-record
    ``begin_nested()`` blocks rely on real savepoints.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with the per-dialect options applied."""
    engine = create_async_engine(url, **_engine_options(url, echo))
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(engine)
    return engine


async def init_database(create_tables: bool = False) -> AsyncEngine:
    """
    Initialize the database engine and session factory.

    Args:
        create_tables: Create missing tables from the model metadata
            (development and SQLite deployments)

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    url = settings.database.async_url

    _engine = create_engine_for(url, settings.database.echo)
    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database connection established",
            dialect=_engine.dialect.name,
            created_tables=create_tables,
        )
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    return _engine


async def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Commits when the block exits cleanly, rolls back on error.

    Example:
        async with get_db() as db:
            repo = TenantRepository(db, tenant_id)
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when get_db() called")
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Example:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db_dependency)):
            ...
    """
    async with get_db() as session:
        yield session


async def check_database_health() -> dict:
    """Check database connectivity and latency."""
    try:
        start = time.perf_counter()
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
