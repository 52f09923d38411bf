"""
SQLAlchemy async database client for the class lifecycle scheduler.

Provides async connection management using SQLAlchemy Core with asyncpg.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .errors import TransientStoreError, is_serialization_failure
from .tables import metadata  # noqa: F401 - exported for Alembic

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Module-level engine (created on first use)
_engine: AsyncEngine | None = None

SERIALIZABLE = "SERIALIZABLE"


def _get_database_url() -> str:
    """
    Construct async database URL from environment variables.

    postgresql:// URLs are rewritten to postgresql+asyncpg://. Any other
    async SQLAlchemy URL (e.g. sqlite+aiosqlite:// in tests) is used as is.
    """
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set.")

    # Convert postgresql:// to postgresql+asyncpg://
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return database_url


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine singleton."""
    global _engine
    if _engine is None:
        database_url = _get_database_url()
        pool_options = {}
        if database_url.startswith("postgresql"):
            pool_options = {
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
                "pool_recycle": 1800,  # Recycle connections every 30 minutes
            }
        _engine = create_async_engine(
            database_url,
            echo=os.environ.get("SQL_ECHO", "").lower() == "true",
            **pool_options,
        )
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """
    Get an async database connection from the pool.

    Usage:
        async with get_connection() as conn:
            result = await conn.execute(select(schedules))
            row = result.mappings().first()
    """
    engine = get_engine()
    async with engine.connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncGenerator[AsyncConnection, None]:
    """
    Get an async database connection with automatic transaction management.
    Commits on success, rolls back on exception.

    Usage:
        async with get_transaction() as conn:
            await conn.execute(insert(bookings).values(...))
            # Auto-commits if no exception
    """
    engine = get_engine()
    async with engine.begin() as conn:
        yield conn


async def run_in_transaction(
    fn: Callable[[AsyncConnection], Awaitable[T]],
    isolation_level: str = SERIALIZABLE,
    timeout: float | None = 30.0,
) -> T:
    """
    Run fn(conn) inside one transaction at the given isolation level.

    Commits when fn returns, rolls back when it raises or runs past the
    timeout. Serialization conflicts and timeouts are re-raised as
    TransientStoreError so callers can retry them; anything else propagates
    unchanged.

    Args:
        fn: Async callable receiving the transaction's connection
        isolation_level: e.g. "SERIALIZABLE", "REPEATABLE READ"
        timeout: Seconds before the transaction is abandoned (None = no limit)
    """
    engine = get_engine().execution_options(isolation_level=isolation_level)
    try:
        async with engine.begin() as conn:
            return await asyncio.wait_for(fn(conn), timeout)
    except asyncio.TimeoutError as e:
        raise TransientStoreError(f"Transaction exceeded {timeout}s budget") from e
    except DBAPIError as e:
        if is_serialization_failure(e):
            raise TransientStoreError(f"Serialization conflict: {e.orig}") from e
        raise


async def close_engine() -> None:
    """Close the engine and all connections. Call on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    """Check if database credentials are configured."""
    return bool(os.environ.get("DATABASE_URL"))


def get_sync_database_url() -> str:
    """
    Get synchronous database URL for Alembic migrations.

    Alembic runs migrations synchronously, so we need a psycopg2 URL.
    """
    database_url = os.environ.get("DATABASE_URL", "")

    # Use psycopg2 driver for sync operations
    if "postgresql+asyncpg://" in database_url:
        return database_url.replace("postgresql+asyncpg://", "postgresql://")
    if database_url.startswith("postgresql://"):
        return database_url

    raise ValueError("DATABASE_URL must be set for migrations")
