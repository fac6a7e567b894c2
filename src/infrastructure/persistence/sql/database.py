"""
Database Engine and Session Factory

Lazily created SQLAlchemy asyncio engine (asyncpg driver) shared by the SQL
repositories.

Responsibility:
    - Normalize DATABASE_URL to the asyncpg dialect
    - Create the engine and session factory once per process
    - Translate driver errors into DatabaseError with the retryable flag

Business Rules:
    - SQLSTATE 40001 (serialization_failure) and 40P01 (deadlock_detected)
      are retryable
    - Lost connections and connect failures are retryable
    - Everything else (constraint violations, bad SQL) is permanent
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.shared.exceptions import DatabaseError

# Configure logger for this module
logger = logging.getLogger(__name__)

RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def database_url(raw: Optional[str] = None) -> Optional[str]:
    """Return DATABASE_URL rewritten for the asyncpg driver, or None if unset."""
    url = raw if raw is not None else os.getenv("DATABASE_URL")
    if not url:
        return None
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return url.replace(prefix, "postgresql+asyncpg://", 1)
    return url


def get_engine(url: Optional[str] = None) -> AsyncEngine:
    """
    Get the process-wide async engine.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    global _engine
    if _engine is None:
        resolved = database_url(url)
        if not resolved:
            raise RuntimeError("Database connection is not configured (DATABASE_URL is missing).")
        logger.info("Creating database engine")
        _engine = create_async_engine(resolved, pool_pre_ping=True, future=True)
    return _engine


def get_session_factory(url: Optional[str] = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(url), expire_on_commit=False, class_=AsyncSession
        )
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the engine on shutdown (idempotent)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


def to_database_error(error: Exception, operation: str) -> DatabaseError:
    """Classify a SQLAlchemy / driver error."""
    sqlstate = None
    if isinstance(error, DBAPIError) and error.orig is not None:
        sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)

    retryable = (
        sqlstate in RETRYABLE_SQLSTATES
        or isinstance(error, (OperationalError, OSError))
        or (isinstance(error, DBAPIError) and error.connection_invalidated)
    )
    return DatabaseError(
        f"Database error during {operation}: {error}",
        retryable=retryable,
        code=sqlstate or type(error).__name__,
    )


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession], operation: str
) -> AsyncIterator[AsyncSession]:
    """
    Open a session with a transaction; commit on success, roll back on error.

    Raises:
        DatabaseError: Driver or SQLAlchemy failure, classified by to_database_error
    """
    try:
        async with session_factory() as session:
            async with session.begin():
                yield session
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database {operation} failed: {e}")
        raise to_database_error(e, operation) from e
