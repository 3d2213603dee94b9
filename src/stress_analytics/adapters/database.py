"""Async SQLAlchemy engine and session management.

``init_database`` is called once at startup (API lifespan or CLI). Routes
obtain a session through the ``get_db_session`` dependency, which commits on
success and rolls back on error.

Connectivity failures are re-raised as ``StorageUnavailableError`` so callers
can tell an outage apart from a bad row.
"""

import functools
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stress_analytics.errors import StorageUnavailableError
from stress_analytics.observability import get_logger
from stress_analytics.settings import Settings

logger = get_logger(__name__)

T = TypeVar("T")

STORAGE_ERRORS: tuple[type[Exception], ...] = (OperationalError, InterfaceError, OSError)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build an async engine for the configured database URL."""
    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
    )


def init_database(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Create the process-wide engine and session factory.

    Args:
        settings: Service settings carrying the database URL.

    Returns:
        The session factory, also stored for ``get_db_session``.
    """
    global _engine, _session_factory
    _engine = create_engine_from_settings(settings)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("Database initialised", echo=settings.database_echo)
    return _session_factory


async def close_database() -> None:
    """Dispose of the engine created by ``init_database``."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database is not initialised; call init_database() first")
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session scoped to one request.

    Yields:
        AsyncSession committed when the request succeeds.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def translate_storage_errors(
    method: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Re-raise connectivity failures from ``method`` as StorageUnavailableError."""

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await method(*args, **kwargs)
        except STORAGE_ERRORS as exc:
            logger.error("Storage unavailable", operation=method.__qualname__, error=str(exc))
            raise StorageUnavailableError(f"{method.__qualname__}: {exc}") from exc

    return wrapper


@translate_storage_errors
async def commit_session(session: AsyncSession) -> None:
    """Commit ``session``, reporting a lost connection as StorageUnavailableError."""
    await session.commit()
