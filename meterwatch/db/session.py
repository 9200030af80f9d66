"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine with asyncpg driver for PostgreSQL.
Provides module-level engine and session factory singletons, plus an
async generator for FastAPI dependency injection.

CHANGELOG:
- 2026-10-18: Accept the URL from Settings; add dispose_engine
- 2026-10-18: Initial creation
"""

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Module-level singletons, initialized lazily via init_engine().
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_database_url(url: str | None = None) -> str:
    """Return *url* or DATABASE_URL from the environment.

    Raises:
        RuntimeError: If neither is set.
    """
    url = url or os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    return url


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine for PostgreSQL via asyncpg."""
    return create_async_engine(_get_database_url(url), echo=False, pool_pre_ping=True)


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    Args:
        engine: Optional async engine. If not provided, creates one from config.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def init_engine(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Initialize the module-level async engine and session factory.

    Call this at application startup (e.g., in a FastAPI lifespan event).
    Safe to call multiple times; subsequent calls are no-ops.

    Returns:
        async_sessionmaker: The module-level session factory.
    """
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None:
        async_engine = create_engine(url)
        async_session_factory = create_session_factory(async_engine)
    assert async_session_factory is not None
    return async_session_factory


async def dispose_engine() -> None:
    """Close all pooled connections and reset the singletons."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is not None:
        await async_engine.dispose()
    async_engine = None
    async_session_factory = None


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for FastAPI dependency injection.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    factory = init_engine()
    async with factory() as session:
        yield session
