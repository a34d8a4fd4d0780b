"""
Async database engine and session factories.

The application shares one lazily-built engine (get_engine / get_async_session).
Tests and scripts that need a different database build their own with
build_engine() and build_session_factory().
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create an async engine.

    Args:
        database_url: SQLAlchemy URL (default: settings.DATABASE_URL)
        echo: Log SQL statements (default: settings.DATABASE_ECHO)
    """
    settings = get_settings()
    url = database_url or settings.DATABASE_URL
    engine = create_async_engine(
        url,
        echo=settings.DATABASE_ECHO if echo is None else echo,
        pool_pre_ping=not url.startswith("sqlite"),
    )
    logger.debug(f"Created async engine for {engine.url.get_backend_name()}")
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to engine; objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache
def get_engine() -> AsyncEngine:
    return build_engine()


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return build_session_factory(get_engine())


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Yield a session from the shared factory.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(select(Guest))
    """
    async with get_session_factory()() as session:
        yield session


async def dispose_engine() -> None:
    """Dispose the shared engine (application shutdown)."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        get_session_factory.cache_clear()
        get_engine.cache_clear()
        logger.info("Database engine disposed")
