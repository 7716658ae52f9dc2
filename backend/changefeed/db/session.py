"""
Async database session management using SQLAlchemy 2.0.
"""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from changefeed.core.config import get_settings


@lru_cache
def get_async_engine() -> AsyncEngine:
    """
    Get the cached async engine for the configured database.

    Pool sizing only applies to server databases; SQLite URLs (used in
    local development) keep SQLAlchemy's default pool.
    """
    settings = get_settings()
    url = settings.async_database_url

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.app_debug)

    return create_async_engine(
        url,
        echo=settings.app_debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the cached session factory for the configured database."""
    return create_session_maker(get_async_engine())


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an async database session.

    Usage:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
