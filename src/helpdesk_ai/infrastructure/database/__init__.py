"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations. Tests
point ``database_url`` at ``sqlite+aiosqlite`` instead.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from helpdesk_ai.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def utcnow() -> datetime:
    """Timezone-aware now, used as column default."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory handed to repositories."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.

    Args:
        database_url: Override for ``settings.database_url``

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    _engine = create_async_engine(url, **engine_kwargs)

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    Commits on success, rolls back on any exception.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(select(TicketModel))

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """
    Create all database tables.

    Imports every model module so their tables are registered on ``Base``.
    """
    from helpdesk_ai.knowledge.infrastructure import models as _knowledge  # noqa: F401
    from helpdesk_ai.tickets.infrastructure import models as _tickets  # noqa: F401
    from helpdesk_ai.suggestions.infrastructure import models as _suggestions  # noqa: F401
    from helpdesk_ai.shared.infrastructure import audit as _audit  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
