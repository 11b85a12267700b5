"""
Audit Database
==============
Async engine and session factory helpers for the SQL audit store.
"""

from typing import Any, AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
import structlog

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for audit tables."""
    pass


def create_audit_engine(database_url: str, echo: bool = False, **engine_kwargs: Any) -> AsyncEngine:
    """
    Create the async engine backing the audit store.

    Args:
        database_url: Async connection string (postgresql+asyncpg://..., sqlite+aiosqlite://...)
        echo: Log SQL statements
        **engine_kwargs: Passed through to SQLAlchemy (pool_size, max_overflow, ...)
    """
    engine_kwargs.setdefault("pool_pre_ping", True)
    engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
    logger.info("audit_engine_initialized", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_audit_schema(engine: AsyncEngine) -> None:
    """Create audit tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close the engine. Call during application shutdown."""
    await engine.dispose()
    logger.info("audit_engine_closed")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope.

    Commits on success and rolls back on exception.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
