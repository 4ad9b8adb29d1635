"""Database engine and session management.

A single async engine is created per process by ``init_database``. Each API
request, bot command, or webhook delivery runs inside one session whose
transaction is committed on success and rolled back on any exception, so a
multi-step operation is never observably half-applied.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from bytehub.shared.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ByteHub models."""
    pass


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, sharing one connection for in-memory SQLite."""
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


async def init_database(url: Optional[str] = None, create_tables: bool = False) -> AsyncEngine:
    """Initialize the process-wide engine and session factory.

    Args:
        url: Database URL, defaults to ``Settings.database_url``
        create_tables: Create missing tables from model metadata

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    settings = get_settings()
    _engine = create_engine_for_url(url or settings.database_url, echo=settings.database_echo)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)

    if create_tables:
        # Models must be imported so their tables are registered on Base
        import bytehub.web.models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")
    return _engine


async def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized; call init_database() first")
    return _session_factory


@asynccontextmanager
async def get_db_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session scope for code outside of FastAPI."""
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency providing a request-scoped session."""
    async with get_db_session_context() as session:
        yield session
