"""
NotebookSaver Backend — Database Engine Management
====================================================

What:  Async SQLAlchemy engine and session factory builders, the declarative
       Base, and schema bootstrap for the key-value store.
Why:   Centralizes all database connection logic in one place.
How:   The ServiceContainer calls create_store_engine() once at startup and
       hands the session factory to SqlKeyValueStore. Nothing here is created
       at import time, so tests can point the store at a throwaway file.

Architecture Decision:
    The store holds a handful of small keys (the pending hand-off queue and
    the model catalog cache), so the default backend is SQLite via aiosqlite.
    Any async SQLAlchemy URL works; server databases get a connection pool.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, which Alembic reads for migrations and
    init_models() uses for create_all.
    """
    pass


def create_store_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine for the key-value store.

    SQLite gets no pool sizing (aiosqlite serialises on one connection
    anyway); other backends get a small pre-pinged pool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to `engine`; objects stay usable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create any missing tables.

    When:  Startup, if settings.store_auto_create is on. Deployments that
           manage the schema with Alembic turn it off.
    """
    # Imported for its side effect of registering the table on Base.metadata
    from notebooksaver.models import kv_entry  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Key-value store schema ready")


async def dispose_engine(engine: Optional[AsyncEngine]) -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    if engine is not None:
        await engine.dispose()
