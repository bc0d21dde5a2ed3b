"""
NotebookSaver Backend — Key-Value Store
=========================================

What:  The single persistence seam: async get / set / remove of string values.
Why:   The hand-off queue and the model catalog only need "read the whole
       value, write the whole value". Putting that behind one small interface
       lets both be tested against an in-memory dict and run against SQL in
       production.
Who:   Injected into DraftHandoffQueue and ModelCatalogService by the
       ServiceContainer.

Implementations:
    InMemoryKeyValueStore  — process-local dict; tests and ephemeral runs
    SqlKeyValueStore       — async SQLAlchemy, one row per key in kv_entries
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notebooksaver.models.kv_entry import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract string key-value store.

    Every write replaces the value for its key in one step, so readers see
    either the old value or the new one, never a mix.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete `key`. Removing an absent key is not an error."""

    async def ping(self) -> bool:
        """Health probe; in-process stores are always reachable."""
        return True


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Contents die with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents (tests use this to inspect state)."""
        return dict(self._data)


class SqlKeyValueStore(KeyValueStore):
    """
    Store backed by the `kv_entries` table.

    How:   Each operation opens its own session and commits before returning,
           so a value is durable once `set` returns. On error the session
           rolls back and the exception propagates to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            try:
                await session.merge(
                    KeyValueEntry(
                        key=key,
                        value=value,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.debug("Stored key '%s' (%d chars)", key, len(value))

    async def remove(self, key: str) -> None:
        async with self._session_factory() as session:
            try:
                await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.debug("Removed key '%s'", key)

    async def ping(self) -> bool:
        """Run a trivial query; False (with a warning) when the database is unreachable."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Key-value store health check failed: %s", e)
            return False
