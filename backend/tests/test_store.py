"""
NotebookSaver Backend — Key-Value Store Tests
===============================================

What:  Both KeyValueStore implementations. The SQL store runs against a
       throwaway aiosqlite file so the real SQLAlchemy path is exercised.
"""

import pytest
import pytest_asyncio

from notebooksaver.database import (
    create_session_factory,
    create_store_engine,
    dispose_engine,
    init_models,
)
from notebooksaver.services.store import InMemoryKeyValueStore, SqlKeyValueStore


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine = create_store_engine(f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}")
    await init_models(engine)
    yield SqlKeyValueStore(create_session_factory(engine))
    await dispose_engine(engine)


class TestInMemoryKeyValueStore:
    """Tests for the dict-backed store."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self):
        store = InMemoryKeyValueStore()
        assert await store.get("k") is None
        await store.set("k", "v1")
        await store.set("k", "v2")
        assert await store.get("k") == "v2"
        await store.remove("k")
        await store.remove("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_initial_contents_are_copied(self):
        initial = {"a": "1"}
        store = InMemoryKeyValueStore(initial)
        await store.set("b", "2")
        assert initial == {"a": "1"}
        assert store.snapshot() == {"a": "1", "b": "2"}

    @pytest.mark.asyncio
    async def test_ping(self):
        assert await InMemoryKeyValueStore().ping() is True


class TestSqlKeyValueStore:
    """Tests for the SQLAlchemy-backed store."""

    @pytest.mark.asyncio
    async def test_missing_key(self, sql_store):
        assert await sql_store.get("absent") is None

    @pytest.mark.asyncio
    async def test_set_replaces_value(self, sql_store):
        await sql_store.set("pendingDrafts", "[]")
        await sql_store.set("pendingDrafts", '[{"text": "x"}]')
        assert await sql_store.get("pendingDrafts") == '[{"text": "x"}]'

    @pytest.mark.asyncio
    async def test_remove(self, sql_store):
        await sql_store.set("k", "v")
        await sql_store.remove("k")
        await sql_store.remove("never-there")
        assert await sql_store.get("k") is None

    @pytest.mark.asyncio
    async def test_large_and_unicode_values(self, sql_store):
        value = "ü" * 100_000
        await sql_store.set("big", value)
        assert await sql_store.get("big") == value

    @pytest.mark.asyncio
    async def test_values_survive_a_new_engine(self, tmp_path):
        """Durability across a restart: a second engine sees the committed value."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'restart.db'}"
        first = create_store_engine(url)
        await init_models(first)
        await SqlKeyValueStore(create_session_factory(first)).set("k", "kept")
        await dispose_engine(first)

        second = create_store_engine(url)
        try:
            assert await SqlKeyValueStore(create_session_factory(second)).get("k") == "kept"
        finally:
            await dispose_engine(second)

    @pytest.mark.asyncio
    async def test_ping(self, sql_store):
        assert await sql_store.ping() is True
