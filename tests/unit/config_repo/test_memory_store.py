# tests/unit/config_repo/test_memory_store.py — v1
"""Tests for config_repo/memory_store.py — optimistic-concurrency store."""

from __future__ import annotations

import pytest

from shipflow.config_repo.memory_store import InMemoryConfigStore
from shipflow.core.errors import ConfigAuthError, ConfigWriteConflict


class TestInMemoryConfigStore:
    @pytest.mark.asyncio
    async def test_empty_store(self):
        store = InMemoryConfigStore()
        snap = await store.read("values.yaml")
        assert snap.content is None
        assert snap.revision is None
        assert not snap.exists
        assert await store.head() is None
        assert await store.history() == []

    @pytest.mark.asyncio
    async def test_initial_files_committed(self):
        store = InMemoryConfigStore(files={"values.yaml": "a: 1\n"})
        snap = await store.read("values.yaml")
        assert snap.content == "a: 1\n"
        assert snap.revision == await store.head()
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_write_advances_head(self):
        store = InMemoryConfigStore(files={"values.yaml": "a: 1\n"})
        base = await store.head()
        rev = await store.write("values.yaml", "a: 2\n", base, "bump a")
        assert rev != base
        assert await store.head() == rev
        assert (await store.read("values.yaml")).content == "a: 2\n"

        commits = await store.history()
        assert [c.message for c in commits] == ["bump a", "initial import"]
        assert commits[0].parent == base
        assert commits[0].files == ["values.yaml"]

    @pytest.mark.asyncio
    async def test_write_into_empty_store(self):
        store = InMemoryConfigStore()
        rev = await store.write("values.yaml", "a: 1\n", None, "create")
        assert await store.head() == rev

    @pytest.mark.asyncio
    async def test_stale_revision_conflicts(self):
        store = InMemoryConfigStore(files={"values.yaml": "a: 1\n"})
        base = await store.head()
        head = await store.write("values.yaml", "a: 2\n", base, "first")

        with pytest.raises(ConfigWriteConflict) as exc_info:
            await store.write("values.yaml", "a: 3\n", base, "second")
        assert exc_info.value.expected == base
        assert exc_info.value.actual == head
        assert (await store.read("values.yaml")).content == "a: 2\n"
        assert store.commit_count == 2

    @pytest.mark.asyncio
    async def test_other_files_preserved(self):
        store = InMemoryConfigStore(files={"a.yaml": "a\n", "b.yaml": "b\n"})
        await store.write("a.yaml", "a2\n", await store.head(), "edit a")
        assert (await store.read("b.yaml")).content == "b\n"

    @pytest.mark.asyncio
    async def test_read_only(self):
        store = InMemoryConfigStore(files={"values.yaml": "a: 1\n"}, read_only=True)
        with pytest.raises(ConfigAuthError):
            await store.write("values.yaml", "a: 2\n", await store.head(), "denied")
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_history_limit(self):
        store = InMemoryConfigStore(files={"v": "0"})
        for i in range(1, 5):
            await store.write("v", str(i), await store.head(), f"commit {i}")
        commits = await store.history(limit=2)
        assert [c.message for c in commits] == ["commit 4", "commit 3"]
