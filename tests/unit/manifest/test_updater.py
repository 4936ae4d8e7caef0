# tests/unit/manifest/test_updater.py — v1
"""Tests for manifest/updater.py — single-key updates with rebase on conflict."""

from __future__ import annotations

import asyncio

import pytest

from shipflow.config_repo.memory_store import InMemoryConfigStore
from shipflow.config_repo.models import ConfigSnapshot
from shipflow.core.errors import ConfigAuthError, PipelineError, RetryExhausted
from shipflow.core.models import ErrorKind, ImageArtifact
from shipflow.core.retry import RetryPolicy
from shipflow.manifest.updater import ManifestUpdater
from shipflow.manifest.values import get_value, load_values

FAST = RetryPolicy(max_attempts=5, base_delay_s=0.0, jitter=False)


class InterleavingStore(InMemoryConfigStore):
    """Store where another writer commits right after each of our reads.

    ``interleave`` edits are applied (one per read) between our read and
    our write, which is exactly the window optimistic concurrency guards.
    """

    def __init__(self, files: dict[str, str], interleave: list[tuple[str, str]]) -> None:
        super().__init__(files=files)
        self.interleave = list(interleave)

    async def read(self, file: str) -> ConfigSnapshot:
        snapshot = await super().read(file)
        if self.interleave:
            other_file, content = self.interleave.pop(0)
            await super().write(other_file, content, await self.head(), "concurrent edit")
        return snapshot


class YieldingStore(InMemoryConfigStore):
    """Store that yields to the event loop after every read."""

    async def read(self, file: str) -> ConfigSnapshot:
        snapshot = await super().read(file)
        await asyncio.sleep(0)
        return snapshot


def _artifact(tag: str = "abc123") -> ImageArtifact:
    return ImageArtifact(repository="myapp", tag=tag, digest="sha256:" + "b" * 64)


def _updater(store, values_file, **overrides) -> ManifestUpdater:
    kwargs = {"store": store, "file": values_file, "key": "image.tag", "retry_policy": FAST}
    kwargs.update(overrides)
    return ManifestUpdater(**kwargs)


async def _values(store, file: str) -> dict:
    return load_values((await store.read(file)).content)


class TestManifestUpdater:
    @pytest.mark.asyncio
    async def test_updates_exactly_one_key(self, config_store, values_file, trigger):
        before = await _values(config_store, values_file)
        result = await _updater(config_store, values_file).update(_artifact(), trigger)

        assert result.committed is True
        assert result.previous_value == "0ld7a9"
        assert result.record.value == "abc123"
        assert result.revision == await config_store.head()
        assert result.attempts == 1

        after = await _values(config_store, values_file)
        before["image"]["tag"] = "abc123"
        assert after == before

    @pytest.mark.asyncio
    async def test_commit_message(self, config_store, values_file, trigger):
        await _updater(config_store, values_file).update(_artifact(), trigger)
        latest = (await config_store.history(limit=1))[0]
        assert latest.message == "chore(deploy): myapp -> abc123 (revision abc123)"

    @pytest.mark.asyncio
    async def test_same_value_is_noop(self, config_store, values_file):
        updater = _updater(config_store, values_file)
        await updater.update(_artifact())
        head = await config_store.head()
        commits = config_store.commit_count

        result = await updater.update(_artifact())
        assert result.committed is False
        assert result.revision == head
        assert config_store.commit_count == commits

    @pytest.mark.asyncio
    async def test_numeric_yaml_value_compared_as_string(self, values_file):
        store = InMemoryConfigStore(files={values_file: "image:\n  tag: 123456\n"})
        result = await _updater(store, values_file).update(_artifact("123456"))
        assert result.committed is False
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_missing_file_created(self, values_file):
        store = InMemoryConfigStore()
        result = await _updater(store, values_file).update(_artifact())
        assert result.committed is True
        assert result.previous_value is None
        assert get_value(await _values(store, values_file), "image.tag") == "abc123"

    @pytest.mark.asyncio
    async def test_conflict_rebases_and_keeps_concurrent_change(self, values_file):
        store = InterleavingStore(
            files={values_file: "image:\n  tag: old\nreplicaCount: 1\n"},
            interleave=[(values_file, "image:\n  tag: old\nreplicaCount: 3\n")],
        )
        result = await _updater(store, values_file).update(_artifact())

        assert result.committed is True
        assert result.attempts == 2
        values = await _values(store, values_file)
        assert values == {"image": {"tag": "abc123"}, "replicaCount": 3}

        # initial import, concurrent edit, our commit on top of it
        commits = await store.history()
        assert len(commits) == 3
        assert commits[0].parent == commits[1].revision
        assert commits[1].message == "concurrent edit"

    @pytest.mark.asyncio
    async def test_concurrent_edit_to_other_file(self, values_file):
        store = InterleavingStore(
            files={values_file: "image:\n  tag: old\n"},
            interleave=[("charts/other/values.yaml", "x: 1\n")],
        )
        result = await _updater(store, values_file).update(_artifact())
        assert result.committed is True
        assert (await store.read("charts/other/values.yaml")).content == "x: 1\n"

    @pytest.mark.asyncio
    async def test_conflicts_exhaust_retry_budget(self, values_file):
        store = InterleavingStore(
            files={values_file: "image:\n  tag: old\n"},
            interleave=[("other.yaml", f"n: {i}\n") for i in range(10)],
        )
        updater = _updater(store, values_file, retry_policy=RetryPolicy(
            max_attempts=3, base_delay_s=0.0, jitter=False,
        ))
        with pytest.raises(RetryExhausted) as exc_info:
            await updater.update(_artifact())
        assert exc_info.value.kind is ErrorKind.CONFIG_WRITE_CONFLICT
        assert exc_info.value.attempts == 3
        assert get_value(await _values(store, values_file), "image.tag") == "old"

    @pytest.mark.asyncio
    async def test_rebase_finds_value_already_set(self, values_file):
        store = InterleavingStore(
            files={values_file: "image:\n  tag: old\n"},
            interleave=[(values_file, "image:\n  tag: abc123\n")],
        )
        result = await _updater(store, values_file).update(_artifact())
        assert result.committed is False
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_two_updaters_racing_on_one_file(self, values_file):
        store = YieldingStore(files={values_file: "image:\n  tag: old\nsidecar:\n  tag: old\n"})
        app = _updater(store, values_file, key="image.tag")
        sidecar = _updater(store, values_file, key="sidecar.tag")

        ra, rb = await asyncio.gather(
            app.update(_artifact("aaa111")), sidecar.update(_artifact("bbb222")),
        )

        assert ra.committed and rb.committed
        assert sorted([ra.attempts, rb.attempts]) == [1, 2]
        values = await _values(store, values_file)
        assert values == {"image": {"tag": "aaa111"}, "sidecar": {"tag": "bbb222"}}
        assert store.commit_count == 3

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self, values_file):
        store = InMemoryConfigStore(files={values_file: "image:\n  tag: old\n"}, read_only=True)
        with pytest.raises(ConfigAuthError):
            await _updater(store, values_file).update(_artifact())

    @pytest.mark.asyncio
    async def test_requires_pushed_artifact(self, config_store, values_file):
        with pytest.raises(PipelineError, match="pushed image"):
            await _updater(config_store, values_file).update(
                ImageArtifact(repository="myapp", tag="abc123", digest="")
            )
        assert config_store.commit_count == 1

    @pytest.mark.asyncio
    async def test_read_record(self, config_store, values_file):
        record = await _updater(config_store, values_file).read_record()
        assert record.value == "0ld7a9"
        assert record.revision == await config_store.head()
        assert record.path == f"{values_file}:image.tag"
