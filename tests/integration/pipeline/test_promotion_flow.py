# tests/integration/pipeline/test_promotion_flow.py — v1
"""End-to-end promotion: build/test → publish → manifest update → reconcile.

Uses in-memory registry, config store and run store, a scripted command
executor and a scripted reconciliation agent that only syncs once the
config repository head moves.
"""

from __future__ import annotations

import pytest

from shipflow.api.facade import build_runner, promote
from shipflow.build.runner import CommandResult
from shipflow.core.models import (
    ErrorKind,
    ReconciliationStatus,
    RunStatus,
    StageName,
    StageStatus,
    SyncState,
    TriggerEvent,
)
from shipflow.manifest.values import get_value, load_values
from shipflow.reconcile.base_agent import BaseReconciliationAgent


class FollowingAgent(BaseReconciliationAgent):
    """Walks out_of_sync → progressing → synced toward the latest config head."""

    def __init__(self, config_store, seen_revision: str | None) -> None:
        self._store = config_store
        self._synced = seen_revision
        self._progressing = False

    async def get_status(self, application: str) -> ReconciliationStatus:
        head = await self._store.head()
        if head == self._synced:
            return ReconciliationStatus(
                application=application, state=SyncState.SYNCED, last_sync_revision=head,
            )
        if not self._progressing:
            self._progressing = True
            return ReconciliationStatus(
                application=application, state=SyncState.OUT_OF_SYNC,
                last_sync_revision=self._synced,
            )
        self._synced = head
        self._progressing = False
        return ReconciliationStatus(
            application=application, state=SyncState.PROGRESSING,
            last_sync_revision=self._synced,
        )


@pytest.fixture
def flow_settings(settings):
    return settings.model_copy(update={
        "reconcile_poll_interval_s": 0.0,
        "reconcile_timeout_s": 5.0,
    })


@pytest.fixture
def runner(flow_settings, registry, config_store, run_store, executor):
    return build_runner(
        flow_settings, registry=registry, config_store=config_store,
        run_store=run_store, executor=executor,
    )


class TestPromotionFlow:
    @pytest.mark.asyncio
    async def test_revision_reaches_runtime(
        self, flow_settings, runner, registry, config_store, run_store, source_tree, trigger,
        values_file,
    ):
        agent = FollowingAgent(config_store, await config_store.head())
        result = await promote(trigger, flow_settings, runner=runner, agent=agent)
        run = result.run

        # pipeline
        assert run.status is RunStatus.SUCCEEDED
        assert [s.stage for s in run.stages] == [
            StageName.BUILD_TEST, StageName.PUBLISH, StageName.UPDATE_MANIFEST,
        ]
        assert all(s.status is StageStatus.SUCCEEDED for s in run.stages)

        # registry
        assert run.image.reference == "myapp:abc123"
        assert await registry.get_digest("myapp", "abc123") == run.image.digest

        # desired state
        values = load_values((await config_store.read(values_file)).content)
        assert get_value(values, "image.tag") == "abc123"
        assert get_value(values, "replicaCount") == 2
        assert run.config_revision == await config_store.head()

        # runtime
        assert result.reconciliation.converged
        assert result.reconciliation.transitions == [
            SyncState.OUT_OF_SYNC, SyncState.PROGRESSING, SyncState.SYNCED,
        ]

        # history
        stored = await run_store.get(run.run_id)
        assert stored.status is RunStatus.SUCCEEDED
        assert "$ make test" in await run_store.read_log(stored.stage(StageName.BUILD_TEST).log_ref)

    @pytest.mark.asyncio
    async def test_failing_tests_change_nothing(
        self, flow_settings, runner, registry, config_store, executor, source_tree,
    ):
        executor.results["make test"] = CommandResult(
            argv=["make", "test"], exit_code=1,
            output="FAILED tests/test_checkout.py::test_total - assert 3 == 4\n",
        )
        before = await config_store.head()
        trigger = TriggerEvent(revision="def456", source_path=str(source_tree))

        result = await promote(trigger, flow_settings, runner=runner)
        run = result.run

        assert run.status is RunStatus.FAILED
        assert run.failed_stage is StageName.BUILD_TEST
        assert run.error_kind is ErrorKind.TEST_FAILURE
        assert run.stage(StageName.BUILD_TEST).details["first_failing_test"] == (
            "tests/test_checkout.py::test_total"
        )
        assert run.stage(StageName.PUBLISH).status is StageStatus.SKIPPED
        assert run.stage(StageName.UPDATE_MANIFEST).status is StageStatus.SKIPPED
        assert registry.tags("myapp") == []
        assert await config_store.head() == before
        assert result.reconciliation is None

    @pytest.mark.asyncio
    async def test_repromoting_same_revision_is_idempotent(
        self, flow_settings, runner, registry, config_store, source_tree, trigger,
    ):
        first = await promote(trigger, flow_settings, runner=runner)
        commits = config_store.commit_count
        second = await promote(trigger, flow_settings, runner=runner)

        assert first.succeeded and second.succeeded
        assert second.run.image.digest == first.run.image.digest
        assert second.run.stage(StageName.PUBLISH).details["reused"] is True
        assert second.run.stage(StageName.UPDATE_MANIFEST).details["committed"] is False
        assert config_store.commit_count == commits
        assert registry.push_count == 1
