# src/pipeline/runner.py — v1
"""Pipeline runner — drive one PipelineRun through its stages.

Walks the fixed stage order build_test → publish → update_manifest,
recording a StageResult after each stage and persisting the run after
every transition.

Supports:
  - Fail-fast: the first failed stage terminates the run, the rest are skipped
  - Per-stage timeouts: build_test is cancelled and fails with `timeout`;
    publish and update_manifest run to completion and note the overrun
  - A run store failure ends the run as failed/internal, never left running
  - Cancellation between stages; an in-flight stage always completes
  - Lifecycle listeners for notifications
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from shipflow.core.models import (
    STAGE_ORDER,
    ErrorKind,
    PipelineRun,
    RunStatus,
    StageName,
    StageResult,
    StageStatus,
    TriggerEvent,
)
from shipflow.logging.context import clear_context, set_run_context, stage_scope
from shipflow.pipeline.base_stage import BaseStage
from shipflow.pipeline.listeners import RunListener, notify
from shipflow.pipeline.stage_models import StageOutcome
from shipflow.pipeline.state import RunContext
from shipflow.storage.base_run_store import BaseRunStore
from shipflow.storage.run_manager import new_run

logger = logging.getLogger(__name__)

DEFAULT_STAGE_TIMEOUT_S = 1800.0


class PipelineConfigurationError(Exception):
    """Raised when the runner is wired with the wrong stages."""


class PipelineRunner:
    """Execute the promotion stages for one trigger at a time.

    The runner keeps no per-run state, so one instance can serve many
    concurrent runs.

    Args:
        stages: Exactly one stage per StageName, in any order.
        run_store: Where run snapshots and stage logs are persisted.
        listeners: Lifecycle observers.
        stage_timeout_s: Default time budget per stage.
        stage_timeouts: Per-stage overrides of the budget.
    """

    def __init__(
        self,
        stages: list[BaseStage],
        run_store: BaseRunStore,
        listeners: list[RunListener] | None = None,
        stage_timeout_s: float = DEFAULT_STAGE_TIMEOUT_S,
        stage_timeouts: dict[StageName, float] | None = None,
    ) -> None:
        by_name = {stage.name: stage for stage in stages}
        if len(by_name) != len(stages) or set(by_name) != set(STAGE_ORDER):
            raise PipelineConfigurationError(
                f"Need exactly one stage per {[s.value for s in STAGE_ORDER]}, "
                f"got {[s.name.value for s in stages]}"
            )
        self._stages = [by_name[name] for name in STAGE_ORDER]
        self._run_store = run_store
        self._listeners = list(listeners or [])
        self._stage_timeout_s = stage_timeout_s
        self._stage_timeouts = dict(stage_timeouts or {})

    @property
    def run_store(self) -> BaseRunStore:
        return self._run_store

    def add_listener(self, listener: RunListener) -> None:
        self._listeners.append(listener)

    async def run(
        self,
        trigger: TriggerEvent,
        cancel: asyncio.Event | None = None,
        run: PipelineRun | None = None,
    ) -> PipelineRun:
        """Execute all stages for a trigger.

        Args:
            trigger: Source change to promote.
            cancel: Set to stop the run at the next stage boundary.
            run: Pre-created pending run (lets callers know the run_id early).

        Returns:
            The terminal PipelineRun (succeeded or failed).
        """
        run = run or new_run(trigger)
        ctx = RunContext(trigger=trigger)
        set_run_context(run.run_id, trigger.revision)

        try:
            try:
                run.start()
                await self._run_store.save(run)
                notify(self._listeners, "on_run_started", run)

                for stage in self._stages:
                    if cancel is not None and cancel.is_set():
                        logger.info("Run %s cancelled before %s", run.run_id, stage.name.value)
                        run.fail(stage.name, ErrorKind.CANCELLED, "Cancelled before stage start")
                        break

                    with stage_scope(stage.name.value):
                        result = await self._execute(run.run_id, stage, ctx)
                    run.record(result)
                    if stage.name is StageName.PUBLISH and ctx.image is not None:
                        run.image = ctx.image
                    if stage.name is StageName.UPDATE_MANIFEST and ctx.config_committed:
                        record = ctx.desired_state
                        run.config_revision = record.revision if record else None

                    notify(self._listeners, "on_stage_finished", run, result)

                    if result.status is not StageStatus.SUCCEEDED:
                        kind = result.error_kind or ErrorKind.INTERNAL
                        run.fail(stage.name, kind, result.error_message or "")
                        break
                    await self._run_store.save(run)
                else:
                    run.succeed()

                await self._run_store.save(run)
            except Exception as exc:
                logger.exception("Run %s interrupted by %s", run.run_id, type(exc).__name__)
                _settle(run, exc)
                await self._save_final(run)

            notify(self._listeners, "on_run_finished", run)
            return run
        finally:
            clear_context()

    async def _execute(self, run_id: str, stage: BaseStage, ctx: RunContext) -> StageResult:
        """Run one stage under its timeout and convert the outcome to a StageResult."""
        timeout = self._stage_timeouts.get(stage.name, self._stage_timeout_s)
        started_at = datetime.now(timezone.utc)
        start_ns = time.monotonic_ns()

        try:
            if stage.interruptible:
                outcome = await asyncio.wait_for(stage.execute(ctx), timeout=timeout)
            else:
                outcome = await self._run_to_completion(stage, ctx, timeout)
        except asyncio.TimeoutError:
            outcome = StageOutcome.failed(
                ErrorKind.TIMEOUT, f"Stage {stage.name.value} exceeded {timeout:.0f}s"
            )
        except Exception as exc:
            logger.exception("Stage %s raised unexpectedly", stage.name.value)
            outcome = StageOutcome.failed(ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}")

        log_ref = None
        if outcome.log:
            try:
                log_ref = await self._run_store.save_log(run_id, stage.name, outcome.log)
            except Exception:
                # The verdict outranks its log
                logger.exception("Could not store %s log for run %s", stage.name.value, run_id)

        return StageResult(
            stage=stage.name,
            status=outcome.status,
            error_kind=outcome.error_kind,
            error_message=outcome.message,
            log_ref=log_ref,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
            attempts=outcome.attempts,
            details=outcome.details,
        )

    async def _run_to_completion(
        self, stage: BaseStage, ctx: RunContext, timeout: float
    ) -> StageOutcome:
        """Run a side-effecting stage; past its budget, wait instead of cancelling.

        Cancelling a push or a commit mid-flight could leave it applied
        remotely while the run records a timeout, so the stage's own verdict
        is kept and the overrun is noted in its details.
        """
        task = asyncio.ensure_future(stage.execute(ctx))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Stage %s exceeded %.0fs; waiting for it to finish", stage.name.value, timeout
            )
        outcome = await task
        outcome.details["overran_timeout_s"] = timeout
        return outcome

    async def _save_final(self, run: PipelineRun) -> None:
        try:
            await self._run_store.save(run)
        except Exception:
            logger.exception("Could not persist final state of run %s", run.run_id)


def _settle(run: PipelineRun, exc: Exception) -> None:
    """Bring a run that was cut short by an infrastructure error to a terminal state.

    A run whose stages all succeeded stays a success (its side effects are
    real); anything else fails as ``internal`` at the stage it had reached.
    """
    if run.is_terminal:
        return
    if run.status is RunStatus.PENDING:
        run.start()
    stage = run.next_stage()
    if stage is None and all(s.status is StageStatus.SUCCEEDED for s in run.stages):
        run.succeed()
        return
    if stage is None:
        stage = run.stages[-1].stage
    run.fail(stage, ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}")
