# src/pipeline/coordinator.py — v1
"""Pipeline coordinator — schedule concurrent runs from trigger events.

Runs for different revisions execute concurrently, each in its own task.
A newer trigger on a branch supersedes older in-flight runs on that branch:
they are asked to stop at their next stage boundary, never mid-stage.
Submitting a revision that is already in flight returns the existing task.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from shipflow.core.models import PipelineRun, TriggerEvent
from shipflow.pipeline.runner import PipelineRunner
from shipflow.storage.run_manager import new_run

logger = logging.getLogger(__name__)


@dataclass
class _ActiveRun:
    run: PipelineRun
    task: asyncio.Task
    cancel: asyncio.Event = field(default_factory=asyncio.Event)


class PipelineCoordinator:
    """Accept triggers and run them through a shared PipelineRunner.

    Args:
        runner: Stateless runner shared by all runs.
        watched_branches: Branches that trigger runs; None accepts all.
        supersede: Cancel older in-flight runs on the same branch.
    """

    def __init__(
        self,
        runner: PipelineRunner,
        watched_branches: list[str] | None = None,
        supersede: bool = True,
    ) -> None:
        self._runner = runner
        self._watched = set(watched_branches) if watched_branches else None
        self._supersede = supersede
        self._active: dict[str, _ActiveRun] = {}

    @property
    def active_revisions(self) -> list[str]:
        return [rev for rev, active in self._active.items() if not active.task.done()]

    def submit(self, trigger: TriggerEvent) -> asyncio.Task | None:
        """Schedule a run for a trigger.

        Returns:
            The task resolving to the terminal PipelineRun, or None when the
            branch is not watched.
        """
        if self._watched is not None and trigger.branch not in self._watched:
            logger.info("Ignoring %s@%s: branch not watched", trigger.branch, trigger.short_revision)
            return None

        existing = self._active.get(trigger.revision)
        if existing is not None and not existing.task.done():
            logger.info("Revision %s already in flight (%s)", trigger.short_revision, existing.run.run_id)
            return existing.task

        if self._supersede:
            for revision, active in self._active.items():
                if (
                    active.run.trigger.branch == trigger.branch
                    and not active.task.done()
                    and not active.cancel.is_set()
                ):
                    logger.info(
                        "Run %s (%s) superseded by %s",
                        active.run.run_id, revision[:7], trigger.short_revision,
                    )
                    active.cancel.set()

        run = new_run(trigger)
        cancel = asyncio.Event()
        task = asyncio.create_task(
            self._runner.run(trigger, cancel=cancel, run=run),
            name=f"pipeline-run-{run.run_id}",
        )
        self._active[trigger.revision] = _ActiveRun(run=run, task=task, cancel=cancel)
        task.add_done_callback(lambda _t, rev=trigger.revision: self._forget(rev, task))
        return task

    def cancel(self, revision: str) -> bool:
        """Request cancellation of an in-flight revision at its next stage boundary."""
        active = self._active.get(revision)
        if active is None or active.task.done():
            return False
        active.cancel.set()
        return True

    async def drain(self) -> list[PipelineRun]:
        """Wait for every in-flight run and return their terminal states."""
        tasks = [a.task for a in self._active.values() if not a.task.done()]
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    def _forget(self, revision: str, task: asyncio.Task) -> None:
        active = self._active.get(revision)
        if active is not None and active.task is task:
            del self._active[revision]
