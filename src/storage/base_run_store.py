# src/storage/base_run_store.py — v1
"""Abstract run store interface.

Persists PipelineRun snapshots and stage logs so operators can inspect any
run: stage list, verdicts, and logs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipflow.core.models import PipelineRun, StageName


class BaseRunStore(ABC):
    """Unified interface for run storage backends."""

    @abstractmethod
    async def save(self, run: PipelineRun) -> None:
        """Store (or overwrite) the latest snapshot of a run."""

    @abstractmethod
    async def get(self, run_id: str) -> PipelineRun | None:
        """Load a run by id."""

    @abstractmethod
    async def list_runs(self, limit: int = 20) -> list[PipelineRun]:
        """Most recently started runs first."""

    @abstractmethod
    async def save_log(self, run_id: str, stage: StageName, text: str) -> str:
        """Persist a stage log and return its reference."""

    @abstractmethod
    async def read_log(self, log_ref: str) -> str:
        """Read a stage log by reference."""

    async def latest_for_revision(self, revision: str) -> PipelineRun | None:
        """Most recent run for a revision."""
        for run in await self.list_runs(limit=1000):
            if run.trigger.revision == revision:
                return run
        return None
