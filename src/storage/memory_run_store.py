# src/storage/memory_run_store.py — v1
"""In-process run store (RUN_STORE_BACKEND=memory)."""

from __future__ import annotations

from datetime import datetime, timezone

from shipflow.core.models import PipelineRun, StageName
from shipflow.storage.base_run_store import BaseRunStore

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryRunStore(BaseRunStore):
    """Run snapshots kept as deep copies in a dict."""

    def __init__(self) -> None:
        self._runs: dict[str, PipelineRun] = {}
        self._logs: dict[str, str] = {}
        self.save_count = 0

    async def save(self, run: PipelineRun) -> None:
        self._runs[run.run_id] = run.model_copy(deep=True)
        self.save_count += 1

    async def get(self, run_id: str) -> PipelineRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self, limit: int = 20) -> list[PipelineRun]:
        runs = sorted(
            self._runs.values(),
            key=lambda r: r.started_at or r.trigger.received_at or _EPOCH,
            reverse=True,
        )
        return [r.model_copy(deep=True) for r in runs[:limit]]

    async def save_log(self, run_id: str, stage: StageName, text: str) -> str:
        ref = f"memory://{run_id}/{stage.value}.log"
        self._logs[ref] = text
        return ref

    async def read_log(self, log_ref: str) -> str:
        return self._logs[log_ref]
