# src/storage/json_run_store.py — v1
"""JSON file-based run store (RUN_STORE_BACKEND=json, default).

One JSON document per run, rewritten after every state transition.
Writes go through a temp file + os.replace so readers never see a
half-written snapshot.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from shipflow.core.models import PipelineRun, StageName
from shipflow.storage import layout
from shipflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class JsonRunStore(BaseRunStore):
    """File-based run store using JSON files."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        layout.ensure_directories(self._root)

    async def save(self, run: PipelineRun) -> None:
        _atomic_write(layout.run_path(self._root, run.run_id), run.model_dump_json(indent=2))

    async def get(self, run_id: str) -> PipelineRun | None:
        path = layout.run_path(self._root, run_id)
        if not path.is_file():
            return None
        return self._load(path)

    async def list_runs(self, limit: int = 20) -> list[PipelineRun]:
        runs: list[PipelineRun] = []
        for path in layout.runs_dir(self._root).glob("*.json"):
            run = self._load(path)
            if run is not None:
                runs.append(run)
        runs.sort(key=lambda r: r.started_at or r.trigger.received_at or _EPOCH, reverse=True)
        return runs[:limit]

    async def save_log(self, run_id: str, stage: StageName, text: str) -> str:
        path = layout.stage_log_path(self._root, run_id, stage.value)
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, text)
        return str(path)

    async def read_log(self, log_ref: str) -> str:
        return Path(log_ref).read_text(encoding="utf-8")

    def _load(self, path: Path) -> PipelineRun | None:
        try:
            return PipelineRun(**json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to read run %s: %s", path.name, e)
            return None


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
