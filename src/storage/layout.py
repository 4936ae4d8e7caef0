# src/storage/layout.py — v1
"""Run store directory structure.

    {root}/runs/{run_id}.json           latest PipelineRun snapshot
    {root}/logs/{run_id}/{stage}.log    captured stage output
"""

from __future__ import annotations

from pathlib import Path

RUNS_DIR = "runs"
LOGS_DIR = "logs"


def runs_dir(root: Path) -> Path:
    return root / RUNS_DIR


def run_path(root: Path, run_id: str) -> Path:
    return runs_dir(root) / f"{run_id}.json"


def logs_dir(root: Path, run_id: str) -> Path:
    return root / LOGS_DIR / run_id


def stage_log_path(root: Path, run_id: str, stage: str) -> Path:
    return logs_dir(root, run_id) / f"{stage}.log"


def ensure_directories(root: Path) -> None:
    """Create runs/ and logs/ under root."""
    runs_dir(root).mkdir(parents=True, exist_ok=True)
    (root / LOGS_DIR).mkdir(parents=True, exist_ok=True)
