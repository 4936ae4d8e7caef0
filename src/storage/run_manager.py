# src/storage/run_manager.py — v1
"""Run identity helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from shipflow.core.models import PipelineRun, TriggerEvent


def generate_run_id(revision: str, timestamp: datetime | None = None) -> str:
    """Generate a run_id: yyyymmdd_hhmmss_{revision[:7]}_{uuid4_short}."""
    ts = timestamp or datetime.now(timezone.utc)
    short_uuid = uuid.uuid4().hex[:6]
    return f"{ts.strftime('%Y%m%d_%H%M%S')}_{revision[:7]}_{short_uuid}"


def new_run(trigger: TriggerEvent) -> PipelineRun:
    """Create a pending PipelineRun for a trigger."""
    return PipelineRun(run_id=generate_run_id(trigger.revision), trigger=trigger)
