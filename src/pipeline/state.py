# src/pipeline/state.py — v1
"""Mutable context flowing through the stages of one PipelineRun.

Each stage reads what earlier stages produced and adds its own result.
A field is only set by the stage that owns it, and only on success.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel

from shipflow.core.models import DesiredStateRecord, ImageArtifact, TriggerEvent


class RunContext(BaseModel):
    """Hand-off between build, publish and manifest stages."""

    trigger: TriggerEvent

    # === BUILD_TEST ===
    artifact_path: Path | None = None

    # === PUBLISH ===
    image: ImageArtifact | None = None

    # === UPDATE_MANIFEST ===
    desired_state: DesiredStateRecord | None = None
    config_committed: bool = False
