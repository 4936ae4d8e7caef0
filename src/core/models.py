# src/core/models.py — v1
"""Core domain models: PipelineRun, StageResult, ImageArtifact, DesiredStateRecord.

A PipelineRun is a small explicit state machine:

    pending → running → succeeded | failed

Stage results are appended in fixed order while the run is running.
Once terminal, the run rejects any further mutation.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

_REVISION_RE = re.compile(r"^[0-9a-fA-F]{6,40}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStateError(Exception):
    """Raised on an illegal PipelineRun transition."""


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageName(str, Enum):
    BUILD_TEST = "build_test"
    PUBLISH = "publish"
    UPDATE_MANIFEST = "update_manifest"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.BUILD_TEST,
    StageName.PUBLISH,
    StageName.UPDATE_MANIFEST,
)


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorKind(str, Enum):
    BUILD_FAILURE = "build_failure"
    TEST_FAILURE = "test_failure"
    PUBLISH_AUTH = "publish_auth"
    PUBLISH_CONFLICT = "publish_conflict"
    PUBLISH_TRANSIENT = "publish_transient"
    CONFIG_WRITE_CONFLICT = "config_write_conflict"
    CONFIG_AUTH = "config_auth"
    RECONCILIATION_DEGRADED = "reconciliation_degraded"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class SyncState(str, Enum):
    SYNCED = "synced"
    OUT_OF_SYNC = "out_of_sync"
    PROGRESSING = "progressing"
    DEGRADED = "degraded"
    ERROR = "error"


class TriggerEvent(BaseModel):
    """Source change that starts a PipelineRun."""

    revision: str
    branch: str = "main"
    ref: str | None = None
    source_path: str = "."
    received_at: datetime = Field(default_factory=_utcnow)

    @field_validator("revision")
    @classmethod
    def validate_revision(cls, v: str) -> str:  # noqa: N805
        if not _REVISION_RE.match(v):
            raise ValueError(f"revision must be a hex commit id, got {v!r}")
        return v.lower()

    @property
    def short_revision(self) -> str:
        return self.revision[:7]


class ImageArtifact(BaseModel):
    """A published, immutable container image."""

    repository: str
    tag: str
    digest: str
    pushed_at: datetime = Field(default_factory=_utcnow)

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"

    @property
    def pinned_reference(self) -> str:
        return f"{self.repository}@{self.digest}"


class DesiredStateRecord(BaseModel):
    """One key inside a file of the configuration repository."""

    file: str
    key: str
    value: Any = None
    revision: str | None = None

    @property
    def path(self) -> str:
        return f"{self.file}:{self.key}"


class ReconciliationStatus(BaseModel):
    """Status observed from the reconciliation agent (never driven by us)."""

    application: str
    state: SyncState
    last_sync_revision: str | None = None
    message: str = ""
    observed_at: datetime = Field(default_factory=_utcnow)


class StageResult(BaseModel):
    """Outcome of one stage inside a PipelineRun."""

    stage: StageName
    status: StageStatus
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    log_ref: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int = 0
    attempts: int = 0
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def skipped(cls, stage: StageName, reason: str = "") -> StageResult:
        return cls(stage=stage, status=StageStatus.SKIPPED, error_message=reason or None)


class PipelineRun(BaseModel):
    """One execution of the promotion pipeline for a single revision."""

    run_id: str
    trigger: TriggerEvent
    status: RunStatus = RunStatus.PENDING
    stages: list[StageResult] = Field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    image: ImageArtifact | None = None
    config_revision: str | None = None
    failed_stage: StageName | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None

    # --- State machine ---

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.SUCCEEDED, RunStatus.FAILED)

    @property
    def duration_ms(self) -> int:
        if self.started_at is None or self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def start(self) -> None:
        if self.status is not RunStatus.PENDING:
            raise RunStateError(f"Run {self.run_id} cannot start from {self.status.value}")
        self.status = RunStatus.RUNNING
        self.started_at = _utcnow()

    def record(self, result: StageResult) -> None:
        """Append a stage result, enforcing fixed stage order."""
        self._require_running("record a stage")
        expected = STAGE_ORDER[len(self.stages)] if len(self.stages) < len(STAGE_ORDER) else None
        if result.stage is not expected:
            raise RunStateError(
                f"Run {self.run_id}: expected stage {expected}, got {result.stage.value}"
            )
        if self.stages and self.stages[-1].status is not StageStatus.SUCCEEDED:
            if result.status is not StageStatus.SKIPPED:
                raise RunStateError(
                    f"Run {self.run_id}: stage {result.stage.value} cannot run after "
                    f"{self.stages[-1].stage.value} {self.stages[-1].status.value}"
                )
        self.stages.append(result)

    def succeed(self) -> None:
        self._require_running("succeed")
        if len(self.stages) != len(STAGE_ORDER) or any(
            s.status is not StageStatus.SUCCEEDED for s in self.stages
        ):
            raise RunStateError(f"Run {self.run_id} cannot succeed with incomplete stages")
        self.status = RunStatus.SUCCEEDED
        self.finished_at = _utcnow()

    def fail(self, stage: StageName, kind: ErrorKind, message: str = "") -> None:
        """Terminate the run as failed, marking every remaining stage skipped."""
        self._require_running("fail")
        while len(self.stages) < len(STAGE_ORDER):
            self.stages.append(
                StageResult.skipped(STAGE_ORDER[len(self.stages)], f"{stage.value} {kind.value}")
            )
        self.status = RunStatus.FAILED
        self.failed_stage = stage
        self.error_kind = kind
        self.error_message = message or None
        self.finished_at = _utcnow()

    def stage(self, name: StageName) -> StageResult | None:
        for result in self.stages:
            if result.stage is name:
                return result
        return None

    def next_stage(self) -> StageName | None:
        if len(self.stages) >= len(STAGE_ORDER):
            return None
        return STAGE_ORDER[len(self.stages)]

    def _require_running(self, action: str) -> None:
        if self.status is not RunStatus.RUNNING:
            raise RunStateError(
                f"Run {self.run_id} cannot {action} while {self.status.value}"
            )
