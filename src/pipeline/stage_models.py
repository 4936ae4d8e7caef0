# src/pipeline/stage_models.py — v1
"""Stage outcome variants.

Stages never raise into the runner: they return a StageOutcome that is
either succeeded or failed, with the error kind always attached on failure.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shipflow.core.errors import PipelineError
from shipflow.core.models import ErrorKind, StageStatus


class StageOutcome(BaseModel):
    """Standard return type for every BaseStage.execute() call."""

    status: StageStatus
    error_kind: ErrorKind | None = None
    message: str | None = None
    log: str = ""
    attempts: int = 1
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is StageStatus.SUCCEEDED

    @classmethod
    def ok(cls, log: str = "", attempts: int = 1, **details: Any) -> StageOutcome:
        return cls(status=StageStatus.SUCCEEDED, log=log, attempts=attempts, details=details)

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        message: str,
        log: str = "",
        attempts: int = 1,
        **details: Any,
    ) -> StageOutcome:
        return cls(
            status=StageStatus.FAILED,
            error_kind=kind,
            message=message,
            log=log,
            attempts=attempts,
            details=details,
        )

    @classmethod
    def from_error(cls, error: PipelineError, attempts: int = 1, **details: Any) -> StageOutcome:
        return cls.failed(error.kind, str(error), log=error.log, attempts=attempts, **details)
