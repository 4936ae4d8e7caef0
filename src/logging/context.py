# src/logging/context.py — v1
"""Per-task log context: which run, revision and stage a record belongs to.

Held in a single ContextVar so every asyncio task (one per PipelineRun under
the coordinator) sees its own values without locking.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, replace
from typing import Any


@dataclass(frozen=True)
class LogContext:
    run_id: str | None = None
    revision: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Fields that are set, for JSON log injection."""
        return {k: v for k, v in asdict(self).items() if v is not None}


_EMPTY = LogContext()
_current: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "shipflow_log_context", default=_EMPTY
)


def get_context() -> LogContext:
    return _current.get()


def set_run_context(run_id: str, revision: str) -> None:
    """Bind the current task to a run; clears any stage left from before."""
    _current.set(LogContext(run_id=run_id, revision=revision))


def set_stage_context(stage: str | None) -> None:
    _current.set(replace(_current.get(), stage=stage))


@contextmanager
def stage_scope(stage: str) -> Iterator[None]:
    """Tag records with ``stage`` for the duration of the block."""
    token = _current.set(replace(_current.get(), stage=stage))
    try:
        yield
    finally:
        _current.reset(token)


def clear_context() -> None:
    _current.set(_EMPTY)
