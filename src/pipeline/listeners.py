# src/pipeline/listeners.py — v1
"""Run lifecycle notifications.

Listeners observe runs; they cannot influence them. A listener that raises
is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from shipflow.core.models import PipelineRun, RunStatus, StageResult

logger = logging.getLogger(__name__)


@runtime_checkable
class RunListener(Protocol):
    """Callbacks fired by the PipelineRunner."""

    def on_run_started(self, run: PipelineRun) -> None: ...

    def on_stage_finished(self, run: PipelineRun, result: StageResult) -> None: ...

    def on_run_finished(self, run: PipelineRun) -> None: ...


class LoggingListener:
    """Write one log line per lifecycle event."""

    def on_run_started(self, run: PipelineRun) -> None:
        logger.info(
            "Run %s started for %s@%s",
            run.run_id, run.trigger.branch, run.trigger.short_revision,
        )

    def on_stage_finished(self, run: PipelineRun, result: StageResult) -> None:
        if result.error_kind is not None:
            logger.warning(
                "Stage %s %s (%s): %s",
                result.stage.value, result.status.value,
                result.error_kind.value, result.error_message,
                extra={"error_kind": result.error_kind, "data": result.details or None},
            )
        else:
            logger.info(
                "Stage %s %s in %dms",
                result.stage.value, result.status.value, result.duration_ms,
                extra={"data": result.details or None},
            )

    def on_run_finished(self, run: PipelineRun) -> None:
        if run.status is RunStatus.SUCCEEDED:
            logger.info(
                "Run %s succeeded in %dms: %s",
                run.run_id, run.duration_ms, run.image.reference if run.image else "-",
            )
        else:
            logger.error(
                "Run %s failed at %s (%s): %s",
                run.run_id,
                run.failed_stage.value if run.failed_stage else "?",
                run.error_kind.value if run.error_kind else "?",
                run.error_message,
                extra={"error_kind": run.error_kind},
            )


def notify(listeners: list[RunListener], event: str, *args: object) -> None:
    """Invoke ``event`` on every listener, isolating failures."""
    for listener in listeners:
        try:
            getattr(listener, event)(*args)
        except Exception:
            logger.exception("Listener %r failed on %s", listener, event)
