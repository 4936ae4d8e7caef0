# src/reconcile/watcher.py — v1
"""Poll a reconciliation agent until an application converges.

Observation only: the watcher never fails a PipelineRun. Degraded states
are logged at WARNING for operator visibility.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from shipflow.core.errors import ReconciliationDegraded
from shipflow.core.models import ReconciliationStatus, SyncState
from shipflow.reconcile.base_agent import BaseReconciliationAgent

logger = logging.getLogger(__name__)


@dataclass
class WatchResult:
    """States observed while waiting for convergence."""

    application: str
    converged: bool
    transitions: list[SyncState] = field(default_factory=list)
    last_status: ReconciliationStatus | None = None
    elapsed_s: float = 0.0


class StatusWatcher:
    """Wait for an application to reach ``synced`` at a given revision."""

    def __init__(
        self,
        agent: BaseReconciliationAgent,
        poll_interval_s: float = 5.0,
    ) -> None:
        self._agent = agent
        self._poll_interval_s = poll_interval_s

    async def wait_for(
        self,
        application: str,
        revision: str | None = None,
        timeout_s: float = 300.0,
    ) -> WatchResult:
        """Poll until synced (at ``revision`` when given) or timeout.

        Consecutive identical states are collapsed in ``transitions``.
        """
        start = time.monotonic()
        result = WatchResult(application=application, converged=False)

        while True:
            status = await self._agent.get_status(application)
            result.last_status = status
            if not result.transitions or result.transitions[-1] is not status.state:
                result.transitions.append(status.state)
                logger.info(
                    "%s is %s (revision %s)",
                    application, status.state.value, status.last_sync_revision,
                )
                if status.state is SyncState.DEGRADED:
                    logger.warning(
                        "%s", ReconciliationDegraded(f"{application}: {status.message}")
                    )

            if status.state is SyncState.SYNCED and _at_revision(status, revision):
                result.converged = True
                break

            result.elapsed_s = time.monotonic() - start
            if result.elapsed_s + self._poll_interval_s > timeout_s:
                logger.warning(
                    "%s did not converge within %.0fs (last %s)",
                    application, timeout_s, status.state.value,
                )
                break
            await asyncio.sleep(self._poll_interval_s)

        result.elapsed_s = time.monotonic() - start
        return result


def _at_revision(status: ReconciliationStatus, revision: str | None) -> bool:
    if revision is None:
        return True
    return status.last_sync_revision == revision
