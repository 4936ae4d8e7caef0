# src/reconcile/argocd_client.py — v1
"""ArgoCD application status client.

Reads GET /api/v1/applications/<name> and folds ArgoCD's two status axes
(sync: Synced/OutOfSync/Unknown, health: Healthy/Progressing/Degraded/
Missing/Suspended/Unknown) into a single SyncState.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from shipflow.core.models import ReconciliationStatus, SyncState
from shipflow.reconcile.base_agent import BaseReconciliationAgent

logger = logging.getLogger(__name__)

_DEGRADED_HEALTH = {"Degraded", "Missing"}


def map_application_status(status: dict[str, Any]) -> tuple[SyncState, str]:
    """Map an ArgoCD application ``status`` block to (state, message)."""
    sync = (status.get("sync") or {}).get("status", "Unknown")
    health_block = status.get("health") or {}
    health = health_block.get("status", "Unknown")
    message = health_block.get("message", "") or ""

    if health in _DEGRADED_HEALTH:
        return SyncState.DEGRADED, message or f"health {health}"
    if sync == "OutOfSync":
        return SyncState.OUT_OF_SYNC, message
    if sync == "Synced":
        if health == "Healthy":
            return SyncState.SYNCED, message
        return SyncState.PROGRESSING, message or f"health {health}"
    return SyncState.ERROR, message or f"sync {sync}, health {health}"


class ArgoCDClient(BaseReconciliationAgent):
    """Query ArgoCD over its REST API with a bearer token."""

    def __init__(
        self,
        url: str,
        token: str = "",
        verify_tls: bool = True,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )

    async def get_status(self, application: str) -> ReconciliationStatus:
        try:
            resp = await self._client.get(f"/api/v1/applications/{application}")
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("ArgoCD status for %s unavailable: %s", application, e)
            return ReconciliationStatus(
                application=application, state=SyncState.ERROR, message=str(e)
            )

        status = body.get("status") or {}
        state, message = map_application_status(status)
        return ReconciliationStatus(
            application=application,
            state=state,
            last_sync_revision=(status.get("sync") or {}).get("revision"),
            message=message,
        )

    async def close(self) -> None:
        await self._client.aclose()
