# src/reconcile/base_agent.py — v1
"""Reconciliation agent status interface.

The agent (ArgoCD or equivalent) is an external, eventually consistent
state machine. We only observe it:

    out_of_sync → progressing → synced      degraded reachable from any state
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipflow.core.models import ReconciliationStatus


class BaseReconciliationAgent(ABC):
    """Anything that can report the sync state of an application."""

    @abstractmethod
    async def get_status(self, application: str) -> ReconciliationStatus:
        """Current status. Implementations report failures as SyncState.ERROR
        instead of raising."""

    async def close(self) -> None:
        """Release network resources."""
