# src/config_repo/base_store.py — v1
"""Abstract configuration store interface.

Optimistic concurrency: every write names the revision it was based on and
fails with ConfigWriteConflict when the head has moved. Writes are atomic:
either a whole new commit exists afterwards or nothing changed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipflow.config_repo.models import ConfigCommit, ConfigSnapshot


class BaseConfigStore(ABC):
    """Unified interface for configuration repository backends."""

    @abstractmethod
    async def read(self, file: str) -> ConfigSnapshot:
        """Read a file at the current head revision."""

    @abstractmethod
    async def write(
        self,
        file: str,
        content: str,
        expected_revision: str | None,
        message: str,
    ) -> str:
        """Commit new file content on top of expected_revision.

        Returns:
            The new head revision.

        Raises:
            ConfigWriteConflict: Head is no longer expected_revision.
            ConfigAuthError: Write not permitted.
        """

    @abstractmethod
    async def head(self) -> str | None:
        """Current head revision (None for an empty repository)."""

    @abstractmethod
    async def history(self, limit: int = 20) -> list[ConfigCommit]:
        """Most recent commits, newest first."""
