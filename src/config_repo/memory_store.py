# src/config_repo/memory_store.py — v1
"""In-process configuration repository (CONFIG_STORE_BACKEND=memory).

Keeps a linear history of full-tree snapshots. Revisions are content
hashes chained on the parent revision, like git commit ids.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timezone

from shipflow.config_repo.base_store import BaseConfigStore
from shipflow.config_repo.models import ConfigCommit, ConfigSnapshot
from shipflow.core.errors import ConfigAuthError, ConfigWriteConflict


class InMemoryConfigStore(BaseConfigStore):
    """Linear-history store held in memory.

    Args:
        files: Initial tree, committed as the first revision if non-empty.
        read_only: Reject every write with ConfigAuthError.
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        read_only: bool = False,
        author: str = "shipflow",
    ) -> None:
        self._commits: list[ConfigCommit] = []
        self._trees: dict[str, dict[str, str]] = {}
        self._lock = asyncio.Lock()
        self._read_only = read_only
        self._author = author
        if files:
            self._commit(dict(files), "initial import", list(files))

    @property
    def commit_count(self) -> int:
        return len(self._commits)

    async def read(self, file: str) -> ConfigSnapshot:
        head = self._head()
        tree = self._trees.get(head, {}) if head else {}
        return ConfigSnapshot(file=file, content=tree.get(file), revision=head)

    async def write(
        self,
        file: str,
        content: str,
        expected_revision: str | None,
        message: str,
    ) -> str:
        if self._read_only:
            raise ConfigAuthError(f"Write to {file} denied: repository is read-only")
        async with self._lock:
            head = self._head()
            if head != expected_revision:
                raise ConfigWriteConflict(file, expected_revision, head)
            tree = dict(self._trees.get(head, {})) if head else {}
            tree[file] = content
            return self._commit(tree, message, [file])

    async def head(self) -> str | None:
        return self._head()

    async def history(self, limit: int = 20) -> list[ConfigCommit]:
        return list(reversed(self._commits))[:limit]

    def _head(self) -> str | None:
        return self._commits[-1].revision if self._commits else None

    def _commit(self, tree: dict[str, str], message: str, files: list[str]) -> str:
        parent = self._head()
        h = hashlib.sha1()
        h.update((parent or "").encode())
        for name in sorted(tree):
            h.update(name.encode())
            h.update(b"\0")
            h.update(tree[name].encode())
        h.update(message.encode())
        revision = h.hexdigest()
        self._trees[revision] = tree
        self._commits.append(
            ConfigCommit(
                revision=revision,
                parent=parent,
                message=message,
                author=self._author,
                committed_at=datetime.now(timezone.utc),
                files=files,
            )
        )
        return revision
