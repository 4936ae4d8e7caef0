# src/registry/memory_registry.py — v1
"""In-process image registry (REGISTRY_BACKEND=memory).

Useful for dry runs and tests. Enforces tag immutability like a real
registry configured with immutable tags.
"""

from __future__ import annotations

import asyncio

from shipflow.core.errors import PublishConflict
from shipflow.registry.base_registry import BaseImageRegistry, sha256_digest


class InMemoryImageRegistry(BaseImageRegistry):
    """Registry keeping blobs and tags in dictionaries."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._tags: dict[tuple[str, str], str] = {}
        self._lock = asyncio.Lock()
        self.push_count = 0

    async def push(self, repository: str, tag: str, image: bytes) -> str:
        digest = sha256_digest(image)
        async with self._lock:
            existing = self._tags.get((repository, tag))
            if existing is not None:
                if existing != digest:
                    raise PublishConflict(f"{repository}:{tag}", existing, digest)
                return existing
            self._blobs[digest] = image
            self._tags[(repository, tag)] = digest
            self.push_count += 1
        return digest

    async def pull(self, repository: str, tag: str) -> bytes:
        digest = self._tags.get((repository, tag))
        if digest is None:
            raise KeyError(f"{repository}:{tag} not found")
        return self._blobs[digest]

    async def get_digest(self, repository: str, tag: str) -> str | None:
        return self._tags.get((repository, tag))

    def tags(self, repository: str) -> list[str]:
        return sorted(t for (repo, t) in self._tags if repo == repository)
