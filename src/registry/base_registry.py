# src/registry/base_registry.py — v1
"""Abstract image registry interface.

Tags are write-once: pushing a different digest under an existing tag must
raise PublishConflict, pushing the same digest again is a no-op.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod


def sha256_digest(data: bytes) -> str:
    """Content address in OCI digest form."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class BaseImageRegistry(ABC):
    """Unified interface for image registry backends."""

    @abstractmethod
    async def push(self, repository: str, tag: str, image: bytes) -> str:
        """Upload an image under repository:tag and return its digest.

        Raises:
            PublishConflict: Tag already bound to a different digest.
            PublishAuthError: Credentials rejected.
            PublishTransientError: Retryable transport or server failure.
        """

    @abstractmethod
    async def pull(self, repository: str, tag: str) -> bytes:
        """Download the image bytes bound to repository:tag."""

    @abstractmethod
    async def get_digest(self, repository: str, tag: str) -> str | None:
        """Return the digest bound to a tag, or None if the tag is unused."""

    def compute_digest(self, image: bytes) -> str:
        """Digest this backend will report for the given image bytes."""
        return sha256_digest(image)

    async def close(self) -> None:
        """Release network resources (no-op for local backends)."""
