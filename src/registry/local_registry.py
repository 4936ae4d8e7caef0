# src/registry/local_registry.py — v1
"""Directory-backed image registry (REGISTRY_BACKEND=local, default).

Layout under REGISTRY_ROOT:
    blobs/sha256/<hex>                  image bytes, content addressed
    repositories/<repo>/tags/<tag>      digest the tag points to

Tag files are created exclusively so two publishers racing on the same
tag cannot both win; the loser re-reads and compares digests.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from shipflow.core.errors import PublishConflict
from shipflow.registry.base_registry import BaseImageRegistry, sha256_digest

logger = logging.getLogger(__name__)


class LocalImageRegistry(BaseImageRegistry):
    """File-system registry with write-once tags."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        (self._root / "blobs" / "sha256").mkdir(parents=True, exist_ok=True)
        (self._root / "repositories").mkdir(parents=True, exist_ok=True)

    async def push(self, repository: str, tag: str, image: bytes) -> str:
        digest = sha256_digest(image)
        existing = await self.get_digest(repository, tag)
        if existing is not None:
            if existing != digest:
                raise PublishConflict(f"{repository}:{tag}", existing, digest)
            return existing

        self._write_blob(digest, image)

        tag_path = self._tag_path(repository, tag)
        tag_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(tag_path, "x", encoding="utf-8") as f:
                f.write(digest)
        except FileExistsError:
            existing = tag_path.read_text(encoding="utf-8").strip()
            if existing != digest:
                raise PublishConflict(f"{repository}:{tag}", existing, digest) from None

        logger.debug("Stored %s:%s -> %s", repository, tag, digest)
        return digest

    async def pull(self, repository: str, tag: str) -> bytes:
        digest = await self.get_digest(repository, tag)
        if digest is None:
            raise KeyError(f"{repository}:{tag} not found")
        return self._blob_path(digest).read_bytes()

    async def get_digest(self, repository: str, tag: str) -> str | None:
        path = self._tag_path(repository, tag)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def _write_blob(self, digest: str, data: bytes) -> None:
        path = self._blob_path(digest)
        if path.exists():
            return
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _blob_path(self, digest: str) -> Path:
        return self._root / "blobs" / "sha256" / digest.split(":", 1)[1]

    def _tag_path(self, repository: str, tag: str) -> Path:
        return self._root / "repositories" / Path(*repository.split("/")) / "tags" / tag
