# src/registry/oci_registry.py — v1
"""OCI Distribution registry client (REGISTRY_BACKEND=oci).

Pushes a single-layer image: the image bytes become one gzip layer, plus a
generated config blob and an image manifest. The manifest is built
deterministically so its digest can be computed before any network call,
which is what the publisher compares against an existing tag.

Auth: static bearer token or basic credentials. 401/403 are fatal,
429/5xx and transport errors are transient.
"""

from __future__ import annotations

import base64
import gzip
import json
import logging
from typing import Any

import httpx

from shipflow.core.errors import (
    PipelineError,
    PublishAuthError,
    PublishConflict,
    PublishTransientError,
)
from shipflow.registry.base_registry import BaseImageRegistry, sha256_digest

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"
LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"

_TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}
_AUTH_STATUS_CODES = {401, 403}


def _canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")


def build_image(layer: bytes) -> tuple[bytes, bytes]:
    """Return (config_blob, manifest) for a single gzip layer."""
    try:
        diff_id = sha256_digest(gzip.decompress(layer))
    except (OSError, EOFError):
        # Not gzip: address the raw bytes
        diff_id = sha256_digest(layer)
    config = _canonical_json(
        {
            "architecture": "amd64",
            "os": "linux",
            "config": {},
            "rootfs": {"type": "layers", "diff_ids": [diff_id]},
        }
    )
    manifest = _canonical_json(
        {
            "schemaVersion": 2,
            "mediaType": MANIFEST_MEDIA_TYPE,
            "config": {
                "mediaType": CONFIG_MEDIA_TYPE,
                "digest": sha256_digest(config),
                "size": len(config),
            },
            "layers": [
                {
                    "mediaType": LAYER_MEDIA_TYPE,
                    "digest": sha256_digest(layer),
                    "size": len(layer),
                }
            ],
        }
    )
    return config, manifest


class OCIRegistry(BaseImageRegistry):
    """Registry speaking the OCI Distribution HTTP API."""

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        token: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            url: Registry base URL, e.g. "https://registry.example.com".
            username: Basic auth user (exclusive with token).
            password: Basic auth password.
            token: Static bearer token.
            timeout: Per-request timeout in seconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif username:
            creds = base64.b64encode(f"{username}:{password}".encode()).decode()
            headers["Authorization"] = f"Basic {creds}"

        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def compute_digest(self, image: bytes) -> str:
        _, manifest = build_image(image)
        return sha256_digest(manifest)

    async def push(self, repository: str, tag: str, image: bytes) -> str:
        config, manifest = build_image(image)
        digest = sha256_digest(manifest)

        existing = await self.get_digest(repository, tag)
        if existing is not None:
            if existing != digest:
                raise PublishConflict(f"{repository}:{tag}", existing, digest)
            return existing

        await self._upload_blob(repository, image)
        await self._upload_blob(repository, config)

        resp = await self._request(
            "PUT",
            f"/v2/{repository}/manifests/{tag}",
            content=manifest,
            headers={"Content-Type": MANIFEST_MEDIA_TYPE},
        )
        reported = resp.headers.get("Docker-Content-Digest", digest)
        logger.info("Pushed %s:%s (%s)", repository, tag, reported)
        return digest

    async def pull(self, repository: str, tag: str) -> bytes:
        resp = await self._request(
            "GET",
            f"/v2/{repository}/manifests/{tag}",
            headers={"Accept": MANIFEST_MEDIA_TYPE},
        )
        layers = resp.json().get("layers") or []
        if not layers:
            raise PipelineError(f"{repository}:{tag} has no layers")
        blob = await self._request("GET", f"/v2/{repository}/blobs/{layers[0]['digest']}")
        return blob.content

    async def get_digest(self, repository: str, tag: str) -> str | None:
        """Digest of the manifest behind a tag, None only on 404.

        Registries may omit Docker-Content-Digest on HEAD; the manifest is
        then fetched and hashed, since an existing tag must never read as free.
        """
        path = f"/v2/{repository}/manifests/{tag}"
        resp = await self._request(
            "HEAD", path, headers={"Accept": MANIFEST_MEDIA_TYPE}, allow_missing=True
        )
        if resp.status_code == 404:
            return None
        digest = resp.headers.get("Docker-Content-Digest")
        if digest:
            return digest

        resp = await self._request("GET", path, headers={"Accept": MANIFEST_MEDIA_TYPE})
        if not resp.content:
            raise PipelineError(f"{repository}:{tag} exists but its manifest is empty")
        return sha256_digest(resp.content)

    async def close(self) -> None:
        await self._client.aclose()

    async def _upload_blob(self, repository: str, data: bytes) -> None:
        digest = sha256_digest(data)
        head = await self._request(
            "HEAD", f"/v2/{repository}/blobs/{digest}", allow_missing=True
        )
        if head.status_code == 200:
            logger.debug("Blob %s already present", digest)
            return

        start = await self._request("POST", f"/v2/{repository}/blobs/uploads/")
        location = start.headers.get("Location")
        if not location:
            raise PublishTransientError("Registry returned no upload location")
        separator = "&" if "?" in location else "?"
        await self._request(
            "PUT",
            f"{location}{separator}digest={digest}",
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )

    async def _request(
        self,
        method: str,
        url: str,
        allow_missing: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise PublishTransientError(f"{method} {url}: {e}") from e

        if resp.status_code in _AUTH_STATUS_CODES:
            raise PublishAuthError(f"{method} {url}: registry returned {resp.status_code}")
        if resp.status_code in _TRANSIENT_STATUS_CODES:
            raise PublishTransientError(f"{method} {url}: registry returned {resp.status_code}")
        if resp.status_code == 404 and allow_missing:
            return resp
        if resp.status_code >= 400:
            raise PipelineError(
                f"{method} {url}: registry returned {resp.status_code} {resp.text[:200]}"
            )
        return resp
