# src/publisher/image_publisher.py — v1
"""Image Publisher — package a built artifact and publish it under an immutable tag.

Flow:
  1. Derive the tag from the trigger (commit SHA or semantic version)
  2. Package the artifact deterministically and compute its digest
  3. If the tag already exists: same digest → reuse, different → PublishConflict
  4. Push with bounded retry on transient registry errors

A pushed image is never deleted when a later stage fails; it simply goes
unreferenced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from shipflow.core.errors import PublishConflict
from shipflow.core.models import ImageArtifact, TriggerEvent
from shipflow.core.retry import RetryPolicy, with_retry
from shipflow.core.tagging import TagRule, derive_tag
from shipflow.publisher.packaging import package_artifact
from shipflow.registry.base_registry import BaseImageRegistry

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Published artifact plus how it got there."""

    artifact: ImageArtifact
    attempts: int
    reused: bool = False


class ImagePublisher:
    """Publish build artifacts to an image registry.

    Args:
        registry: Target registry backend.
        repository: Image repository name, e.g. "myapp".
        tag_rule: "sha" or "semver".
        tag_length: Commit id prefix length for the "sha" rule.
        retry_policy: Policy for transient push failures.
    """

    def __init__(
        self,
        registry: BaseImageRegistry,
        repository: str,
        tag_rule: TagRule = "sha",
        tag_length: int = 12,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._tag_rule = tag_rule
        self._tag_length = tag_length
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=3)

    @property
    def repository(self) -> str:
        return self._repository

    async def publish(self, artifact_path: Path, trigger: TriggerEvent) -> PublishResult:
        """Publish one artifact for one trigger.

        Raises:
            TagDerivationError: No valid tag for this trigger.
            PublishConflict: Tag already bound to different content.
            PublishAuthError: Registry rejected credentials.
            RetryExhausted: Transient failures outlasted the retry budget.
        """
        tag = derive_tag(trigger, self._tag_rule, self._tag_length)
        image = package_artifact(artifact_path)
        digest = self._registry.compute_digest(image)
        reference = f"{self._repository}:{tag}"

        attempts = 0

        async def _check_existing() -> str | None:
            return await self._registry.get_digest(self._repository, tag)

        existing = await with_retry(
            _check_existing, operation=f"lookup {reference}", policy=self._retry_policy
        )
        if existing is not None:
            if existing != digest:
                raise PublishConflict(reference, existing, digest)
            logger.info("%s already published with identical content", reference)
            return PublishResult(
                artifact=ImageArtifact(repository=self._repository, tag=tag, digest=digest),
                attempts=0,
                reused=True,
            )

        async def _push() -> str:
            nonlocal attempts
            attempts += 1
            return await self._registry.push(self._repository, tag, image)

        pushed = await with_retry(_push, operation=f"push {reference}", policy=self._retry_policy)
        logger.info("Published %s (%s, %d bytes)", reference, pushed, len(image))
        return PublishResult(
            artifact=ImageArtifact(repository=self._repository, tag=tag, digest=pushed),
            attempts=attempts,
        )
