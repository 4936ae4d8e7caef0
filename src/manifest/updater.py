# src/manifest/updater.py — v1
"""Manifest Updater — point one desired-state key at a freshly published image.

Reads the values file, changes exactly one key, and commits the result with
the revision it read as the expected base. When another writer got there
first the store reports ConfigWriteConflict; the updater then rebases, i.e.
re-reads the new head and re-applies only its own key, so unrelated keys
changed concurrently survive. Identical values produce no commit.

The updater never talks to the cluster: the commit it produces is the only
signal the reconciliation agent acts on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shipflow.config_repo.base_store import BaseConfigStore
from shipflow.core.errors import ConfigWriteConflict, PipelineError
from shipflow.core.models import DesiredStateRecord, ImageArtifact, TriggerEvent
from shipflow.core.retry import RetryPolicy, with_retry
from shipflow.manifest.values import dump_values, get_value, load_values, set_value

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """Outcome of one manifest update."""

    record: DesiredStateRecord
    previous_value: object
    committed: bool
    attempts: int

    @property
    def revision(self) -> str | None:
        return self.record.revision


class ManifestUpdater:
    """Update a single key of a values file in the configuration store.

    Args:
        store: Configuration repository backend.
        file: Values file inside the repository, e.g. "charts/myapp/values.yaml".
        key: Dotted key to update, e.g. "image.tag".
        retry_policy: Bound on rebase attempts after write conflicts.
    """

    def __init__(
        self,
        store: BaseConfigStore,
        file: str,
        key: str = "image.tag",
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._file = file
        self._key = key
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=5, base_delay_s=0.5)

    @property
    def path(self) -> str:
        return f"{self._file}:{self._key}"

    async def read_record(self) -> DesiredStateRecord:
        """Current desired-state value and the revision it was read at."""
        snapshot = await self._store.read(self._file)
        value = get_value(load_values(snapshot.content), self._key)
        return DesiredStateRecord(
            file=self._file, key=self._key, value=value, revision=snapshot.revision
        )

    async def update(
        self,
        artifact: ImageArtifact,
        trigger: TriggerEvent | None = None,
    ) -> UpdateResult:
        """Point the key at artifact.tag.

        Raises:
            PipelineError: No pushed artifact was supplied.
            ConfigAuthError: Store rejected the write.
            RetryExhausted: Conflicts persisted through every rebase attempt.
        """
        if artifact is None or not artifact.digest:
            raise PipelineError("Manifest update requires a pushed image artifact")

        message = _commit_message(artifact, trigger)
        attempts = 0

        async def _attempt() -> UpdateResult:
            nonlocal attempts
            attempts += 1
            snapshot = await self._store.read(self._file)
            data = load_values(snapshot.content)
            previous = get_value(data, self._key)

            if previous is not None and str(previous) == artifact.tag:
                logger.info("%s already at %s, nothing to commit", self.path, artifact.tag)
                return UpdateResult(
                    record=DesiredStateRecord(
                        file=self._file, key=self._key,
                        value=previous, revision=snapshot.revision,
                    ),
                    previous_value=previous,
                    committed=False,
                    attempts=attempts,
                )

            set_value(data, self._key, artifact.tag)
            try:
                revision = await self._store.write(
                    self._file, dump_values(data), snapshot.revision, message
                )
            except ConfigWriteConflict:
                logger.info(
                    "%s moved since revision %s, rebasing",
                    self.path, (snapshot.revision or "<empty>")[:12],
                )
                raise

            logger.info(
                "%s: %r -> %r at revision %s",
                self.path, previous, artifact.tag, revision[:12],
            )
            return UpdateResult(
                record=DesiredStateRecord(
                    file=self._file, key=self._key, value=artifact.tag, revision=revision,
                ),
                previous_value=previous,
                committed=True,
                attempts=attempts,
            )

        return await with_retry(
            _attempt, operation=f"update {self.path}", policy=self._retry_policy
        )


def _commit_message(artifact: ImageArtifact, trigger: TriggerEvent | None) -> str:
    message = f"chore(deploy): {artifact.repository} -> {artifact.tag}"
    if trigger is not None:
        message += f" (revision {trigger.short_revision})"
    return message
