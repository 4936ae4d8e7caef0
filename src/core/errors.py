# src/core/errors.py — v1
"""Pipeline error taxonomy.

Every error carries an ErrorKind and a retryable flag. Stages translate
these into failed StageResults; nothing here escapes the runner.
"""

from __future__ import annotations

from shipflow.core.models import ErrorKind


class PipelineError(Exception):
    """Base class for all pipeline domain errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False
    # Captured command output, if any, for the stage log
    log: str = ""


class BuildFailure(PipelineError):
    """Compilation or packaging of the source tree failed."""

    kind = ErrorKind.BUILD_FAILURE


class TestFailure(PipelineError):
    """One or more unit tests failed."""

    __test__ = False  # keep pytest from collecting this class
    kind = ErrorKind.TEST_FAILURE

    def __init__(self, message: str, first_failing_test: str | None = None) -> None:
        self.first_failing_test = first_failing_test
        if first_failing_test:
            message = f"{message} (first failing test: {first_failing_test})"
        super().__init__(message)


class PublishAuthError(PipelineError):
    """Registry rejected our credentials."""

    kind = ErrorKind.PUBLISH_AUTH


class PublishConflict(PipelineError):
    """Tag already exists in the registry with a different digest."""

    kind = ErrorKind.PUBLISH_CONFLICT

    def __init__(self, reference: str, existing_digest: str, new_digest: str) -> None:
        self.reference = reference
        self.existing_digest = existing_digest
        self.new_digest = new_digest
        super().__init__(
            f"Tag {reference} already points to {existing_digest}, refusing to "
            f"overwrite with {new_digest}"
        )


class PublishTransientError(PipelineError):
    """Network or server-side failure while talking to the registry."""

    kind = ErrorKind.PUBLISH_TRANSIENT
    retryable = True


class ConfigWriteConflict(PipelineError):
    """Configuration repository head moved since our read."""

    kind = ErrorKind.CONFIG_WRITE_CONFLICT
    retryable = True

    def __init__(self, file: str, expected: str | None, actual: str | None) -> None:
        self.file = file
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Write conflict on {file}: expected revision {expected}, head is {actual}"
        )


class ConfigAuthError(PipelineError):
    """Configuration repository rejected our credentials or permissions."""

    kind = ErrorKind.CONFIG_AUTH


class ReconciliationDegraded(PipelineError):
    """Reconciliation agent reports the application as degraded.

    Observational only: surfaced in logs, never fails a PipelineRun.
    """

    kind = ErrorKind.RECONCILIATION_DEGRADED


class StageTimeout(PipelineError):
    """A stage exceeded its time budget."""

    kind = ErrorKind.TIMEOUT


class RetryExhausted(PipelineError):
    """All attempts of a retryable operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: PipelineError) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        self.kind = last_error.kind
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}"
        )
