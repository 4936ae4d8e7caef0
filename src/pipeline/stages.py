# src/pipeline/stages.py — v1
"""Concrete stages: build_test → publish → update_manifest.

Each stage checks that its predecessor left what it needs in the
RunContext; a missing input is an ordering bug and fails the stage
instead of acting speculatively.
"""

from __future__ import annotations

import logging

from shipflow.build.runner import BuildTestRunner
from shipflow.core.errors import PipelineError, RetryExhausted, TestFailure
from shipflow.core.models import ErrorKind, StageName
from shipflow.core.tagging import TagDerivationError
from shipflow.manifest.updater import ManifestUpdater
from shipflow.manifest.values import ValuesError
from shipflow.pipeline.base_stage import BaseStage
from shipflow.pipeline.stage_models import StageOutcome
from shipflow.pipeline.state import RunContext
from shipflow.publisher.image_publisher import ImagePublisher

logger = logging.getLogger(__name__)


class BuildTestStage(BaseStage):
    """Compile and unit-test the triggering revision."""

    def __init__(self, runner: BuildTestRunner) -> None:
        self._runner = runner

    @property
    def name(self) -> StageName:
        return StageName.BUILD_TEST

    async def execute(self, ctx: RunContext) -> StageOutcome:
        try:
            output = await self._runner.run(ctx.trigger.source_path, ctx.trigger.revision)
        except TestFailure as e:
            return StageOutcome.from_error(e, first_failing_test=e.first_failing_test)
        except PipelineError as e:
            return StageOutcome.from_error(e)

        ctx.artifact_path = output.artifact_path
        return StageOutcome.ok(log=output.log, artifact_path=str(output.artifact_path))


class PublishStage(BaseStage):
    """Package the artifact and push it under the revision's tag."""

    def __init__(self, publisher: ImagePublisher) -> None:
        self._publisher = publisher

    @property
    def name(self) -> StageName:
        return StageName.PUBLISH

    @property
    def interruptible(self) -> bool:
        return False

    async def execute(self, ctx: RunContext) -> StageOutcome:
        if ctx.artifact_path is None:
            return StageOutcome.failed(
                ErrorKind.INTERNAL, "No build artifact: publish requires a successful build"
            )
        try:
            result = await self._publisher.publish(ctx.artifact_path, ctx.trigger)
        except RetryExhausted as e:
            return StageOutcome.from_error(e, attempts=e.attempts)
        except PipelineError as e:
            return StageOutcome.from_error(e)
        except (TagDerivationError, OSError) as e:
            return StageOutcome.failed(ErrorKind.INTERNAL, str(e))

        ctx.image = result.artifact
        return StageOutcome.ok(
            attempts=max(result.attempts, 1),
            image=result.artifact.reference,
            digest=result.artifact.digest,
            reused=result.reused,
        )


class ManifestUpdateStage(BaseStage):
    """Point the desired-state key at the published tag."""

    def __init__(self, updater: ManifestUpdater) -> None:
        self._updater = updater

    @property
    def name(self) -> StageName:
        return StageName.UPDATE_MANIFEST

    @property
    def interruptible(self) -> bool:
        return False

    async def execute(self, ctx: RunContext) -> StageOutcome:
        if ctx.image is None:
            return StageOutcome.failed(
                ErrorKind.INTERNAL, "No published image: manifest update requires a push"
            )
        try:
            result = await self._updater.update(ctx.image, ctx.trigger)
        except RetryExhausted as e:
            return StageOutcome.from_error(e, attempts=e.attempts)
        except PipelineError as e:
            return StageOutcome.from_error(e)
        except ValuesError as e:
            return StageOutcome.failed(ErrorKind.INTERNAL, str(e))

        ctx.desired_state = result.record
        ctx.config_committed = result.committed
        return StageOutcome.ok(
            attempts=result.attempts,
            path=self._updater.path,
            previous_value=result.previous_value,
            value=result.record.value,
            config_revision=result.revision,
            committed=result.committed,
        )
