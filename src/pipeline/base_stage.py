# src/pipeline/base_stage.py — v1
"""Standard stage interface for the promotion pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipflow.core.models import StageName
from shipflow.pipeline.stage_models import StageOutcome
from shipflow.pipeline.state import RunContext


class BaseStage(ABC):
    """One step of a PipelineRun."""

    @property
    @abstractmethod
    def name(self) -> StageName:
        """Stage identifier; determines the stage's slot in the run."""

    @property
    def description(self) -> str:
        return self.name.value

    @property
    def interruptible(self) -> bool:
        """Whether the runner may cancel this stage when its timeout expires.

        Stages with external side effects (a push, a commit) return False:
        they are allowed to finish so the recorded verdict matches what
        actually happened outside.
        """
        return True

    @abstractmethod
    async def execute(self, ctx: RunContext) -> StageOutcome:
        """Run the stage against the shared context.

        Implementations translate their own errors into a failed outcome.
        """
