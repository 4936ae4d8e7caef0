# src/api/facade.py — v1
"""Public API facade — wire a pipeline from settings and promote revisions.

Usage:
    from shipflow.api.facade import promote, promote_events
    result = await promote(TriggerEvent(revision="abc123", source_path="."))

    results = await promote_events([parse_push_event(body)])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shipflow.build.runner import BuildTestRunner, CommandExecutor
from shipflow.config.settings import Settings
from shipflow.config_repo.store_factory import create_config_store
from shipflow.core.models import PipelineRun, RunStatus, TriggerEvent
from shipflow.core.retry import RetryPolicy
from shipflow.manifest.updater import ManifestUpdater
from shipflow.pipeline.coordinator import PipelineCoordinator
from shipflow.pipeline.listeners import LoggingListener, RunListener
from shipflow.pipeline.runner import PipelineRunner
from shipflow.pipeline.stages import BuildTestStage, ManifestUpdateStage, PublishStage
from shipflow.publisher.image_publisher import ImagePublisher
from shipflow.reconcile.watcher import StatusWatcher, WatchResult
from shipflow.registry.registry_factory import create_registry
from shipflow.storage.run_store_factory import create_run_store

if TYPE_CHECKING:
    from shipflow.config_repo.base_store import BaseConfigStore
    from shipflow.reconcile.base_agent import BaseReconciliationAgent
    from shipflow.registry.base_registry import BaseImageRegistry
    from shipflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)


@dataclass
class PromotionResult:
    """Terminal run plus, when enabled, what the reconciliation agent did."""

    run: PipelineRun
    reconciliation: WatchResult | None = None

    @property
    def succeeded(self) -> bool:
        return self.run.status is RunStatus.SUCCEEDED


def build_runner(
    settings: Settings | None = None,
    registry: BaseImageRegistry | None = None,
    config_store: BaseConfigStore | None = None,
    run_store: BaseRunStore | None = None,
    executor: CommandExecutor | None = None,
    listeners: list[RunListener] | None = None,
) -> PipelineRunner:
    """Assemble a PipelineRunner; explicit components override settings."""
    settings = settings or Settings()

    build = BuildTestRunner(
        build_command=settings.build_command,
        test_command=settings.test_command,
        artifact_path=settings.artifact_path,
        junit_report=settings.junit_report,
        timeout_s=settings.stage_timeout_s,
        executor=executor,
    )
    publisher = ImagePublisher(
        registry=registry or create_registry(settings),
        repository=settings.image_repository,
        tag_rule=settings.tag_rule,
        tag_length=settings.tag_length,
        retry_policy=RetryPolicy(
            max_attempts=settings.publish_max_attempts,
            base_delay_s=settings.publish_retry_delay_s,
        ),
    )
    updater = ManifestUpdater(
        store=config_store or create_config_store(settings),
        file=settings.config_values_file,
        key=settings.config_image_key,
        retry_policy=RetryPolicy(
            max_attempts=settings.config_max_attempts,
            base_delay_s=settings.config_retry_delay_s,
        ),
    )

    return PipelineRunner(
        stages=[BuildTestStage(build), PublishStage(publisher), ManifestUpdateStage(updater)],
        run_store=run_store or create_run_store(settings),
        listeners=listeners if listeners is not None else [LoggingListener()],
        stage_timeout_s=settings.stage_timeout_s,
    )


def create_reconciliation_agent(settings: Settings) -> BaseReconciliationAgent:
    """ArgoCD client configured from RECONCILE_* settings."""
    from shipflow.reconcile.argocd_client import ArgoCDClient

    return ArgoCDClient(
        url=settings.reconcile_url,
        token=settings.reconcile_token,
        verify_tls=settings.reconcile_verify_tls,
    )


async def promote(
    trigger: TriggerEvent,
    settings: Settings | None = None,
    runner: PipelineRunner | None = None,
    agent: BaseReconciliationAgent | None = None,
) -> PromotionResult:
    """Run the pipeline for one trigger and optionally watch reconciliation.

    Watching is observational: a degraded or slow rollout never changes
    the run's status.
    """
    settings = settings or Settings()
    runner = runner or build_runner(settings)

    run = await runner.run(trigger)
    result = PromotionResult(run=run)
    if run.status is RunStatus.SUCCEEDED:
        result.reconciliation = await _watch(run, settings, agent)
    return result


async def promote_events(
    triggers: list[TriggerEvent],
    settings: Settings | None = None,
    runner: PipelineRunner | None = None,
    agent: BaseReconciliationAgent | None = None,
) -> list[PromotionResult]:
    """Submit push events to a coordinator and wait for every run.

    Triggers on unwatched branches are dropped. A later trigger on a branch
    supersedes earlier in-flight ones, which stop at their next stage
    boundary. Reconciliation is watched once, for the last successful run.

    Returns:
        One result per run started, in submission order.
    """
    settings = settings or Settings()
    runner = runner or build_runner(settings)
    coordinator = PipelineCoordinator(runner, watched_branches=settings.watched_branches_list)

    tasks = []
    for trigger in triggers:
        task = coordinator.submit(trigger)
        if task is not None and task not in tasks:
            tasks.append(task)
    await coordinator.drain()

    results = [PromotionResult(run=task.result()) for task in tasks]
    succeeded = [r for r in results if r.succeeded]
    if succeeded:
        last = succeeded[-1]
        last.reconciliation = await _watch(last.run, settings, agent)
    return results


async def _watch(
    run: PipelineRun,
    settings: Settings,
    agent: BaseReconciliationAgent | None,
) -> WatchResult | None:
    if agent is None and not settings.reconcile_enabled:
        return None

    owns_agent = agent is None
    agent = agent or create_reconciliation_agent(settings)
    try:
        watcher = StatusWatcher(agent, poll_interval_s=settings.reconcile_poll_interval_s)
        return await watcher.wait_for(
            settings.reconcile_application,
            revision=run.config_revision,
            timeout_s=settings.reconcile_timeout_s,
        )
    finally:
        if owns_agent:
            await agent.close()
