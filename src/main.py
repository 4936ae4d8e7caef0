# src/main.py — v1
"""CLI entry point — run, status, history, watch commands.

Usage:
    shipflow run --revision <sha> [--branch main] [--source .]
    shipflow run --event push.json [--event push2.json] [--source .]
    shipflow status <run_id>
    shipflow history [--limit 20]
    shipflow watch <application> [--revision <sha>] [--timeout 300]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from shipflow.version import __version__

if TYPE_CHECKING:
    from shipflow.api.facade import PromotionResult
    from shipflow.config.settings import Settings
    from shipflow.core.models import PipelineRun

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args.verbose)
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipflow",
        description=f"shipflow v{__version__} — GitOps promotion pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Promote a source revision through the pipeline",
    )
    target = p_run.add_mutually_exclusive_group(required=True)
    target.add_argument("--revision", help="Commit id to promote")
    target.add_argument(
        "--event", action="append", metavar="FILE",
        help="Push webhook payload (JSON); repeat for several, \"-\" reads stdin",
    )
    p_run.add_argument("--branch", default="main", help="Source branch (default: main)")
    p_run.add_argument(
        "--ref", default=None,
        help="Full ref, e.g. refs/tags/v1.2.0 (needed by the semver tag rule)",
    )
    p_run.add_argument(
        "--source", default=".",
        help="Checked-out source tree (default: .)",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show one run with its stages",
    )
    p_status.add_argument("run_id", help="Run identifier")
    p_status.add_argument(
        "--logs", action="store_true",
        help="Also print stage logs",
    )
    p_status.set_defaults(func=_cmd_status)

    # --- history ---
    p_history = subparsers.add_parser(
        "history", help="List recent runs",
    )
    p_history.add_argument(
        "-n", "--limit", type=int, default=20,
        help="Number of runs to show (default: 20)",
    )
    p_history.set_defaults(func=_cmd_history)

    # --- watch ---
    p_watch = subparsers.add_parser(
        "watch", help="Wait for the reconciliation agent to sync an application",
    )
    p_watch.add_argument("application", help="Application name")
    p_watch.add_argument(
        "--revision", default=None,
        help="Config revision the application must be synced at",
    )
    p_watch.add_argument(
        "--timeout", type=float, default=None,
        help="Seconds to wait (default: RECONCILE_TIMEOUT_S)",
    )
    p_watch.set_defaults(func=_cmd_watch)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Run the pipeline for one revision, or for a batch of push events."""
    from pydantic import ValidationError

    from shipflow.api.facade import promote
    from shipflow.core.models import TriggerEvent

    if args.event:
        return await _run_events(args, settings)

    try:
        trigger = TriggerEvent(
            revision=args.revision,
            branch=args.branch,
            ref=args.ref,
            source_path=args.source,
        )
    except ValidationError:
        logger.error("Invalid revision: %s", args.revision)
        return 1

    if trigger.branch not in settings.watched_branches_list:
        logger.warning(
            "Branch %s is not in WATCHED_BRANCHES (%s); running anyway",
            trigger.branch, settings.watched_branches,
        )

    result = await promote(trigger, settings)
    _print_result(result)
    return 0 if result.succeeded else 1


async def _run_events(args: argparse.Namespace, settings: Settings) -> int:
    """Parse push payloads and promote them through the coordinator."""
    from shipflow.api.facade import promote_events
    from shipflow.trigger.webhook import WebhookError, parse_push_event

    triggers = []
    for path in args.event:
        try:
            body = sys.stdin.buffer.read() if path == "-" else Path(path).read_bytes()
            trigger = parse_push_event(body, source_path=args.source)
        except (OSError, WebhookError) as exc:
            logger.error("Cannot use event %s: %s", path, exc)
            return 1
        if trigger is not None:
            triggers.append(trigger)

    results = await promote_events(triggers, settings)
    if not results:
        print("No runs started.")
        return 0

    for result in results:
        _print_result(result)
    return 0 if all(r.succeeded for r in results) else 1


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    """Display one run."""
    from shipflow.storage.run_store_factory import create_run_store

    store = create_run_store(settings)
    run = await store.get(args.run_id)
    if run is None:
        logger.error("Run not found: %s", args.run_id)
        return 1

    _print_run(run)
    if args.logs:
        for stage in run.stages:
            if stage.log_ref:
                print(f"\n--- {stage.stage.value} ---")
                print(await store.read_log(stage.log_ref))
    return 0


async def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    """List recent runs, newest first."""
    from shipflow.storage.run_store_factory import create_run_store

    store = create_run_store(settings)
    runs = await store.list_runs(limit=args.limit)
    if not runs:
        print("No runs recorded.")
        return 0

    for run in runs:
        failed = f" {run.failed_stage.value}" if run.failed_stage else ""
        print(
            f"{run.run_id}  {run.trigger.short_revision}  "
            f"{run.status.value:<9}{failed}"
        )
    return 0


async def _cmd_watch(args: argparse.Namespace, settings: Settings) -> int:
    """Block until an application is synced or the timeout elapses."""
    from shipflow.api.facade import create_reconciliation_agent
    from shipflow.reconcile.watcher import StatusWatcher

    if not settings.reconcile_url:
        logger.error("RECONCILE_URL is not configured")
        return 1

    agent = create_reconciliation_agent(settings)
    try:
        watcher = StatusWatcher(agent, poll_interval_s=settings.reconcile_poll_interval_s)
        result = await watcher.wait_for(
            args.application,
            revision=args.revision,
            timeout_s=args.timeout or settings.reconcile_timeout_s,
        )
    finally:
        await agent.close()

    states = " -> ".join(s.value for s in result.transitions)
    print(f"\n{args.application}: {states}")
    print(f"  Converged:    {'yes' if result.converged else 'no'}")
    print(f"  Elapsed:      {result.elapsed_s:.1f}s")
    return 0 if result.converged else 1


def _print_result(result: PromotionResult) -> None:
    _print_run(result.run)
    if result.reconciliation is not None:
        states = " -> ".join(s.value for s in result.reconciliation.transitions)
        print(f"  Reconcile:    {states}")


def _print_run(run: PipelineRun) -> None:
    """Print a human-readable summary of a PipelineRun."""
    print(f"\nRun {run.run_id}:")
    print(f"  Revision:     {run.trigger.revision} ({run.trigger.branch})")
    print(f"  Status:       {run.status.value}")
    for stage in run.stages:
        line = f"    {stage.stage.value:<16} {stage.status.value}"
        if stage.error_kind:
            line += f" [{stage.error_kind.value}]"
        if stage.duration_ms:
            line += f" {stage.duration_ms}ms"
        print(line)
    if run.image:
        print(f"  Image:        {run.image.reference} ({run.image.digest})")
    if run.config_revision:
        print(f"  Config rev:   {run.config_revision}")
    if run.error_message:
        print(f"  Error:        {run.error_message}")


def _load_settings(verbose: bool) -> Settings:
    """Load settings and configure logging from them."""
    from shipflow.config.settings import Settings
    from shipflow.logging.logger import setup_logging

    settings = Settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    return settings


if __name__ == "__main__":
    sys.exit(main())
