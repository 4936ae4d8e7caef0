# src/build/runner.py — v1
"""Build-and-Test Runner — compile the source tree and run its unit tests.

Given a checked-out tree at one revision, runs the configured build command,
then the test command, and reports either the built artifact location or
the first failure. Fail-fast: a failing build never reaches the tests.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from shipflow.build.test_report import find_first_failure
from shipflow.core.errors import BuildFailure, StageTimeout, TestFailure
from shipflow.core.proc import SESSION_KWARGS, communicate_or_kill

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Exit status and merged stdout/stderr of one command."""

    argv: list[str]
    exit_code: int
    output: str
    duration_ms: int = 0


CommandExecutor = Callable[[list[str], Path, float], Awaitable[CommandResult]]


async def run_command(argv: list[str], cwd: Path, timeout_s: float) -> CommandResult:
    """Run a command with merged output and a hard timeout.

    The process tree is killed when the timeout expires and also when the
    caller is cancelled (e.g. by the runner's stage timeout).

    Raises:
        StageTimeout: Command did not finish in time.
        BuildFailure: Executable not found.
    """
    start_ns = time.monotonic_ns()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            **SESSION_KWARGS,
        )
    except FileNotFoundError as e:
        raise BuildFailure(f"Command not found: {argv[0]}") from e

    try:
        stdout, _ = await communicate_or_kill(proc, timeout_s)
    except asyncio.TimeoutError as e:
        raise StageTimeout(f"{shlex.join(argv)} exceeded {timeout_s:.0f}s") from e

    return CommandResult(
        argv=argv,
        exit_code=proc.returncode if proc.returncode is not None else -1,
        output=stdout.decode("utf-8", errors="replace"),
        duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
    )


@dataclass
class BuildOutput:
    """Successful build-and-test verdict."""

    artifact_path: Path
    log: str
    commands: list[CommandResult] = field(default_factory=list)


class BuildTestRunner:
    """Run build then tests in a source tree.

    Args:
        build_command: Shell-style build command line.
        test_command: Shell-style test command line.
        artifact_path: Artifact location relative to the source tree.
        junit_report: Optional JUnit XML path relative to the source tree.
        timeout_s: Budget for each command.
        executor: Command executor (injectable for tests).
    """

    def __init__(
        self,
        build_command: str,
        test_command: str,
        artifact_path: str,
        junit_report: str = "",
        timeout_s: float = 1800.0,
        executor: CommandExecutor | None = None,
    ) -> None:
        self._build_argv = shlex.split(build_command)
        self._test_argv = shlex.split(test_command)
        self._artifact_path = artifact_path
        self._junit_report = junit_report
        self._timeout_s = timeout_s
        self._executor = executor or run_command

    async def run(self, source_path: Path, revision: str) -> BuildOutput:
        """Build and test one revision.

        Raises:
            BuildFailure: Build command failed or produced no artifact.
            TestFailure: Test command failed.
            StageTimeout: A command exceeded its budget.
        """
        source_path = Path(source_path)
        if not source_path.is_dir():
            raise BuildFailure(f"Source tree not found: {source_path}")

        log_parts: list[str] = []
        commands: list[CommandResult] = []

        if self._build_argv:
            logger.info("Building revision %s: %s", revision, shlex.join(self._build_argv))
            build = await self._executor(self._build_argv, source_path, self._timeout_s)
            commands.append(build)
            log_parts.append(_format_section(build))
            if build.exit_code != 0:
                error = BuildFailure(
                    f"Build exited with code {build.exit_code}\n{_tail(build.output)}"
                )
                error.log = "\n".join(log_parts)
                raise error

        artifact = source_path / self._artifact_path
        if not artifact.exists():
            raise BuildFailure(f"Build produced no artifact at {self._artifact_path}")

        if self._test_argv:
            logger.info("Testing revision %s: %s", revision, shlex.join(self._test_argv))
            tests = await self._executor(self._test_argv, source_path, self._timeout_s)
            commands.append(tests)
            log_parts.append(_format_section(tests))
            if tests.exit_code != 0:
                report = source_path / self._junit_report if self._junit_report else None
                error = TestFailure(
                    f"Tests exited with code {tests.exit_code}",
                    first_failing_test=find_first_failure(tests.output, report),
                )
                error.log = "\n".join(log_parts)
                raise error

        logger.info("Revision %s built and tested, artifact %s", revision, artifact)
        return BuildOutput(
            artifact_path=artifact,
            log="\n".join(log_parts),
            commands=commands,
        )


def _format_section(result: CommandResult) -> str:
    return (
        f"$ {shlex.join(result.argv)}\n{result.output}"
        f"[exit {result.exit_code}, {result.duration_ms}ms]\n"
    )


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.rstrip().splitlines()[-lines:])
