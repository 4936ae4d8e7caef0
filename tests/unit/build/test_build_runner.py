# tests/unit/build/test_build_runner.py — v1
"""Tests for build/runner.py — build-then-test execution."""

from __future__ import annotations

import asyncio
import shutil
import sys
from pathlib import Path

import pytest

from shipflow.build.runner import BuildTestRunner, CommandResult, run_command
from shipflow.core.errors import BuildFailure, StageTimeout, TestFailure


def _runner(executor, **overrides) -> BuildTestRunner:
    kwargs = {
        "build_command": "make build",
        "test_command": "make test",
        "artifact_path": "dist",
        "executor": executor,
    }
    kwargs.update(overrides)
    return BuildTestRunner(**kwargs)


class TestBuildTestRunner:
    @pytest.mark.asyncio
    async def test_success(self, executor, source_tree, trigger):
        output = await _runner(executor).run(source_tree, trigger.revision)
        assert output.artifact_path == source_tree / "dist"
        assert executor.calls == [["make", "build"], ["make", "test"]]
        assert "$ make build" in output.log
        assert "$ make test" in output.log
        assert len(output.commands) == 2

    @pytest.mark.asyncio
    async def test_build_failure_skips_tests(self, executor, source_tree, trigger):
        executor.results["make build"] = CommandResult(
            argv=["make", "build"], exit_code=2, output="main.go:12: undefined: Foo\n",
        )
        with pytest.raises(BuildFailure) as exc_info:
            await _runner(executor).run(source_tree, trigger.revision)
        assert executor.calls == [["make", "build"]]
        assert "undefined: Foo" in str(exc_info.value)
        assert "undefined: Foo" in exc_info.value.log

    @pytest.mark.asyncio
    async def test_missing_artifact(self, executor, trigger):
        with pytest.raises(BuildFailure, match="no artifact"):
            await _runner(executor).run(Path(trigger.source_path), trigger.revision)
        assert executor.calls == [["make", "build"]]

    @pytest.mark.asyncio
    async def test_missing_source_tree(self, executor, tmp_path):
        with pytest.raises(BuildFailure, match="Source tree not found"):
            await _runner(executor).run(tmp_path / "nope", "abc123")
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_test_failure_names_first_failing_test(self, executor, source_tree, trigger):
        executor.results["make test"] = CommandResult(
            argv=["make", "test"],
            exit_code=1,
            output=(
                "collected 12 items\n"
                "FAILED tests/test_orders.py::test_total - AssertionError\n"
                "FAILED tests/test_orders.py::test_tax - AssertionError\n"
            ),
        )
        with pytest.raises(TestFailure) as exc_info:
            await _runner(executor).run(source_tree, trigger.revision)
        assert exc_info.value.first_failing_test == "tests/test_orders.py::test_total"
        assert "collected 12 items" in exc_info.value.log

    @pytest.mark.asyncio
    async def test_junit_report_preferred(self, executor, source_tree, trigger):
        (source_tree / "report.xml").write_text(
            '<testsuite><testcase classname="orders" name="test_ok"/>'
            '<testcase classname="orders" name="test_refund"><failure/></testcase>'
            "</testsuite>",
            encoding="utf-8",
        )
        executor.results["make test"] = CommandResult(
            argv=["make", "test"], exit_code=1, output="FAILED something::else\n",
        )
        runner = _runner(executor, junit_report="report.xml")
        with pytest.raises(TestFailure) as exc_info:
            await runner.run(source_tree, trigger.revision)
        assert exc_info.value.first_failing_test == "orders::test_refund"

    @pytest.mark.asyncio
    async def test_empty_commands_skipped(self, executor, source_tree, trigger):
        runner = _runner(executor, build_command="", test_command="")
        output = await runner.run(source_tree, trigger.revision)
        assert executor.calls == []
        assert output.artifact_path.exists()

    @pytest.mark.asyncio
    async def test_command_split_shell_style(self, executor, source_tree, trigger):
        runner = _runner(executor, test_command="pytest -q -k 'not slow'")
        await runner.run(source_tree, trigger.revision)
        assert executor.calls[-1] == ["pytest", "-q", "-k", "not slow"]


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_output_and_exit_code(self, tmp_path):
        result = await run_command(
            [sys.executable, "-c", "import sys; print('hi'); sys.exit(3)"], tmp_path, 30,
        )
        assert result.exit_code == 3
        assert "hi" in result.output

    @pytest.mark.asyncio
    async def test_stderr_merged(self, tmp_path):
        result = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('err\\n')"], tmp_path, 30,
        )
        assert "err" in result.output

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        with pytest.raises(BuildFailure, match="Command not found"):
            await run_command(["definitely-not-a-command-xyz"], tmp_path, 30)

    @pytest.mark.asyncio
    @pytest.mark.skipif(shutil.which("sleep") is None, reason="sleep not available")
    async def test_timeout(self, tmp_path):
        with pytest.raises(StageTimeout):
            await run_command(["sleep", "5"], tmp_path, 0.2)

    @pytest.mark.asyncio
    @pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")
    async def test_cancelled_caller_kills_command(self, tmp_path):
        marker = tmp_path / "marker"
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                run_command(["sh", "-c", "sleep 1.5; touch marker"], tmp_path, 30), 0.3,
            )
        await asyncio.sleep(2)
        assert not marker.exists()

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX")
    async def test_timeout_kills_grandchildren(self, tmp_path):
        marker = tmp_path / "marker"
        script = "sleep 1.5 && touch marker &\nwait\n"
        with pytest.raises(StageTimeout):
            await run_command(["sh", "-c", script], tmp_path, 0.3)
        await asyncio.sleep(2)
        assert not marker.exists()
