# tests/unit/build/test_junit_report.py — v1
"""Tests for build/test_report.py — first failing test lookup."""

from __future__ import annotations

from shipflow.build.test_report import (
    find_first_failure,
    first_failure_from_junit,
    first_failure_from_output,
)

JUNIT = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest">
    <testcase classname="tests.test_api" name="test_health"/>
    <testcase classname="tests.test_api" name="test_create"><error message="boom"/></testcase>
    <testcase classname="tests.test_api" name="test_delete"><failure message="x"/></testcase>
  </testsuite>
</testsuites>
"""


class TestJunit:
    def test_first_failure(self, tmp_path):
        report = tmp_path / "report.xml"
        report.write_text(JUNIT, encoding="utf-8")
        assert first_failure_from_junit(report) == "tests.test_api::test_create"

    def test_no_failures(self, tmp_path):
        report = tmp_path / "report.xml"
        report.write_text('<testsuite><testcase name="ok"/></testsuite>', encoding="utf-8")
        assert first_failure_from_junit(report) is None

    def test_unreadable_report(self, tmp_path):
        report = tmp_path / "report.xml"
        report.write_text("<testsuite", encoding="utf-8")
        assert first_failure_from_junit(report) is None

    def test_no_classname(self, tmp_path):
        report = tmp_path / "report.xml"
        report.write_text(
            '<testsuite><testcase name="TestParse"><failure/></testcase></testsuite>',
            encoding="utf-8",
        )
        assert first_failure_from_junit(report) == "TestParse"


class TestOutput:
    def test_pytest_output(self):
        out = "....F\nFAILED tests/test_x.py::test_a - assert 1 == 2\n"
        assert first_failure_from_output(out) == "tests/test_x.py::test_a"

    def test_go_output(self):
        out = "=== RUN   TestParse\n--- FAIL: TestParse (0.00s)\nFAIL\n"
        assert first_failure_from_output(out) == "TestParse"

    def test_earliest_match_wins(self):
        out = "--- FAIL: TestFirst (0.01s)\nFAILED tests/test_x.py::test_later\n"
        assert first_failure_from_output(out) == "TestFirst"

    def test_pytest_collection_error(self):
        out = "ERROR tests/test_db.py::test_connect - ConnectionError\n"
        assert first_failure_from_output(out) == "tests/test_db.py::test_connect"

    def test_nothing_found(self):
        assert first_failure_from_output("make: *** [test] Error 1\n") is None


class TestFindFirstFailure:
    def test_falls_back_to_output_without_report(self, tmp_path):
        out = "FAILED tests/test_x.py::test_a\n"
        assert find_first_failure(out, tmp_path / "missing.xml") == "tests/test_x.py::test_a"

    def test_no_report_argument(self):
        assert find_first_failure("--- FAIL: TestA (0s)\n") == "TestA"
