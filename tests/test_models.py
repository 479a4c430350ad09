"""Tests for data models."""

import json

import pytest
from pydantic import ValidationError

from skill_synthesis.errors import ConfigError
from skill_synthesis.models import (
    Fail,
    GenerationOutcome,
    LintIssue,
    PackageFacts,
    Pass,
    Severity,
    TestCase,
    TestResult,
    Timeout,
    ValidationMode,
)


class TestExecutionResults:
    def test_flags(self):
        assert Pass("").is_pass and not Pass("").is_fail
        assert Fail("x").is_fail and not Fail("x").is_timeout
        assert Timeout().is_timeout and not Timeout().is_pass

    def test_error_messages(self):
        assert Pass("out").error_message() is None
        assert Fail("boom").error_message() == "boom"
        assert Timeout().error_message() == "Test execution timed out (60 seconds)"
        assert Timeout(2.5).error_message() == "Test execution timed out (2.5 seconds)"


class TestTestResult:
    def test_from_cases_counts(self):
        result = TestResult.from_cases([
            TestCase("a", Pass(""), "x"),
            TestCase("b", Fail("e"), "y"),
            TestCase("c", Timeout(), "z"),
        ])
        assert (result.passed, result.failed) == (1, 2)
        assert result.passed + result.failed == len(result.test_cases)
        assert [c.pattern_name for c in result.failed_cases] == ["b", "c"]
        assert not result.all_passed

    def test_empty_result_passes(self):
        assert TestResult().all_passed


class TestValidationMode:
    def test_parse(self):
        assert ValidationMode.parse("Minimal") == ValidationMode.MINIMAL
        assert ValidationMode.parse(ValidationMode.ADAPTIVE) == ValidationMode.ADAPTIVE

    def test_parse_unknown(self):
        with pytest.raises(ConfigError, match="thorough"):
            ValidationMode.parse("exhaustive")


class TestPackageFacts:
    def test_from_json_file(self, tmp_path):
        path = tmp_path / "facts.json"
        path.write_text(json.dumps({
            "package_name": "clicktool",
            "version": "8.1.7",
            "project_urls": [["Homepage", "https://example.org"]],
        }))

        facts = PackageFacts.from_json_file(path)

        assert facts.package_name == "clicktool"
        assert facts.project_urls == [("Homepage", "https://example.org")]
        assert facts.ecosystem == "python"
        assert facts.license is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            PackageFacts.from_json_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "facts.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            PackageFacts.from_json_file(path)

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            PackageFacts(package_name="clicktool")

    def test_immutable(self, facts):
        with pytest.raises(ValidationError):
            facts.version = "9.0"


class TestGenerationOutcome:
    def test_lint_errors(self):
        outcome = GenerationOutcome(
            artifact="",
            attempts=1,
            verified=False,
            lint_issues=[LintIssue.error("structure", "a"), LintIssue.warning("content", "b")],
        )
        assert [i.severity for i in outcome.lint_errors] == [Severity.ERROR]
