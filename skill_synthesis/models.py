from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field

from .errors import ConfigError


# =============================================================================
# Input facts
# =============================================================================


class PackageFacts(BaseModel):
    """Facts collected about one package. Immutable for the duration of a run."""

    package_name: str = Field(..., description="Distribution name of the package")
    version: str = Field(..., description="Version string exactly as found in the manifest")
    license: str | None = Field(default=None, description="SPDX identifier or license name")
    project_urls: list[tuple[str, str]] = Field(
        default_factory=list,
        description="(label, url) pairs for the References section",
    )
    ecosystem: str = Field(default="python", description="Ecosystem tag written to the frontmatter")
    source_file_count: int = Field(default=0, description="Number of source files collected")

    source_content: str = ""
    test_content: str = ""
    examples_content: str = ""
    docs_content: str = ""
    changelog_content: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_json_file(cls, path: str | Path) -> PackageFacts:
        """Load facts produced by an external collector."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read package facts from {path}: {e}") from e
        return cls.model_validate(data)


# =============================================================================
# Patterns
# =============================================================================


class PatternCategory(str, Enum):
    BASIC_USAGE = "basic_usage"
    CONFIGURATION = "configuration"
    ERROR_HANDLING = "error_handling"
    ASYNC_PATTERN = "async_pattern"
    INTEGRATION = "integration"
    OTHER = "other"


@dataclass(frozen=True)
class CodePattern:
    """One named, code-bearing example from the Core Patterns section."""
    name: str
    description: str
    code: str
    category: PatternCategory = PatternCategory.BASIC_USAGE


class ValidationMode(str, Enum):
    """How many patterns are functionally tested per attempt."""
    THOROUGH = "thorough"
    MINIMAL = "minimal"
    ADAPTIVE = "adaptive"

    @classmethod
    def parse(cls, value: str | ValidationMode) -> ValidationMode:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ConfigError(f"Unknown validation mode '{value}' (expected one of: {valid})")


# =============================================================================
# Execution results
# =============================================================================


@dataclass(frozen=True)
class Pass:
    output: str

    is_pass = True
    is_fail = False
    is_timeout = False

    def error_message(self) -> str | None:
        return None


@dataclass(frozen=True)
class Fail:
    error: str

    is_pass = False
    is_fail = True
    is_timeout = False

    def error_message(self) -> str | None:
        return self.error


@dataclass(frozen=True)
class Timeout:
    seconds: float = 60

    is_pass = False
    is_fail = False
    is_timeout = True

    def error_message(self) -> str | None:
        return f"Test execution timed out ({self.seconds:g} seconds)"


ExecutionResult = Union[Pass, Fail, Timeout]


@dataclass(frozen=True)
class TestCase:
    """Outcome of one pattern in one validation pass."""
    pattern_name: str
    result: ExecutionResult
    generated_code: str

    __test__ = False


@dataclass
class TestResult:
    """Aggregate of a validation pass. Build with ``from_cases``."""
    passed: int = 0
    failed: int = 0
    test_cases: list[TestCase] = field(default_factory=list)

    __test__ = False

    @classmethod
    def from_cases(cls, cases: list[TestCase]) -> TestResult:
        passed = sum(1 for case in cases if case.result.is_pass)
        return cls(passed=passed, failed=len(cases) - passed, test_cases=list(cases))

    @property
    def all_passed(self) -> bool:
        return self.failed == 0

    @property
    def passed_cases(self) -> list[TestCase]:
        return [c for c in self.test_cases if c.result.is_pass]

    @property
    def failed_cases(self) -> list[TestCase]:
        return [c for c in self.test_cases if not c.result.is_pass]


# =============================================================================
# Lint issues and run outcome
# =============================================================================


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class LintIssue:
    severity: Severity
    category: str
    message: str
    suggestion: str | None = None

    @classmethod
    def error(cls, category: str, message: str, suggestion: str | None = None) -> LintIssue:
        return cls(Severity.ERROR, category, message, suggestion)

    @classmethod
    def warning(cls, category: str, message: str, suggestion: str | None = None) -> LintIssue:
        return cls(Severity.WARNING, category, message, suggestion)

    @classmethod
    def info(cls, category: str, message: str, suggestion: str | None = None) -> LintIssue:
        return cls(Severity.INFO, category, message, suggestion)


@dataclass
class ReviewIssue:
    severity: str
    category: str
    complaint: str
    evidence: str = ""


@dataclass
class ReviewResult:
    passed: bool
    issues: list[ReviewIssue] = field(default_factory=list)


@dataclass
class GenerationOutcome:
    """What a generation run hands back to its caller.

    ``verified`` is True only when the last attempt had no lint errors and
    no failing test cases. Otherwise ``lint_issues``, ``test_result`` and
    ``errors`` describe what was still wrong.
    """
    artifact: str
    attempts: int
    verified: bool
    lint_issues: list[LintIssue] = field(default_factory=list)
    test_result: TestResult | None = None
    review: ReviewResult | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def lint_errors(self) -> list[LintIssue]:
        return [i for i in self.lint_issues if i.severity == Severity.ERROR]
