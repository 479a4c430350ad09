"""Turns validation results into patch instructions for the next synthesis attempt.

Kept separate from the validator so the text is a pure function of its
inputs and can be tested on its own.
"""

from __future__ import annotations

from .models import LintIssue, Severity, TestResult

PATCH_HEADER = "SKILL.md PATCH REQUIRED. Do NOT regenerate from scratch."

PATCH_INSTRUCTIONS = """Instructions:
1. Keep every passing pattern above exactly as it is.
2. Fix or replace only the failing patterns.
3. Check the imports and API calls in the failing patterns against the real library.
4. Return the complete SKILL.md with the same sections."""


def generate_feedback(result: TestResult) -> str | None:
    """Patch request for a failed validation pass, or None when nothing failed.

    Failing cases are listed in document order with their generated test
    code and the captured error text.
    """
    if result.failed == 0:
        return None

    parts = [PATCH_HEADER, ""]

    passed = result.passed_cases
    if passed:
        parts.append("PATTERNS THAT PASSED (keep these EXACTLY as-is in the SKILL.md):")
        parts.extend(f"- {case.pattern_name}" for case in passed)
        parts.append("")

    parts.append("PATTERNS THAT FAILED (fix or replace ONLY these):")
    parts.append("")
    failures = []
    for case in result.failed_cases:
        failures.append(
            f"Pattern: {case.pattern_name}\n"
            f"Generated test code:\n```python\n{case.generated_code}\n```\n"
            f"Error: {case.result.error_message()}"
        )
    parts.append("\n\n---\n\n".join(failures))
    parts.append("")
    parts.append(PATCH_INSTRUCTIONS)

    return "\n".join(parts)


def format_lint_errors(issues: list[LintIssue]) -> str | None:
    """Error-severity lint issues as a bullet list, or None when there are none."""
    errors = [i for i in issues if i.severity == Severity.ERROR]
    if not errors:
        return None
    lines = [f"- [{i.category}] {i.message}" for i in errors]
    return "FORMAT VALIDATION FAILED:\n" + "\n".join(lines) + "\n\nPlease fix these format issues. Keep all content intact."
