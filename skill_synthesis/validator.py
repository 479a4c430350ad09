"""Functional validation of a SKILL.md: every selected pattern must actually run."""

from __future__ import annotations

import logging

from .code_generator import TestCodeGenerator
from .feedback import generate_feedback
from .models import CodePattern, Fail, TestCase, TestResult, ValidationMode
from .parser import extract_dependencies, extract_patterns, to_distribution_name
from .sandbox import BaseExecutor, provisioned

logger = logging.getLogger(__name__)


def select_patterns(patterns: list[CodePattern], mode: ValidationMode) -> list[CodePattern]:
    """Patterns to test under ``mode``, in document order.

    Adaptive currently selects like Minimal.
    """
    if mode == ValidationMode.THOROUGH:
        return list(patterns)
    return patterns[:1]


class PatternValidator:
    """Extracts patterns, provisions one sandbox and runs a generated test per pattern.

    Failures of the code under test are recorded as ``TestCase`` data. A
    ``SandboxError`` from setup or execution aborts the pass; the
    environment is cleaned up on every path.
    """

    def __init__(
        self,
        code_generator: TestCodeGenerator,
        executor: BaseExecutor,
        mode: ValidationMode = ValidationMode.THOROUGH,
    ):
        self.code_generator = code_generator
        self.executor = executor
        self.mode = mode

    async def validate(self, skill_md: str) -> TestResult:
        """Run one validation pass over ``skill_md``.

        Returns:
            TestResult with one TestCase per selected pattern. An artifact
            without patterns yields an empty result (nothing to disprove).

        Raises:
            SandboxError: If the sandbox cannot be provisioned or fails
                while running a script.
        """
        patterns = extract_patterns(skill_md)
        if not patterns:
            logger.info("No patterns found in SKILL.md, nothing to validate")
            return TestResult()

        selected = select_patterns(patterns, self.mode)
        dependencies = [to_distribution_name(d) for d in extract_dependencies(skill_md)]
        logger.info(
            "Validating %d of %d patterns (mode=%s, deps=%s)",
            len(selected),
            len(patterns),
            self.mode.value,
            dependencies,
        )

        cases: list[TestCase] = []
        async with provisioned(self.executor, dependencies) as env:
            for index, pattern in enumerate(selected, start=1):
                logger.info("  [%d/%d] Testing: %s", index, len(selected), pattern.name)
                cases.append(await self._test_pattern(env, pattern, dependencies))

        result = TestResult.from_cases(cases)
        logger.info("Validation finished: %d passed, %d failed", result.passed, result.failed)
        return result

    async def _test_pattern(self, env, pattern: CodePattern, dependencies: list[str]) -> TestCase:
        try:
            code = await self.code_generator.generate_test_code(pattern, installed=dependencies)
        except Exception as e:
            logger.warning("    ✗ Code generation failed for %s: %s", pattern.name, e)
            return TestCase(
                pattern_name=pattern.name,
                result=Fail(f"Code generation failed: {e}"),
                generated_code="",
            )

        result = await self.executor.run_code(env, code)
        if result.is_pass:
            logger.info("    ✓ Passed")
        else:
            # last traceback line carries the exception class and message
            lines = (result.error_message() or "").strip().splitlines()
            logger.warning("    ✗ %s", lines[-1] if lines else "failed")
        return TestCase(pattern_name=pattern.name, result=result, generated_code=code)

    @staticmethod
    def generate_feedback(result: TestResult) -> str | None:
        return generate_feedback(result)
