"""SKILL.md generation with a dual validation loop.

Stages run in order, each through a retrying model client:

1. API surface extraction        (source excerpt)
2. Usage pattern extraction      (tests and examples)
3. Conventions and pitfalls      (docs and changelog)
4. SKILL.md synthesis            (repeated on every attempt)
5. Review                        (advisory, repeated on every attempt)

After synthesis the artifact is linted and its Core Patterns are executed
in a sandbox. Failures are turned into patch instructions and fed back into
stage 4 until the artifact passes or the attempt budget runs out.

With an existing SKILL.md the first stage-4 call patches that file for the
new release instead of writing one from scratch.
"""

from __future__ import annotations

import logging

from . import prompts
from .code_generator import TestCodeGenerator
from .config import Settings
from .errors import SandboxError, SynthesisError, ToolUnavailableError
from .feedback import format_lint_errors, generate_feedback
from .lint import Linter, SkillLinter, has_errors
from .llm import LlmClient, create_client
from .models import (
    GenerationOutcome,
    LintIssue,
    PackageFacts,
    ReviewResult,
    Severity,
    TestResult,
    ValidationMode,
)
from .normalizer import normalize_skill_md
from .parser import extract_name, extract_version
from .resilient import ResilientLlmClient
from .review import SkillReviewer, format_review_feedback
from .sandbox import BaseExecutor, create_executor
from .validator import PatternValidator

logger = logging.getLogger(__name__)

STAGES = ("api_surface", "patterns", "context", "synthesis", "review", "test")


def strip_markdown_fences(content: str) -> str:
    """Remove a ```markdown (or bare ```) wrapper around the whole reply."""
    trimmed = content.strip()
    for opener in ("```markdown", "```md", "```"):
        if trimmed.startswith(opener) and trimmed.endswith("```") and len(trimmed) > len(opener) + 3:
            return trimmed[len(opener):-3].strip()
    return trimmed


class Generator:
    """Runs the synthesis stages and the generate-validate-retry loop.

    Args:
        client: Default model client for every stage.
        max_retries: Synthesis attempts; at least one attempt always runs.
        stage_clients: Per-stage overrides keyed by a name from ``STAGES``.
        executor: Sandbox executor. Created from ``sandbox_backend`` on
            first use when omitted.
        linter: Structural linter, ``SkillLinter`` by default.
        custom_instructions: Extra prompt text per stage name.
        existing_skill: A SKILL.md from an earlier release. The first
            synthesis patches it instead of writing from scratch.
    """

    def __init__(
        self,
        client: LlmClient,
        max_retries: int = 3,
        *,
        stage_clients: dict[str, LlmClient] | None = None,
        validation_mode: ValidationMode = ValidationMode.THOROUGH,
        enable_validation: bool = True,
        enable_review: bool = True,
        executor: BaseExecutor | None = None,
        sandbox_backend: str = "auto",
        linter: Linter | None = None,
        llm_max_retries: int = 3,
        llm_retry_delay: float = 2.0,
        custom_instructions: dict[str, str] | None = None,
        local_package: str | None = None,
        model_name: str | None = None,
        existing_skill: str | None = None,
    ):
        unknown = set(stage_clients or {}) - set(STAGES)
        if unknown:
            raise ValueError(f"Unknown stage(s): {', '.join(sorted(unknown))}")

        self.max_retries = max_retries
        self.validation_mode = validation_mode
        self.enable_validation = enable_validation
        self.enable_review = enable_review
        self.sandbox_backend = sandbox_backend
        self.linter = linter or SkillLinter()
        self.custom_instructions = custom_instructions or {}
        self.local_package = local_package
        self.model_name = model_name
        self.existing_skill = existing_skill or None
        self._executor = executor

        self._clients = {
            stage: ResilientLlmClient(
                (stage_clients or {}).get(stage, client),
                max_retries=llm_max_retries,
                retry_delay=llm_retry_delay,
            )
            for stage in STAGES
        }

    @property
    def executor(self) -> BaseExecutor:
        if self._executor is None:
            self._executor = create_executor(self.sandbox_backend)
        return self._executor

    def _custom(self, stage: str) -> str | None:
        return self.custom_instructions.get(stage) or None

    async def _extract(self, stage: str, prompt: str) -> str:
        logger.info("Stage %s: running...", stage)
        try:
            result = await self._clients[stage].complete(prompt)
        except Exception as e:
            raise SynthesisError(f"Stage '{stage}' failed: {e}") from e
        logger.info("Stage %s: complete (%d chars)", stage, len(result))
        return result

    async def generate(self, facts: PackageFacts) -> GenerationOutcome:
        """Produce a SKILL.md for ``facts``.

        Returns:
            GenerationOutcome. ``verified`` is False when the attempt budget
            ran out; the last artifact and its issues are returned anyway.

        Raises:
            SynthesisError: If an extraction stage or the first synthesis fails.
            ToolUnavailableError: If the sandbox tool is missing.
        """
        logger.info("Starting skill generation for %s v%s", facts.package_name, facts.version)
        previous_version = None
        if self.existing_skill:
            existing_name = extract_name(self.existing_skill)
            if existing_name and existing_name != facts.package_name:
                logger.warning(
                    "Existing SKILL.md is for %s, not %s", existing_name, facts.package_name
                )
            previous_version = extract_version(self.existing_skill)
            logger.info(
                "Update mode: patching existing SKILL.md (v%s -> v%s)",
                previous_version or "unknown",
                facts.version,
            )

        api_surface = await self._extract(
            "api_surface", prompts.api_surface_prompt(facts, self._custom("api_surface"))
        )
        patterns = await self._extract(
            "patterns", prompts.usage_patterns_prompt(facts, self._custom("patterns"))
        )
        context = await self._extract(
            "context", prompts.conventions_prompt(facts, self._custom("context"))
        )

        validator = None
        if self.enable_validation:
            validator = PatternValidator(
                TestCodeGenerator(
                    self._clients["test"],
                    custom_instructions=self._custom("test"),
                    local_package=self.local_package,
                ),
                self.executor,
                mode=self.validation_mode,
            )
        reviewer = SkillReviewer(self._clients["review"], self._custom("review"))

        attempts = max(1, self.max_retries)
        artifact: str | None = None
        feedback: str | None = None
        lint_issues: list[LintIssue] = []
        test_result: TestResult | None = None
        review_result: ReviewResult | None = None
        errors: list[str] = []
        used = 0

        for attempt in range(1, attempts + 1):
            logger.info("Synthesis attempt %d of %d", attempt, attempts)

            if artifact is None and self.existing_skill:
                prompt = prompts.update_prompt(
                    facts,
                    self.existing_skill,
                    api_surface,
                    patterns,
                    context,
                    custom=self._custom("synthesis"),
                    previous_version=previous_version,
                )
            else:
                prompt = prompts.synthesis_prompt(
                    facts,
                    api_surface,
                    patterns,
                    context,
                    custom=self._custom("synthesis"),
                    previous=artifact,
                    feedback=feedback,
                )
            try:
                raw = await self._clients["synthesis"].complete(prompt)
                if not raw.strip():
                    raise SynthesisError("model returned an empty response")
            except Exception as e:
                if artifact is None:
                    raise SynthesisError(f"Failed to synthesize SKILL.md: {e}") from e
                logger.warning("Synthesis failed on attempt %d, keeping previous artifact: %s", attempt, e)
                errors.append(f"attempt {attempt}: synthesis failed: {e}")
                break

            used = attempt
            artifact = normalize_skill_md(
                strip_markdown_fences(raw), facts, generated_with=self.model_name
            )

            review_result = await self._review(reviewer, artifact)

            logger.info("  → Running format validation (linter)...")
            lint_issues = self.linter.lint(artifact)
            lint_failed = has_errors(lint_issues)
            if lint_failed:
                error_count = sum(1 for i in lint_issues if i.severity == Severity.ERROR)
                logger.warning("  ✗ Format validation failed: %d errors", error_count)
            else:
                logger.info("  ✓ Format validation passed")

            test_result = None
            sandbox_error = None
            if validator is not None:
                logger.info("  → Running functional validation...")
                try:
                    test_result = await validator.validate(artifact)
                except ToolUnavailableError:
                    raise
                except SandboxError as e:
                    logger.warning("  ✗ Validation environment failed: %s", e)
                    sandbox_error = str(e)
                    errors.append(f"attempt {attempt}: sandbox error: {e}")

            tests_failed = sandbox_error is not None or (
                test_result is not None and not test_result.all_passed
            )
            if not lint_failed and not tests_failed:
                logger.info("✓ SKILL.md verified after %d attempt(s)", attempt)
                return GenerationOutcome(
                    artifact=artifact,
                    attempts=attempt,
                    verified=True,
                    lint_issues=lint_issues,
                    test_result=test_result,
                    review=review_result,
                    errors=errors,
                )

            feedback = self._build_feedback(lint_issues, test_result, sandbox_error, review_result)
            if attempt < attempts:
                logger.warning("Attempt %d failed validation, retrying with feedback", attempt)
        else:
            logger.warning("Max retries reached, returning best attempt despite issues")

        return GenerationOutcome(
            artifact=artifact,
            attempts=used,
            verified=False,
            lint_issues=lint_issues,
            test_result=test_result,
            review=review_result,
            errors=errors,
        )

    async def _review(self, reviewer: SkillReviewer, artifact: str) -> ReviewResult | None:
        if not self.enable_review:
            return None
        try:
            return await reviewer.review(artifact)
        except Exception as e:
            logger.warning("Review skipped: %s", e)
            return None

    @staticmethod
    def _build_feedback(
        lint_issues: list[LintIssue],
        test_result: TestResult | None,
        sandbox_error: str | None,
        review_result: ReviewResult | None,
    ) -> str:
        parts = []

        lint_feedback = format_lint_errors(lint_issues)
        if lint_feedback:
            parts.append(lint_feedback)

        if sandbox_error:
            parts.append(
                "VALIDATION ENVIRONMENT FAILED:\n"
                f"{sandbox_error}\n\n"
                "Every import in the ## Imports section must be a real, installable package."
            )

        if test_result is not None:
            test_feedback = generate_feedback(test_result)
            if test_feedback:
                parts.append(test_feedback)

        if review_result is not None:
            review_feedback = format_review_feedback(review_result)
            if review_feedback:
                parts.append(review_feedback)

        return "\n\n".join(parts)


# =============================================================================
# Convenience Functions
# =============================================================================


def build_generator(
    settings: Settings,
    dry_run: bool = False,
    executor: BaseExecutor | None = None,
    existing_skill: str | None = None,
) -> Generator:
    """Wire a Generator from settings. ``existing_skill`` turns on update mode."""
    settings.validate_choices()
    client = create_client(settings, dry_run=dry_run)
    if executor is None and settings.enable_validation:
        if dry_run:
            backend = "uv"
        else:
            backend = settings.sandbox_backend
        executor = create_executor(
            backend,
            timeout=settings.sandbox_timeout,
            image=settings.sandbox_image,
            memory_limit=settings.sandbox_memory_limit,
        )

    custom = {}
    if settings.test_custom_instructions:
        custom["test"] = settings.test_custom_instructions

    return Generator(
        client,
        max_retries=settings.generation_max_retries,
        validation_mode=settings.get_validation_mode(),
        enable_validation=settings.enable_validation,
        enable_review=settings.enable_review,
        executor=executor,
        sandbox_backend=settings.sandbox_backend,
        llm_max_retries=settings.llm_max_retries,
        llm_retry_delay=0.0 if dry_run else settings.llm_retry_delay,
        custom_instructions=custom,
        local_package=settings.local_package or None,
        model_name=None if dry_run else settings.llm_model,
        existing_skill=existing_skill,
    )


async def generate_skill(
    facts: PackageFacts,
    settings: Settings | None = None,
    dry_run: bool = False,
    existing_skill: str | None = None,
) -> GenerationOutcome:
    """Convenience function: build a Generator from settings and run it."""
    generator = build_generator(
        settings or Settings(), dry_run=dry_run, existing_skill=existing_skill
    )
    return await generator.generate(facts)
