"""Structural linter for SKILL.md files.

Checks the frontmatter, the required sections, basic content quality and
the usual signs of degenerated model output (repetition, gibberish tokens,
truncated fences).
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

import yaml

from .models import LintIssue, Severity

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "description", "version", "ecosystem")
REQUIRED_SECTIONS = ("## Imports", "## Core Patterns", "## Pitfalls")

MIN_CONTENT_LENGTH = 1000
REPEAT_PREFIX_LEN = 20
REPEAT_MIN_RUN = 10
MAX_TOKEN_LEN = 80
MAX_LINE_LEN = 1000

# Phrases from the synthesis prompts that must never reach the artifact
PROMPT_LEAKS = (
    "OUTPUT: start directly with the frontmatter",
    "CUSTOM INSTRUCTIONS FOR THIS PACKAGE",
    "Never use placeholder names",
    "Return JSON:",
    "Your job is to",
    "3-5 patterns. Each one is",
    "3-5 pairs, each a",
)

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_DOTTED_PART_RE = re.compile(r"^\w{1,40}$")


class Linter(Protocol):
    def lint(self, content: str) -> list[LintIssue]:
        ...


def parse_frontmatter(content: str) -> dict[str, str] | None:
    """Frontmatter as a string mapping, None when absent.

    Scalars stay strings (``version: 2.10`` is "2.10", not 2.1).

    Raises:
        yaml.YAMLError: If the block is not valid YAML.
    """
    match = _FRONTMATTER_RE.match(content)
    if match is None:
        return None
    data = yaml.load(match.group(1), Loader=yaml.BaseLoader)
    if not isinstance(data, dict):
        return {}
    return {str(k): v if isinstance(v, str) else str(v) for k, v in data.items()}


def _code_mask(lines: list[str]) -> list[bool]:
    """True for lines inside (or opening) a fenced block."""
    mask = []
    in_code = False
    for line in lines:
        if line.lstrip().startswith("```"):
            in_code = not in_code
        mask.append(in_code)
    return mask


class SkillLinter:
    def lint(self, content: str) -> list[LintIssue]:
        issues: list[LintIssue] = []
        issues.extend(self.check_frontmatter(content))
        issues.extend(self.check_structure(content))
        issues.extend(self.check_content(content))
        issues.extend(self.check_degeneration(content))
        logger.debug("Lint found %d issues", len(issues))
        return issues

    def check_frontmatter(self, content: str) -> list[LintIssue]:
        try:
            frontmatter = parse_frontmatter(content)
        except yaml.YAMLError as e:
            return [LintIssue.error(
                "frontmatter",
                f"Frontmatter is not valid YAML: {e}",
                "Quote values that contain ':' characters",
            )]

        if not frontmatter:
            return [LintIssue.error(
                "frontmatter",
                "Missing frontmatter (---...---)",
                "Add frontmatter with name, description, version, ecosystem",
            )]

        issues = []
        for key in REQUIRED_FIELDS:
            if not frontmatter.get(key, "").strip():
                issues.append(LintIssue.error(
                    "frontmatter",
                    f"Missing required field: {key}",
                    f"Add '{key}: <value>' to frontmatter",
                ))

        if frontmatter.get("version") == "unknown":
            issues.append(LintIssue.warning(
                "frontmatter",
                "Version is 'unknown', version extraction failed",
                "Pass the package version explicitly",
            ))

        if "license" not in frontmatter:
            issues.append(LintIssue.warning(
                "frontmatter",
                "'license' field is missing",
                "Add 'license: MIT' (or the actual license) to frontmatter",
            ))
        return issues

    def check_structure(self, content: str) -> list[LintIssue]:
        issues = []
        for section in REQUIRED_SECTIONS:
            if not re.search(rf"^{re.escape(section)}\s*$", content, re.MULTILINE):
                issues.append(LintIssue.error(
                    "structure",
                    f"Missing required section: {section}",
                    f"Add a '{section}' section",
                ))
        return issues

    def check_content(self, content: str) -> list[LintIssue]:
        issues = []
        if "```" not in content:
            issues.append(LintIssue.error(
                "content", "No code examples found", "Add code examples in ```python blocks"
            ))

        if len(content) < MIN_CONTENT_LENGTH:
            issues.append(LintIssue.warning(
                "content",
                f"Content is very short ({len(content)} chars)",
                "Consider adding more examples and explanations",
            ))

        pitfalls = self._pitfalls_section(content)
        if pitfalls is not None:
            has_wrong = "### Wrong" in pitfalls or "### ❌" in pitfalls
            has_right = "### Right" in pitfalls or "### ✅" in pitfalls
            if not (has_wrong and has_right):
                issues.append(LintIssue.info(
                    "content",
                    "Pitfalls section should include 'Wrong' and 'Right' examples",
                    "Use ### Wrong: and ### Right: subsections in Pitfalls",
                ))

            blocks = [
                block.split("\n", 1)[1].strip() if "\n" in block else block.strip()
                for block in pitfalls.split("```")[1::2]
            ]
            for first, second in zip(blocks, blocks[1:]):
                if first and first == second:
                    issues.append(LintIssue.error(
                        "content",
                        "Found identical 'Wrong' and 'Right' examples in Pitfalls section",
                        "The Right example must show different code from the Wrong one",
                    ))
                    break
        return issues

    @staticmethod
    def _pitfalls_section(content: str) -> str | None:
        match = re.search(r"^## Pitfalls\s*$", content, re.MULTILINE)
        if match is None:
            return None
        rest = content[match.end():]
        end = re.search(r"^## ", rest, re.MULTILINE)
        return rest[: end.start()] if end else rest

    def check_degeneration(self, content: str) -> list[LintIssue]:
        issues = []
        lines = content.splitlines()
        in_code = _code_mask(lines)

        # repeated line prefix outside code
        i = 0
        while i < len(lines):
            if in_code[i] or len(lines[i]) < REPEAT_PREFIX_LEN:
                i += 1
                continue
            prefix = lines[i][:REPEAT_PREFIX_LEN]
            run = 1
            while i + run < len(lines) and not in_code[i + run] and lines[i + run].startswith(prefix):
                run += 1
            if run >= REPEAT_MIN_RUN:
                issues.append(LintIssue.error(
                    "degeneration",
                    f"Repetitive content: {run} consecutive lines share prefix '{prefix}'",
                    "Model output degenerated into repetition. Regenerate this section.",
                ))
                break
            i += run

        # gibberish tokens
        token_issue = self._long_token(lines, in_code)
        if token_issue:
            issues.append(token_issue)

        # prompt leaks
        for idx, line in enumerate(lines):
            if in_code[idx]:
                continue
            for phrase in PROMPT_LEAKS:
                if phrase in line:
                    issues.append(LintIssue.warning(
                        "degeneration",
                        f"Prompt instruction leak: '{phrase}'",
                        "Prompt instructions were copied into the output. Regenerate this section.",
                    ))
                    break

        fence_count = sum(1 for line in lines if line.lstrip().startswith("```"))
        if fence_count % 2:
            issues.append(LintIssue.error(
                "degeneration",
                f"Unclosed code block ({fence_count} fences, expected even number)",
                "Output was likely truncated by the token limit. Regenerate with higher max_tokens.",
            ))

        for idx, line in enumerate(lines):
            if not in_code[idx] and len(line) > MAX_LINE_LEN:
                issues.append(LintIssue.error(
                    "degeneration",
                    f"Excessively long line detected ({len(line)} chars)",
                    "Lines this long outside code blocks suggest degeneration. Regenerate this section.",
                ))
                break

        return issues

    @staticmethod
    def _long_token(lines: list[str], in_code: list[bool]) -> LintIssue | None:
        for idx, line in enumerate(lines):
            if in_code[idx]:
                continue
            for word in line.split():
                clean = word.strip("*`_,-")
                if len(clean) <= MAX_TOKEN_LEN:
                    continue
                parts = clean.split(".")
                # fully qualified names like a.b.c.D are fine
                if len(parts) >= 2 and all(_DOTTED_PART_RE.match(p) for p in parts):
                    continue
                return LintIssue.error(
                    "degeneration",
                    f"Nonsense token detected ({len(clean)} chars): '{clean[:40]}...'",
                    "Model output contains gibberish. Regenerate this section.",
                )
        return None


def has_errors(issues: list[LintIssue]) -> bool:
    return any(i.severity == Severity.ERROR for i in issues)
