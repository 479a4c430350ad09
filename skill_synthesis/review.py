"""Model-based review of a finished SKILL.md.

The review is advisory: its issues are reported and fed into the next
synthesis attempt, but they do not decide the verdict.
"""

from __future__ import annotations

import json
import logging
import re

from .errors import SynthesisError
from .llm import LlmClient
from .models import ReviewIssue, ReviewResult
from .prompts import review_prompt

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)```", re.DOTALL)
_PLAIN_FENCE_RE = re.compile(r"```\s*(\{.*?)```", re.DOTALL)


def extract_json_block(text: str) -> str:
    """Pull a JSON object out of a reply that may carry fences or preamble."""
    text = text.strip()

    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    match = _PLAIN_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


def parse_review_response(response: str, strict: bool = False) -> ReviewResult:
    """Parse the reviewer's JSON verdict.

    In non-strict mode an unparseable reply counts as a pass so a flaky
    reviewer never blocks the pipeline.

    Raises:
        SynthesisError: In strict mode, when the reply is not valid JSON.
    """
    try:
        data = json.loads(extract_json_block(response))
    except json.JSONDecodeError as e:
        if strict:
            raise SynthesisError(
                f"Review returned an unparseable response: {response[:500]}"
            ) from e
        logger.warning("Failed to parse review verdict (%s), treating as pass", e)
        return ReviewResult(passed=True)

    if not isinstance(data, dict):
        return ReviewResult(passed=True)

    issues = []
    for item in data.get("issues") or []:
        if not isinstance(item, dict) or not item.get("complaint"):
            continue
        issues.append(ReviewIssue(
            severity=str(item.get("severity") or "error"),
            category=str(item.get("category") or "accuracy"),
            complaint=str(item["complaint"]),
            evidence=str(item.get("evidence") or ""),
        ))

    passed = data.get("passed", True)
    return ReviewResult(passed=passed if isinstance(passed, bool) else True, issues=issues)


def format_review_feedback(result: ReviewResult) -> str | None:
    """Reviewer issues as patch instructions, or None when there are none."""
    if not result.issues:
        return None

    accuracy = [i for i in result.issues if i.category != "safety"]
    safety = [i for i in result.issues if i.category == "safety"]

    lines = ["REVIEW FAILED. Fix the following issues. Do NOT regenerate from scratch.", ""]
    if accuracy:
        lines.append("ACCURACY ISSUES:")
        for n, issue in enumerate(accuracy, start=1):
            lines.append(f"{n}. [{issue.severity}] {issue.complaint}")
            if issue.evidence:
                lines.append(f"   Evidence: {issue.evidence}")
        lines.append("")
    if safety:
        lines.append("SAFETY ISSUES:")
        lines.extend(f"{n}. {issue.complaint}" for n, issue in enumerate(safety, start=1))
        lines.append("")

    lines.append("Instructions:")
    lines.append("- Fix ONLY the listed issues")
    lines.append("- Keep all other content EXACTLY as-is")
    lines.append("- Output the complete SKILL.md")
    return "\n".join(lines)


class SkillReviewer:
    def __init__(self, client: LlmClient, custom_instructions: str | None = None, strict: bool = False):
        self.client = client
        self.custom_instructions = custom_instructions
        self.strict = strict

    async def review(self, skill_md: str) -> ReviewResult:
        response = await self.client.complete(review_prompt(skill_md, self.custom_instructions))
        result = parse_review_response(response, strict=self.strict)
        if result.issues:
            logger.info("Review reported %d issue(s) (passed=%s)", len(result.issues), result.passed)
        return result
