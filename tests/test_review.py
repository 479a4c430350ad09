"""Tests for the model-based review stage."""

import pytest
from unittest.mock import AsyncMock

from skill_synthesis.errors import SynthesisError
from skill_synthesis.models import ReviewIssue, ReviewResult
from skill_synthesis.review import (
    SkillReviewer,
    extract_json_block,
    format_review_feedback,
    parse_review_response,
)


class TestExtractJsonBlock:
    def test_json_fence(self):
        assert extract_json_block('Sure:\n```json\n{"passed": true}\n```') == '{"passed": true}'

    def test_plain_fence(self):
        assert extract_json_block('```\n{"passed": false}\n```') == '{"passed": false}'

    def test_bare_object_with_preamble(self):
        assert extract_json_block('Verdict: {"passed": true} done') == '{"passed": true}'


class TestParseReviewResponse:
    def test_issues(self):
        response = (
            '{"passed": false, "issues": ['
            '{"severity": "error", "category": "accuracy", "complaint": "wrong kwarg", "evidence": "foo(x=1)"},'
            '{"severity": "warning", "category": "safety", "complaint": "shell=True"},'
            '{"severity": "error"}'
            ']}'
        )
        result = parse_review_response(response)

        assert result.passed is False
        assert [i.complaint for i in result.issues] == ["wrong kwarg", "shell=True"]
        assert result.issues[0].evidence == "foo(x=1)"

    def test_unparseable_is_pass(self):
        assert parse_review_response("no idea") == ReviewResult(passed=True)

    def test_unparseable_strict_raises(self):
        with pytest.raises(SynthesisError):
            parse_review_response("no idea", strict=True)

    def test_non_object_is_pass(self):
        assert parse_review_response("[1, 2]").passed is True


class TestFormatReviewFeedback:
    def test_none_without_issues(self):
        assert format_review_feedback(ReviewResult(passed=True)) is None

    def test_groups_by_category(self):
        result = ReviewResult(passed=False, issues=[
            ReviewIssue("error", "accuracy", "wrong kwarg", "foo(x=1)"),
            ReviewIssue("warning", "safety", "uses shell=True"),
        ])
        text = format_review_feedback(result)

        assert text.startswith("REVIEW FAILED.")
        assert "ACCURACY ISSUES:\n1. [error] wrong kwarg\n   Evidence: foo(x=1)" in text
        assert "SAFETY ISSUES:\n1. uses shell=True" in text


class TestSkillReviewer:
    @pytest.mark.asyncio
    async def test_review(self, skill_md):
        client = AsyncMock()
        client.complete.return_value = '```json\n{"passed": true, "issues": []}\n```'

        result = await SkillReviewer(client).review(skill_md)

        assert result.passed
        assert skill_md in client.complete.await_args.args[0]
