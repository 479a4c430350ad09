"""Tests for the SKILL.md linter."""

import pytest
import yaml

from skill_synthesis.lint import SkillLinter, has_errors, parse_frontmatter
from skill_synthesis.models import Severity


@pytest.fixture()
def linter():
    return SkillLinter()


def _categories(issues, severity=Severity.ERROR):
    return [i.category for i in issues if i.severity == severity]


class TestParseFrontmatter:
    def test_values_stay_strings(self):
        data = parse_frontmatter("---\nname: pkg\nversion: 2.10\n---\nbody")
        assert data == {"name": "pkg", "version": "2.10"}

    def test_absent(self):
        assert parse_frontmatter("# Title\n") is None

    def test_invalid_yaml(self):
        with pytest.raises(yaml.YAMLError):
            parse_frontmatter("---\nname: [unclosed\n---\n")


class TestSkillLinter:
    def test_valid_document_has_no_errors(self, linter, skill_md):
        issues = linter.lint(skill_md)
        assert not has_errors(issues)

    def test_missing_frontmatter(self, linter, skill_md):
        body = skill_md.split("---\n", 2)[2]
        issues = linter.check_frontmatter(body)
        assert len(issues) == 1
        assert "Missing frontmatter" in issues[0].message

    def test_missing_required_field(self, linter):
        issues = linter.check_frontmatter("---\nname: pkg\nversion: 1.0\necosystem: python\nlicense: MIT\n---\n")
        assert [i.message for i in issues] == ["Missing required field: description"]

    def test_unknown_version_and_missing_license_warn(self, linter):
        content = "---\nname: pkg\ndescription: d\nversion: unknown\necosystem: python\n---\n"
        issues = linter.check_frontmatter(content)
        assert not has_errors(issues)
        assert len(_categories(issues, Severity.WARNING)) == 2

    def test_missing_sections(self, linter):
        issues = linter.check_structure("## Imports\n\n## Core Patterns\n")
        assert [i.message for i in issues] == ["Missing required section: ## Pitfalls"]

    def test_no_code_examples(self, linter):
        issues = linter.check_content("## Pitfalls\n\n### Wrong\n\n### Right\n")
        assert "content" in _categories(issues)

    def test_identical_wrong_and_right(self, linter):
        content = (
            "## Pitfalls\n\n### Wrong: x\n\n```python\nfoo()\n```\n\n"
            "### Right: y\n\n```python\nfoo()\n```\n"
        )
        issues = linter.check_content(content)
        assert any("identical" in i.message for i in issues)

    def test_repetition(self, linter):
        content = "\n".join(f"The quick brown fox jumps over item {n}" for n in range(12))
        issues = linter.check_degeneration(content)
        assert any("Repetitive content" in i.message for i in issues)

    def test_repetition_inside_code_is_fine(self, linter):
        lines = [f"result = compute_something_long({n})" for n in range(12)]
        content = "```python\n" + "\n".join(lines) + "\n```\n"
        assert linter.check_degeneration(content) == []

    def test_gibberish_token(self, linter):
        issues = linter.check_degeneration("word " + "x" * 120)
        assert any("Nonsense token" in i.message for i in issues)

    def test_dotted_name_is_not_gibberish(self, linter):
        name = ".".join(["averyveryverylongmodulename"] * 4)
        assert linter.check_degeneration(f"Use {name} here.") == []

    def test_unclosed_fence(self, linter):
        issues = linter.check_degeneration("```python\nprint(1)\n")
        assert any("Unclosed code block" in i.message for i in issues)

    def test_prompt_leak_is_warning(self, linter):
        issues = linter.check_degeneration("Return JSON: with the fields")
        assert _categories(issues, Severity.WARNING) == ["degeneration"]
        assert not has_errors(issues)
