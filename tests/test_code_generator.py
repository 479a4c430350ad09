"""Tests for test-script synthesis."""

import pytest
from unittest.mock import AsyncMock

from skill_synthesis.code_generator import (
    TestCodeGenerator,
    create_test_prompt,
    extract_code_from_response,
)
from skill_synthesis.models import CodePattern

PATTERN = CodePattern(
    name="Basic Command",
    description="Define a command and run it.",
    code="import click\n\n@click.command()\ndef hello():\n    click.echo('hi')",
)


class TestCreateTestPrompt:
    def test_contains_pattern(self):
        prompt = create_test_prompt(PATTERN, installed=["requests", "click"])
        assert "Pattern: Basic Command" in prompt
        assert "Define a command and run it." in prompt
        assert PATTERN.code in prompt
        assert "click, requests" in prompt
        assert "✓ Test passed: Basic Command" in prompt

    def test_stdlib_only_environment(self):
        assert "(standard library only)" in create_test_prompt(PATTERN)

    def test_optional_sections(self):
        prompt = create_test_prompt(
            PATTERN, custom_instructions="Use tmp_path for files.", local_package="clicktool"
        )
        assert "## Additional Instructions" in prompt
        assert "Use tmp_path for files." in prompt
        assert '"clicktool" is installed from a local checkout' in prompt

    def test_optional_sections_absent_by_default(self):
        prompt = create_test_prompt(PATTERN)
        assert "Additional Instructions" not in prompt
        assert "local checkout" not in prompt


class TestExtractCodeFromResponse:
    def test_python_fence(self):
        response = "Here you go:\n```python\nprint('hi')\n```\nGood luck."
        assert extract_code_from_response(response) == "print('hi')"

    def test_python_fence_preferred_over_others(self):
        response = "```bash\npip install x\n```\n\n```python\nimport x\n```"
        assert extract_code_from_response(response) == "import x"

    def test_any_fence(self):
        assert extract_code_from_response("```\nx = 1\n```") == "x = 1"

    def test_raw_text(self):
        assert extract_code_from_response("  x = 1\nprint(x)  ") == "x = 1\nprint(x)"


class TestTestCodeGenerator:
    @pytest.mark.asyncio
    async def test_generate_test_code(self):
        client = AsyncMock()
        client.complete.return_value = "```python\nprint('✓ Test passed: Basic Command')\n```"
        generator = TestCodeGenerator(client, custom_instructions="Be brief.")

        code = await generator.generate_test_code(PATTERN, installed=["click"])

        assert code == "print('✓ Test passed: Basic Command')"
        prompt = client.complete.await_args.args[0]
        assert "Pattern: Basic Command" in prompt
        assert "Be brief." in prompt

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self):
        client = AsyncMock()
        client.complete.side_effect = RuntimeError("invalid API key")

        with pytest.raises(RuntimeError, match="invalid API key"):
            await TestCodeGenerator(client).generate_test_code(PATTERN)
