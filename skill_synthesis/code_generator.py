"""Turns one extracted pattern into a runnable test script via the model."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from .llm import LlmClient
from .models import CodePattern
from .prompts import SUCCESS_MARKER

logger = logging.getLogger(__name__)

_PYTHON_FENCE_RE = re.compile(r"```(?:python|py)[ \t]*\n?(.*?)```", re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```[^\n`]*\n?(.*?)```", re.DOTALL)


def create_test_prompt(
    pattern: CodePattern,
    installed: Iterable[str] = (),
    custom_instructions: str | None = None,
    local_package: str | None = None,
) -> str:
    """Build the prompt asking for a single self-contained test script."""
    installed = sorted(installed)
    installed_str = ", ".join(installed) if installed else "(standard library only)"

    prompt = f"""You are checking that an example from a SKILL.md file really works.

Write ONE complete Python script that exercises the pattern below and proves it works.

Pattern: {pattern.name}
Description: {pattern.description}

Example from SKILL.md:
```python
{pattern.code}
```

ENVIRONMENT:
- The script runs as `python test.py` in a fresh, empty working directory
- There is no TTY and no user input
- Installed third-party packages: {installed_str}
- Do not install anything and do not import packages outside that list and the standard library

RULES:
1. Call the API exactly as the example does. Do not invent parameters or change signatures.
2. Assert on real behaviour (return values, shapes, lengths, ranges), not just that imports work.
3. Never assert exact floating point values, exact exception messages or exact help text.
4. Never assert on ANSI colours or terminal formatting. Capture output with io.StringIO if needed.
5. If the library ships a test client (TestClient, CliRunner, test_client()), use it.
6. Keep it under 40 lines, with no placeholders and no TODOs.
7. On success print exactly: {SUCCESS_MARKER} {pattern.name}
8. Let any failure raise. Do not catch exceptions just to print them.

Output only the script in a single ```python block."""

    if local_package:
        prompt += (
            f"\n\nIMPORTANT: \"{local_package}\" is installed from a local checkout. "
            "Import it normally but never try to install it."
        )

    if custom_instructions:
        prompt += f"\n\n## Additional Instructions\n\n{custom_instructions}\n"

    return prompt


def extract_code_from_response(response: str) -> str:
    """Strip prose and fences from a model reply.

    Prefers a ```python block, then any fenced block, then the raw text.
    """
    text = response.strip()

    match = _PYTHON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    match = _ANY_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    return text


class TestCodeGenerator:
    """Asks the model for a test script per pattern.

    No retry logic of its own: pass a ``ResilientLlmClient`` for that.
    """

    __test__ = False

    def __init__(
        self,
        client: LlmClient,
        custom_instructions: str | None = None,
        local_package: str | None = None,
    ):
        self.client = client
        self.custom_instructions = custom_instructions
        self.local_package = local_package

    async def generate_test_code(self, pattern: CodePattern, installed: Iterable[str] = ()) -> str:
        logger.debug("Generating test code for pattern: %s", pattern.name)
        prompt = create_test_prompt(
            pattern,
            installed=installed,
            custom_instructions=self.custom_instructions,
            local_package=self.local_package,
        )
        response = await self.client.complete(prompt)
        code = extract_code_from_response(response)
        logger.debug("Generated test code for %s:\n%s", pattern.name, code)
        return code
