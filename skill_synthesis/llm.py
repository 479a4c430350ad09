"""Model clients.

Everything that talks to a language model depends only on ``LlmClient``:
an object with ``async complete(prompt) -> str``. Provider SDK calls are
blocking, so they run through ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .errors import ConfigError
from .prompts import (
    API_SURFACE_MARKER,
    CONVENTIONS_MARKER,
    REVIEW_MARKER,
    SUCCESS_MARKER,
    SYNTHESIS_MARKER,
    UPDATE_MARKER,
    USAGE_PATTERNS_MARKER,
)

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class LlmClient(Protocol):
    async def complete(self, prompt: str) -> str:
        ...


class OpenAIClient:
    """OpenAI chat completions, also used for OpenAI-compatible servers via ``base_url``."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ):
        from openai import OpenAI

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = OpenAI(api_key=api_key or None, base_url=base_url or None)

    async def complete(self, prompt: str) -> str:
        def _call():
            return self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )

        response = await asyncio.to_thread(_call)
        return response.choices[0].message.content or ""


class AnthropicClient:
    """Anthropic messages API."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-5",
        api_key: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ):
        import anthropic

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = anthropic.Anthropic(api_key=api_key or None)

    async def complete(self, prompt: str) -> str:
        def _call():
            return self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )

        response = await asyncio.to_thread(_call)
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )


# =============================================================================
# Mock client
# =============================================================================


MOCK_API_SURFACE = """{
  "library_category": "general",
  "apis": [
    {"name": "json.dumps", "type": "function", "signature": "dumps(obj, *, indent=None, sort_keys=False)", "module": "json"},
    {"name": "json.loads", "type": "function", "signature": "loads(s)", "module": "json"}
  ]
}"""

MOCK_PATTERNS = """{
  "patterns": [
    {"api": "json.dumps", "setup": "import json", "usage": "json.dumps({'a': 1}, sort_keys=True)"},
    {"api": "json.loads", "setup": "import json", "usage": "json.loads('{\\"a\\": 1}')"}
  ]
}"""

MOCK_CONTEXT = """{
  "conventions": ["Pass sort_keys=True for stable output"],
  "pitfalls": [{"wrong": "json.loads(b'{}'.decode)", "right": "json.loads(b'{}'.decode())"}],
  "breaking_changes": [],
  "documented_apis": ["json.dumps", "json.loads"]
}"""

MOCK_SKILL_MD = """---
name: {name}
description: Encode and decode JSON documents.
version: {version}
ecosystem: python
license: MIT
---

## Imports

```python
import json
```

## Core Patterns

### Basic Serialization

Serialize a dict to a JSON string with stable key order.

```python
import json

payload = json.dumps({{"b": 2, "a": 1}}, sort_keys=True)
print(payload)
```

### Parsing Documents

Parse a JSON string back into Python objects.

```python
import json

data = json.loads('{{"a": 1}}')
print(data["a"])
```

## Configuration

`indent` controls pretty printing and `sort_keys` controls key order.
Neither reads environment variables.

## Pitfalls

### Wrong: passing bytes-like methods instead of strings

```python
import json
json.loads(b"{{}}".decode)
```

### Right: decode bytes first

```python
import json
json.loads(b"{{}}".decode())
```

## References

- [Documentation](https://docs.python.org/3/library/json.html)
"""

MOCK_REVIEW = '{"passed": true, "issues": []}'

_PACKAGE_RE = re.compile(r'package "([^"]+)" v(\S+?)\.?\s')
_PATTERN_NAME_RE = re.compile(r"^Pattern: (.+)$", re.MULTILINE)


class MockLlmClient:
    """Canned replies keyed on the stage marker in the prompt.

    Used by ``--dry-run`` and by tests. Every prompt is recorded in ``calls``.
    """

    def __init__(self):
        self.calls: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.calls.append(prompt)

        if prompt.startswith(API_SURFACE_MARKER):
            return MOCK_API_SURFACE
        if prompt.startswith(USAGE_PATTERNS_MARKER):
            return MOCK_PATTERNS
        if prompt.startswith(CONVENTIONS_MARKER):
            return MOCK_CONTEXT
        if prompt.startswith((SYNTHESIS_MARKER, UPDATE_MARKER)):
            match = _PACKAGE_RE.search(prompt)
            name, version = match.groups() if match else ("example", "0.1.0")
            return MOCK_SKILL_MD.format(name=name, version=version)
        if prompt.startswith(REVIEW_MARKER):
            return MOCK_REVIEW

        match = _PATTERN_NAME_RE.search(prompt)
        if match:
            name = match.group(1).strip()
            return f'```python\nprint("{SUCCESS_MARKER} {name}")\n```'

        logger.warning("MockLlmClient received an unrecognised prompt")
        return ""


# =============================================================================
# Factory
# =============================================================================


def create_client(settings: Settings, dry_run: bool = False) -> LlmClient:
    """Build the configured provider client (or the mock for dry runs)."""
    if dry_run:
        return MockLlmClient()

    provider = settings.llm_provider
    if provider == "openai":
        return OpenAIClient(
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            max_tokens=settings.max_tokens(),
            temperature=settings.llm_temperature,
        )
    if provider == "openai-compatible":
        return OpenAIClient(
            model=settings.llm_model,
            api_key=settings.openai_api_key or "not-needed",
            base_url=settings.llm_base_url,
            max_tokens=settings.max_tokens(),
            temperature=settings.llm_temperature,
        )
    if provider == "anthropic":
        return AnthropicClient(
            model=settings.llm_model,
            api_key=settings.anthropic_api_key,
            max_tokens=settings.max_tokens(),
            temperature=settings.llm_temperature,
        )
    raise ConfigError(f"Unknown provider: {provider}")
