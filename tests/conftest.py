from pathlib import Path

import pytest

from skill_synthesis.models import PackageFacts, Pass
from skill_synthesis.sandbox import BaseExecutor, Environment

SKILL_MD = """---
name: clicktool
description: Build command line interfaces with decorators.
version: 8.1.7
ecosystem: python
license: BSD-3-Clause
---

## Imports

```python
import os
import click
import requests
from click import echo
import click
```

## Core Patterns

### Basic Command

Define a command with one option and invoke it through the test runner.

```python
import click
from click.testing import CliRunner

@click.command()
@click.option("--name", default="world")
def hello(name):
    click.echo(f"Hello {name}")

result = CliRunner().invoke(hello, ["--name", "Ada"])
print(result.output)
```

### Fetching Remote Config

Load configuration over HTTP before building the command group.

```python
import requests

response = requests.get("https://httpbin.org/json", timeout=10)
print(response.status_code)
```

### Error Handling

Raise a usage error for bad input.

```python
import click

@click.command()
@click.argument("count", type=int)
def repeat(count):
    if count < 0:
        raise click.BadParameter("count must be positive")
```

## Configuration

Options read defaults from environment variables when `auto_envvar_prefix` is set
on the command context. Every option can declare `envvar=` explicitly as well.

## Pitfalls

### Wrong: calling the command directly in tests

```python
hello(["--name", "Ada"])
```

### Right: use CliRunner

```python
from click.testing import CliRunner
CliRunner().invoke(hello, ["--name", "Ada"])
```

## References

- [Documentation](https://click.palletsprojects.com/)
"""

PATTERN_NAMES = ["Basic Command", "Fetching Remote Config", "Error Handling"]


class FakeExecutor(BaseExecutor):
    """In-memory executor: returns the first result whose marker occurs in the script."""

    def __init__(self, results=None, setup_error=None, run_error=None):
        self.results = results or {}
        self.setup_error = setup_error
        self.run_error = run_error
        self.setup_calls = []
        self.cleanup_calls = 0
        self.run_sources = []

    async def setup_environment(self, dependencies):
        deps = sorted(dependencies)
        self.setup_calls.append(deps)
        if self.setup_error:
            raise self.setup_error
        return Environment(root=Path("/fake"), dependencies=frozenset(deps))

    async def run_code(self, env, source):
        self._check_open(env)
        self.run_sources.append(source)
        if self.run_error:
            raise self.run_error
        for marker, result in self.results.items():
            if marker in source:
                return result
        return Pass(f"ran {len(source)} bytes")

    async def cleanup(self, env):
        self.cleanup_calls += 1
        env.closed = True


@pytest.fixture()
def skill_md():
    return SKILL_MD


@pytest.fixture()
def fake_executor():
    return FakeExecutor()


@pytest.fixture()
def facts():
    return PackageFacts(
        package_name="clicktool",
        version="8.1.7",
        license="BSD-3-Clause",
        project_urls=[("Documentation", "https://click.palletsprojects.com/")],
        source_content="def command(): ...",
        test_content="def test_command(): ...",
        docs_content="Use CliRunner in tests.",
    )
