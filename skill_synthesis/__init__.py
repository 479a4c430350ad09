"""Skill Synthesis System.

Generates SKILL.md files (agent-facing usage guides for a software package)
from collected package facts, and keeps regenerating them until every code
pattern they teach actually runs.

Architecture:
- Generator: staged model calls plus the generate-validate-retry loop
- PatternValidator: extracts Core Patterns and runs a generated test per pattern
- Executors: ephemeral sandboxes that run the tests under a timeout

Supports two sandbox backends:
- uv (local virtualenv, no container runtime required)
- docker (strongest isolation)
"""

from .code_generator import (
    TestCodeGenerator,
    create_test_prompt,
    extract_code_from_response,
)

from .config import Settings

from .errors import (
    ConfigError,
    SandboxError,
    SkillSynthesisError,
    SynthesisError,
    ToolUnavailableError,
)

from .feedback import format_lint_errors, generate_feedback

from .generator import (
    Generator,
    build_generator,
    generate_skill,
    strip_markdown_fences,
)

from .lint import Linter, SkillLinter

from .llm import (
    AnthropicClient,
    LlmClient,
    MockLlmClient,
    OpenAIClient,
    create_client,
)

from .models import (
    CodePattern,
    ExecutionResult,
    Fail,
    GenerationOutcome,
    LintIssue,
    PackageFacts,
    Pass,
    PatternCategory,
    Severity,
    TestCase,
    TestResult,
    Timeout,
    ValidationMode,
)

from .normalizer import ensure_frontmatter, ensure_references, normalize_skill_md

from .parser import extract_dependencies, extract_name, extract_patterns, extract_version

from .resilient import ResilientLlmClient, is_transient_error

from .sandbox import (
    BaseExecutor,
    DockerExecutor,
    Environment,
    UvExecutor,
    create_executor,
    provisioned,
)

from .validator import PatternValidator, select_patterns

__all__ = [
    # Orchestration
    "Generator",
    "build_generator",
    "generate_skill",
    "strip_markdown_fences",
    # Validation
    "PatternValidator",
    "select_patterns",
    "TestCodeGenerator",
    "create_test_prompt",
    "extract_code_from_response",
    "generate_feedback",
    "format_lint_errors",
    # Parsing and post-processing
    "extract_patterns",
    "extract_dependencies",
    "extract_name",
    "extract_version",
    "ensure_frontmatter",
    "ensure_references",
    "normalize_skill_md",
    "Linter",
    "SkillLinter",
    # Sandbox
    "BaseExecutor",
    "DockerExecutor",
    "Environment",
    "UvExecutor",
    "create_executor",
    "provisioned",
    # Model clients
    "LlmClient",
    "OpenAIClient",
    "AnthropicClient",
    "MockLlmClient",
    "ResilientLlmClient",
    "create_client",
    "is_transient_error",
    # Data model
    "CodePattern",
    "ExecutionResult",
    "Fail",
    "GenerationOutcome",
    "LintIssue",
    "PackageFacts",
    "Pass",
    "PatternCategory",
    "Severity",
    "TestCase",
    "TestResult",
    "Timeout",
    "ValidationMode",
    # Config and errors
    "Settings",
    "ConfigError",
    "SandboxError",
    "SkillSynthesisError",
    "SynthesisError",
    "ToolUnavailableError",
]
