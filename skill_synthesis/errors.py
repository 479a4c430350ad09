"""Exception hierarchy for skill synthesis.

Failures of the code under test are never raised; they are recorded as
``ExecutionResult`` values. Only infrastructure and generation failures
surface as exceptions.
"""


class SkillSynthesisError(Exception):
    """Base class for all skill synthesis errors."""
    pass


class SandboxError(SkillSynthesisError):
    """Raised when the execution sandbox itself fails (provisioning, I/O, container)."""
    pass


class ToolUnavailableError(SandboxError):
    """Raised when the provisioning tool (uv, Docker) is not installed or reachable.

    Fatal for the whole run: retrying the generation cannot fix a missing tool.
    """
    pass


class SynthesisError(SkillSynthesisError):
    """Raised when a model call needed to produce the artifact fails."""
    pass


class ConfigError(SkillSynthesisError):
    """Raised for invalid configuration values."""
    pass
