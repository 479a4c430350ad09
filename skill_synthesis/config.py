from __future__ import annotations

from pydantic_settings import BaseSettings

from .errors import ConfigError
from .models import ValidationMode

PROVIDERS = ("openai", "anthropic", "openai-compatible")
SANDBOX_BACKENDS = ("auto", "uv", "docker")


class Settings(BaseSettings):
    # Model
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o"
    llm_base_url: str = "http://localhost:11434/v1"
    llm_max_tokens: int = 0  # 0 = provider default
    llm_temperature: float = 0.0
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Retries
    llm_max_retries: int = 3
    llm_retry_delay: float = 2.0
    generation_max_retries: int = 3

    # Validation
    validation_mode: str = "thorough"
    enable_validation: bool = True
    enable_review: bool = True
    test_custom_instructions: str = ""
    local_package: str = ""

    # Sandbox
    sandbox_backend: str = "auto"
    sandbox_timeout: float = 60
    sandbox_image: str = "ghcr.io/astral-sh/uv:python3.11-bookworm-slim"
    sandbox_memory_limit: str = "512m"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def max_tokens(self) -> int:
        if self.llm_max_tokens > 0:
            return self.llm_max_tokens
        return 16384 if self.llm_provider == "openai-compatible" else 4096

    def get_validation_mode(self) -> ValidationMode:
        return ValidationMode.parse(self.validation_mode)

    def validate_choices(self) -> None:
        """Raise ConfigError for unknown provider, backend or mode."""
        if self.llm_provider not in PROVIDERS:
            raise ConfigError(
                f"Unknown provider '{self.llm_provider}' (expected one of: {', '.join(PROVIDERS)})"
            )
        if self.sandbox_backend not in SANDBOX_BACKENDS:
            raise ConfigError(
                f"Unknown sandbox backend '{self.sandbox_backend}' "
                f"(expected one of: {', '.join(SANDBOX_BACKENDS)})"
            )
        if self.sandbox_timeout <= 0:
            raise ConfigError("sandbox_timeout must be positive")
        self.get_validation_mode()
