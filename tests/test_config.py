"""Tests for settings and client wiring."""

import pytest

from skill_synthesis.config import Settings
from skill_synthesis.errors import ConfigError
from skill_synthesis.llm import AnthropicClient, MockLlmClient, OpenAIClient, create_client
from skill_synthesis.models import ValidationMode


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep a developer's .env and LLM_* variables out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in ("LLM_PROVIDER", "LLM_MODEL", "LLM_MAX_TOKENS", "VALIDATION_MODE", "SANDBOX_BACKEND"):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.generation_max_retries == 3
        assert settings.sandbox_timeout == 60
        assert settings.get_validation_mode() == ValidationMode.THOROUGH

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("VALIDATION_MODE", "minimal")
        monkeypatch.setenv("SANDBOX_BACKEND", "uv")
        settings = Settings()
        assert settings.get_validation_mode() == ValidationMode.MINIMAL
        assert settings.sandbox_backend == "uv"

    def test_reads_dotenv(self, tmp_path):
        (tmp_path / ".env").write_text("LLM_MODEL=gpt-4o-mini\n")
        assert Settings().llm_model == "gpt-4o-mini"

    def test_max_tokens(self):
        assert Settings(llm_provider="openai").max_tokens() == 4096
        assert Settings(llm_provider="openai-compatible").max_tokens() == 16384
        assert Settings(llm_max_tokens=1000).max_tokens() == 1000

    @pytest.mark.parametrize("overrides", [
        {"llm_provider": "cohere"},
        {"sandbox_backend": "podman"},
        {"sandbox_timeout": 0},
        {"validation_mode": "exhaustive"},
    ])
    def test_validate_choices(self, overrides):
        with pytest.raises(ConfigError):
            Settings(**overrides).validate_choices()


class TestCreateClient:
    def test_dry_run_uses_mock(self):
        assert isinstance(create_client(Settings(), dry_run=True), MockLlmClient)

    def test_openai(self):
        client = create_client(Settings(llm_provider="openai", openai_api_key="sk-test"))
        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-4o"

    def test_openai_compatible(self):
        client = create_client(Settings(llm_provider="openai-compatible", llm_model="qwen2.5-coder"))
        assert isinstance(client, OpenAIClient)
        assert client.max_tokens == 16384

    def test_anthropic(self):
        client = create_client(Settings(
            llm_provider="anthropic", llm_model="claude-sonnet-4-5", anthropic_api_key="sk-ant-test"
        ))
        assert isinstance(client, AnthropicClient)

    def test_unknown_provider(self):
        with pytest.raises(ConfigError):
            create_client(Settings(llm_provider="cohere"))
