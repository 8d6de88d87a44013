"""
Tests for the model catalog and provider configuration.

This module tests:
- Provider resolution by catalog entry and by prefix
- Alias resolution to provider model ids
- ModelConfig credential lookup
"""

import pytest

from sandcastle.agents.exceptions import AgentConfigurationError, MissingCredentialError
from sandcastle.models.catalog import (
    DEFAULT_MODEL,
    MODELS,
    ProviderTag,
    models_for,
    resolve_model_id,
    resolve_provider,
)
from sandcastle.models.config import ModelConfig


class TestCatalog:
    def test_default_model_is_catalogued(self):
        assert DEFAULT_MODEL in MODELS

    @pytest.mark.parametrize(
        "model,provider",
        [
            ("claude-sonnet-4-5", ProviderTag.ANTHROPIC),
            ("gpt-5", ProviderTag.OPENAI),
            ("claude-opus-99", ProviderTag.ANTHROPIC),
            ("anthropic/claude-haiku-4-5", ProviderTag.ANTHROPIC),
            ("openai/gpt-4o", ProviderTag.OPENAI),
            ("o4-mini", ProviderTag.OPENAI),
        ],
    )
    def test_resolve_provider(self, model, provider):
        assert resolve_provider(model) == provider

    def test_unknown_model(self):
        with pytest.raises(AgentConfigurationError) as exc_info:
            resolve_provider("mistral-large")

        assert exc_info.value.config_value == "mistral-large"

    def test_alias_resolution(self):
        assert resolve_model_id("claude-sonnet-4-5") == "claude-sonnet-4-5-20250929"
        assert resolve_model_id("not-listed") == "not-listed"

    def test_models_for(self):
        assert all(m.provider == ProviderTag.OPENAI for m in models_for(ProviderTag.OPENAI))


class TestModelConfig:
    def test_explicit_key(self):
        config = ModelConfig(provider=ProviderTag.ANTHROPIC, name="claude-sonnet-4-5", api_key="sk-test")

        assert config.api_key == "sk-test"
        assert config.base_url == "https://api.anthropic.com/v1"
        assert config.name == "claude-sonnet-4-5-20250929"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        config = ModelConfig(provider=ProviderTag.OPENAI, name="gpt-5")

        assert config.api_key == "sk-env"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(MissingCredentialError) as exc_info:
            ModelConfig(provider=ProviderTag.ANTHROPIC, name="claude-haiku-4-5")

        assert exc_info.value.env_var == "ANTHROPIC_API_KEY"
