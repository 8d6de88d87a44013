"""Model catalog and provider resolution."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ProviderTag(str, Enum):
    """Provider an agent's model is served by."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: ProviderTag
    max_tokens: int
    context_window: int


DEFAULT_MODEL = "claude-haiku-4-5"

MODELS: Dict[str, ModelInfo] = {
    # Anthropic
    "claude-haiku-4-5": ModelInfo("claude-haiku-4-5", "Claude Haiku 4.5", ProviderTag.ANTHROPIC, 8192, 200000),
    "claude-sonnet-4-5": ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", ProviderTag.ANTHROPIC, 8192, 200000),
    "claude-sonnet-4-5-20250929": ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", ProviderTag.ANTHROPIC, 8192, 200000),
    "claude-3-5-sonnet-20241022": ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", ProviderTag.ANTHROPIC, 8192, 200000),
    "claude-3-opus-20240229": ModelInfo("claude-3-opus-20240229", "Claude 3 Opus", ProviderTag.ANTHROPIC, 4096, 200000),
    # OpenAI
    "gpt-5": ModelInfo("gpt-5", "GPT-5", ProviderTag.OPENAI, 16384, 400000),
    "gpt-5-mini": ModelInfo("gpt-5-mini", "GPT-5 mini", ProviderTag.OPENAI, 16384, 400000),
    "gpt-4o": ModelInfo("gpt-4o", "GPT-4o", ProviderTag.OPENAI, 4096, 128000),
    "gpt-4-turbo-preview": ModelInfo("gpt-4-turbo-preview", "GPT-4 Turbo", ProviderTag.OPENAI, 4096, 128000),
    "gpt-4": ModelInfo("gpt-4", "GPT-4", ProviderTag.OPENAI, 4096, 8192),
    "gpt-3.5-turbo": ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", ProviderTag.OPENAI, 4096, 16384),
}

# Fallback for model ids not listed above
_PREFIXES = (
    ("claude-", ProviderTag.ANTHROPIC),
    ("anthropic/", ProviderTag.ANTHROPIC),
    ("gpt-", ProviderTag.OPENAI),
    ("o1", ProviderTag.OPENAI),
    ("o3", ProviderTag.OPENAI),
    ("o4", ProviderTag.OPENAI),
    ("openai/", ProviderTag.OPENAI),
)


def get_model(model_id: str) -> Optional[ModelInfo]:
    return MODELS.get(model_id)


def resolve_provider(model_id: str) -> ProviderTag:
    """
    Resolve the provider for a model reference.

    Raises:
        AgentConfigurationError: if the model is neither catalogued nor recognisable
    """
    info = MODELS.get(model_id)
    if info is not None:
        return info.provider

    for prefix, provider in _PREFIXES:
        if model_id.startswith(prefix):
            logger.debug(f"Model '{model_id}' not in catalog, resolved to {provider.value} by prefix")
            return provider

    from sandcastle.agents.exceptions import AgentConfigurationError

    raise AgentConfigurationError(
        f"Cannot determine provider for model '{model_id}'",
        config_field="model",
        config_value=model_id,
    )


def resolve_model_id(model_id: str) -> str:
    """Map catalog aliases to the id the provider API expects."""
    info = MODELS.get(model_id)
    return info.id if info else model_id


def models_for(provider: ProviderTag) -> List[ModelInfo]:
    return [m for m in MODELS.values() if m.provider == provider]
