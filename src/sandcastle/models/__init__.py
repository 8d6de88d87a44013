"""Models module: catalog, provider configuration, adapters and response models."""

from .catalog import (
    DEFAULT_MODEL,
    MODELS,
    ModelInfo,
    ProviderTag,
    get_model,
    resolve_provider,
)
from .response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    UsageInfo,
)
from .config import ModelConfig
from .adapters import (
    APIProviderAdapter,
    AnthropicAdapter,
    OpenAIAdapter,
    ProviderAdapterFactory,
)

__all__ = [
    # Catalog
    "DEFAULT_MODEL",
    "MODELS",
    "ModelInfo",
    "ProviderTag",
    "get_model",
    "resolve_provider",
    # Config
    "ModelConfig",
    # Response models
    "HarmonizedResponse",
    "ResponseMetadata",
    "ToolCall",
    "UsageInfo",
    # Adapters
    "APIProviderAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "ProviderAdapterFactory",
]
