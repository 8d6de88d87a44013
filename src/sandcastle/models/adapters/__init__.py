"""Provider adapters for the language-model APIs."""

from .base import APIProviderAdapter
from .anthropic import AnthropicAdapter
from .openai import OpenAIAdapter
from .factory import ProviderAdapterFactory

__all__ = [
    "APIProviderAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "ProviderAdapterFactory",
]
