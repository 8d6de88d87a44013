"""Factory for creating provider adapters."""

from typing import Dict, Optional, Tuple

from sandcastle.models.adapters.anthropic import AnthropicAdapter
from sandcastle.models.adapters.base import APIProviderAdapter
from sandcastle.models.adapters.openai import OpenAIAdapter
from sandcastle.models.catalog import ProviderTag
from sandcastle.models.config import ModelConfig


class ProviderAdapterFactory:
    """Factory to create the right adapter based on the provider tag."""

    adapters = {
        ProviderTag.ANTHROPIC: AnthropicAdapter,
        ProviderTag.OPENAI: OpenAIAdapter,
    }

    def __init__(self, api_keys: Optional[dict] = None, max_retries: int = 0, **adapter_kwargs):
        """
        Args:
            api_keys: Provider keys; explicit keys (e.g. from Settings) win over
                the environment
            max_retries: HTTP-level retries per request. Defaults to 0 so every
                provider call passes through the rate limiter and the task
                executor's attempt counter.
        """
        self.api_keys = {ProviderTag(k).value: v for k, v in (api_keys or {}).items() if v}
        self.adapter_kwargs = {"max_retries": max_retries, **adapter_kwargs}
        self._cache: Dict[Tuple[str, str], APIProviderAdapter] = {}

    def create_adapter(self, provider: ProviderTag, model_name: str, **config_overrides) -> APIProviderAdapter:
        """
        Build an adapter for ``provider`` serving ``model_name``.

        Raises:
            MissingCredentialError: if no API key is configured for the provider
        """
        provider = ProviderTag(provider)
        config = ModelConfig(
            provider=provider,
            name=model_name,
            api_key=self.api_keys.get(provider.value),
            **config_overrides,
        )
        adapter_class = self.adapters[provider]
        return adapter_class(config, **self.adapter_kwargs)

    def get_adapter(self, provider: ProviderTag, model_name: str) -> APIProviderAdapter:
        """Return a shared adapter per (provider, model) so HTTP sessions are pooled."""
        key = (ProviderTag(provider).value, model_name)
        adapter = self._cache.get(key)
        if adapter is None:
            adapter = self.create_adapter(provider, model_name)
            self._cache[key] = adapter
        return adapter

    async def cleanup(self) -> None:
        for adapter in self._cache.values():
            await adapter.cleanup()
        self._cache.clear()
