import logging
import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sandcastle.agents.exceptions import MissingCredentialError
from sandcastle.models.catalog import ProviderTag, resolve_model_id

logger = logging.getLogger(__name__)

PROVIDER_BASE_URLS = {
    ProviderTag.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderTag.OPENAI: "https://api.openai.com/v1",
}

PROVIDER_ENV_VARS = {
    ProviderTag.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderTag.OPENAI: "OPENAI_API_KEY",
}


class ModelConfig(BaseModel):
    """
    Pydantic schema for a provider call configuration.

    Reads the API key from the provider's environment variable if not provided
    directly, and fills ``base_url`` from PROVIDER_BASE_URLS.

    Raises:
        MissingCredentialError: when no key is given and the env var is unset
    """

    model_config = ConfigDict(frozen=True)

    provider: ProviderTag
    name: str = Field(..., description="Model identifier as the provider expects it")
    api_key: Optional[str] = Field(None, description="API authentication key (reads from env if None)")
    base_url: Optional[str] = None
    max_tokens: int = 4096
    temperature: Optional[float] = None
    stream: bool = False

    @model_validator(mode="before")
    @classmethod
    def _set_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        provider = ProviderTag(data.get("provider"))
        if not data.get("base_url"):
            data["base_url"] = PROVIDER_BASE_URLS[provider]
        if data.get("name"):
            data["name"] = resolve_model_id(data["name"])
        return data

    @model_validator(mode="after")
    def _validate_api_key(self) -> "ModelConfig":
        if self.api_key:
            return self

        env_var = PROVIDER_ENV_VARS[self.provider]
        env_api_key = os.getenv(env_var)
        if not env_api_key:
            raise MissingCredentialError(self.provider.value, env_var)

        object.__setattr__(self, "api_key", env_api_key)
        logger.debug(f"Read API key for provider '{self.provider.value}' from env var '{env_var}'.")
        return self
