"""Base adapter classes for API providers."""

import asyncio
import copy
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from sandcastle.agents.exceptions import ModelAPIError
from sandcastle.models.config import ModelConfig
from sandcastle.models.response_models import HarmonizedResponse

logger = logging.getLogger(__name__)

TextDeltaCallback = Callable[[str], Awaitable[None]]

RETRYABLE_STATUSES = (500, 502, 503, 504, 529, 408)


class APIProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses build provider payloads from OpenAI-style messages and turn raw
    provider responses into a HarmonizedResponse. HTTP transport, retry on
    server errors and rate limits, and session lifetime live here.
    """

    provider: str = "unknown"

    # Streaming flag - subclasses that support streaming set this to True
    supports_streaming: bool = False

    def __init__(self, config: ModelConfig, max_retries: int = 3, base_delay: float = 1.0):
        self.config = config
        self.model_name = config.name
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._session: Optional[aiohttp.ClientSession] = None

    @staticmethod
    def _ensure_additional_properties_false(schema: Dict[str, Any]) -> Dict[str, Any]:
        """Add ``additionalProperties: false`` to every object node. Returns a deep copy."""
        schema = copy.deepcopy(schema)

        def _fix(node: Any) -> None:
            if not isinstance(node, dict):
                return
            if node.get("type") == "object" and "additionalProperties" not in node:
                node["additionalProperties"] = False
            for v in node.values():
                if isinstance(v, dict):
                    _fix(v)
                elif isinstance(v, list):
                    for item in v:
                        _fix(item)

        _fix(schema)
        return schema

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create a persistent session for connection pooling."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=100, limit_per_host=30, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def arun(
        self,
        messages: List[Dict[str, Any]],
        on_text_delta: Optional[TextDeltaCallback] = None,
        **kwargs,
    ) -> HarmonizedResponse:
        """
        Execute an API request.

        Streams when a delta callback is given and the adapter supports it;
        otherwise uses the request/response flow.

        Raises:
            ModelAPIError: for HTTP and transport failures
        """
        if on_text_delta is not None and self.supports_streaming:
            return await self.arun_streaming(messages, on_text_delta, **kwargs)
        return await self._arun_standard(messages, **kwargs)

    async def arun_streaming(
        self,
        messages: List[Dict[str, Any]],
        on_text_delta: TextDeltaCallback,
        **kwargs,
    ) -> HarmonizedResponse:
        raise NotImplementedError(
            f"{self.__class__.__name__} does not implement arun_streaming()"
        )

    def _retry_delay(self, attempt: int, headers=None) -> float:
        if headers is not None:
            retry_after = headers.get("x-ratelimit-reset-after", headers.get("retry-after"))
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return self.base_delay * (2 ** attempt)

    async def _post(self, payload: Dict[str, Any], handle_ok: Callable[[aiohttp.ClientResponse], Awaitable[Any]]) -> Any:
        """
        POST the payload with exponential backoff on server errors and 429s.

        ``handle_ok`` consumes a 200 response (JSON body or SSE stream).
        """
        for attempt in range(self.max_retries + 1):
            try:
                session = await self._ensure_session()
                async with session.post(
                    self.get_endpoint_url(),
                    headers=self.get_headers(),
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=360),
                ) as response:
                    status = response.status

                    if status == 200:
                        return await handle_ok(response)

                    retryable = status in RETRYABLE_STATUSES or status == 429
                    if retryable and attempt < self.max_retries:
                        delay = self._retry_delay(attempt, response.headers if status == 429 else None)
                        logger.warning(
                            f"HTTP {status} from {self.model_name}. "
                            f"Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s"
                        )
                        await asyncio.sleep(delay)
                        continue

                    if retryable:
                        logger.error(f"Max retries ({self.max_retries}) exhausted for HTTP {status}")

                    try:
                        body = await response.json(content_type=None)
                    except (aiohttp.ContentTypeError, ValueError):
                        body = None
                    raise self.handle_api_error(status, body, response.headers)

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise ModelAPIError.from_exception(self.provider, e) from e

        raise ModelAPIError(f"{self.provider} request failed", provider=self.provider)

    async def _arun_standard(self, messages: List[Dict[str, Any]], **kwargs) -> HarmonizedResponse:
        request_start_time = time.time()
        payload = self.format_request_payload(messages, **kwargs)

        async def _read_json(response: aiohttp.ClientResponse):
            return await response.json()

        raw_response = await self._post(payload, _read_json)
        return self.harmonize_response(raw_response, request_start_time)

    def handle_api_error(self, status: int, body: Optional[Dict[str, Any]], headers=None) -> ModelAPIError:
        """Build a classified error for a non-200 response."""
        retry_after = None
        if headers is not None and headers.get("retry-after"):
            try:
                retry_after = float(headers.get("retry-after"))
            except ValueError:
                retry_after = None
        return ModelAPIError.from_status(self.provider, status, body, retry_after=retry_after)

    async def cleanup(self):
        """Close the aiohttp session on shutdown."""
        if self._session and not self._session.closed:
            await self._session.close()

    # Abstract methods that each provider must implement
    @abstractmethod
    def get_headers(self) -> Dict[str, str]:
        """Return provider-specific headers"""

    @abstractmethod
    def format_request_payload(self, messages: List[Dict[str, Any]], **kwargs) -> Dict[str, Any]:
        """Convert standard format to provider-specific request payload"""

    @abstractmethod
    def get_endpoint_url(self) -> str:
        """Return provider-specific endpoint URL"""

    @abstractmethod
    def harmonize_response(self, raw_response: Dict[str, Any], request_start_time: float) -> HarmonizedResponse:
        """Convert provider response to the standardized Pydantic model."""
