import json
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from sandcastle.agents.exceptions import ModelAPIError
from sandcastle.models.adapters.base import APIProviderAdapter, TextDeltaCallback
from sandcastle.models.response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    UsageInfo,
)

logger = logging.getLogger(__name__)


class AnthropicAdapter(APIProviderAdapter):
    """
    Adapter for the Anthropic Messages API.

    Supports tool calling, forced tool choice and SSE streaming of text deltas.
    """

    provider = "anthropic"
    supports_streaming = True

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        # OpenRouter-style ids carry a prefix the Messages API rejects
        if self.model_name.startswith("anthropic/"):
            self.model_name = self.model_name[len("anthropic/"):]

    def get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        }

    def get_endpoint_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/messages"

    @staticmethod
    def _convert_tools(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # OpenAI: {"type": "function", "function": {"name", "description", "parameters"}}
        # Anthropic: {"name", "description", "input_schema"}
        converted = []
        for tool in tools:
            if tool.get("type") == "function" and "function" in tool:
                func = tool["function"]
                converted.append({
                    "name": func.get("name"),
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {"type": "object", "properties": {}}),
                })
            elif "name" in tool and "input_schema" in tool:
                converted.append(tool)
        return converted

    def format_request_payload(self, messages: List[Dict[str, Any]], **kwargs) -> Dict[str, Any]:
        system_message = kwargs.get("system_prompt")
        converted: List[Dict[str, Any]] = []

        for msg in messages:
            role = msg.get("role")
            if role == "system":
                system_message = msg.get("content")
            elif role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id"),
                    "content": msg.get("content", ""),
                }
                # Consecutive tool results belong to one user turn
                if converted and converted[-1]["role"] == "user" and isinstance(converted[-1]["content"], list) \
                        and converted[-1]["content"] and converted[-1]["content"][0].get("type") == "tool_result":
                    converted[-1]["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            elif role == "assistant" and msg.get("tool_calls"):
                blocks = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for tc in msg["tool_calls"]:
                    func = tc.get("function", {})
                    args = func.get("arguments", "{}")
                    if isinstance(args, str):
                        try:
                            args = json.loads(args)
                        except json.JSONDecodeError:
                            args = {}
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.get("id"),
                        "name": func.get("name"),
                        "input": args,
                    })
                converted.append({"role": "assistant", "content": blocks})
            else:
                converted.append({"role": role, "content": msg.get("content") or ""})

        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": converted,
            "max_tokens": kwargs.get("max_tokens") or self.config.max_tokens,
        }

        temperature = kwargs.get("temperature", self.config.temperature)
        if temperature is not None:
            payload["temperature"] = temperature

        if system_message:
            payload["system"] = system_message

        if kwargs.get("tools"):
            tools = self._convert_tools(kwargs["tools"])
            if tools:
                payload["tools"] = tools

        tool_choice = kwargs.get("tool_choice")
        if tool_choice:
            # A bare name forces that specific tool
            if isinstance(tool_choice, str):
                tool_choice = {"type": "tool", "name": tool_choice}
            payload["tool_choice"] = tool_choice

        return payload

    def harmonize_response(self, raw_response: Dict[str, Any], request_start_time: float) -> HarmonizedResponse:
        """Convert a Messages API response to the standardized model."""
        text_content = ""
        tool_calls = []

        for block in raw_response.get("content", []):
            if block.get("type") == "text":
                text_content += block.get("text", "")
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        function={"name": block.get("name", ""), "arguments": block.get("input", {})},
                    )
                )

        usage_data = raw_response.get("usage") or {}
        usage = None
        if usage_data:
            usage = UsageInfo(
                prompt_tokens=usage_data.get("input_tokens"),
                completion_tokens=usage_data.get("output_tokens"),
            )

        metadata = ResponseMetadata(
            provider=self.provider,
            model=raw_response.get("model") or self.model_name,
            request_id=raw_response.get("id"),
            usage=usage,
            finish_reason=raw_response.get("stop_reason"),
            response_time=time.time() - request_start_time,
            streamed=raw_response.get("streamed", False),
        )

        return HarmonizedResponse(
            role="assistant",
            content=text_content or None,
            tool_calls=tool_calls,
            metadata=metadata,
        )

    async def arun_streaming(
        self,
        messages: List[Dict[str, Any]],
        on_text_delta: TextDeltaCallback,
        **kwargs,
    ) -> HarmonizedResponse:
        """
        Stream the response, forwarding text deltas as they arrive.

        The SSE events are folded back into a Messages API shaped dict so the
        same harmonization path applies.
        """
        request_start_time = time.time()
        payload = self.format_request_payload(messages, **kwargs)
        payload["stream"] = True

        async def _consume(response: aiohttp.ClientResponse) -> Dict[str, Any]:
            result: Dict[str, Any] = {"content": [], "usage": {}, "streamed": True}
            current_block: Optional[Dict[str, Any]] = None
            partial_json = ""

            async for raw_line in response.content:
                line = raw_line.decode("utf-8").strip()
                if not line.startswith("data: "):
                    continue
                try:
                    data = json.loads(line[6:])
                except json.JSONDecodeError:
                    continue

                event_type = data.get("type")

                if event_type == "message_start":
                    msg = data.get("message", {})
                    result["model"] = msg.get("model")
                    result["id"] = msg.get("id")
                    result["usage"].update(msg.get("usage") or {})

                elif event_type == "content_block_start":
                    block = dict(data.get("content_block", {}))
                    if block.get("type") == "text":
                        block["text"] = block.get("text", "")
                    elif block.get("type") == "tool_use":
                        block["input"] = {}
                        partial_json = ""
                    current_block = block

                elif event_type == "content_block_delta":
                    delta = data.get("delta", {})
                    if delta.get("type") == "text_delta" and current_block is not None:
                        text = delta.get("text", "")
                        current_block["text"] += text
                        if text:
                            await on_text_delta(text)
                    elif delta.get("type") == "input_json_delta":
                        partial_json += delta.get("partial_json", "")

                elif event_type == "content_block_stop":
                    if current_block is not None:
                        if current_block.get("type") == "tool_use" and partial_json:
                            try:
                                current_block["input"] = json.loads(partial_json)
                            except json.JSONDecodeError:
                                logger.warning(f"Malformed streamed tool input for {current_block.get('name')}")
                        result["content"].append(current_block)
                    current_block = None

                elif event_type == "message_delta":
                    result["stop_reason"] = data.get("delta", {}).get("stop_reason")
                    result["usage"].update(data.get("usage") or {})

                elif event_type == "error":
                    error = data.get("error", {})
                    raise ModelAPIError(
                        f"anthropic stream error: {error.get('message', 'unknown')}",
                        provider=self.provider,
                        classification="service_unavailable" if error.get("type") == "overloaded_error" else None,
                    )

            return result

        raw_response = await self._post(payload, _consume)
        return self.harmonize_response(raw_response, request_start_time)
