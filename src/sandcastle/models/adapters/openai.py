import logging
import re
import time
from typing import Any, Dict, List, Optional

from sandcastle.models.adapters.base import APIProviderAdapter
from sandcastle.models.response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    UsageInfo,
)

logger = logging.getLogger(__name__)


class OpenAIAdapter(APIProviderAdapter):
    """
    Adapter for the OpenAI Responses API (``/v1/responses``).

    Request/response only. The system prompt goes into ``instructions``; a
    single user prompt is sent as a plain string ``input``, a conversation as
    a list of input items.
    """

    provider = "openai"

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        if self.model_name.startswith("openai/"):
            self.model_name = self.model_name[len("openai/"):]

    def get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def get_endpoint_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/responses"

    def _is_reasoning_model(self) -> bool:
        # Reasoning models (gpt-5+, o-series) reject temperature
        model_lower = self.model_name.lower()
        return bool(re.match(r"^gpt-([5-9]|\d{2,})", model_lower) or re.match(r"^o[1-9]\d*", model_lower))

    @staticmethod
    def _convert_input(messages: List[Dict[str, Any]]) -> Any:
        if len(messages) == 1 and messages[0].get("role") == "user" and isinstance(messages[0].get("content"), str):
            return messages[0]["content"]

        items: List[Dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role")
            if role == "assistant" and msg.get("tool_calls"):
                if msg.get("content"):
                    items.append({"role": "assistant", "content": msg["content"]})
                for tc in msg["tool_calls"]:
                    func = tc.get("function", {})
                    items.append({
                        "type": "function_call",
                        "call_id": tc.get("id"),
                        "name": func.get("name"),
                        "arguments": func.get("arguments", "{}"),
                    })
            elif role == "tool":
                items.append({
                    "type": "function_call_output",
                    "call_id": msg.get("tool_call_id"),
                    "output": msg.get("content", ""),
                })
            elif role == "system":
                continue
            else:
                items.append({"role": role, "content": msg.get("content") or ""})
        return items

    def format_request_payload(self, messages: List[Dict[str, Any]], **kwargs) -> Dict[str, Any]:
        instructions: Optional[str] = kwargs.get("system_prompt")
        if instructions is None:
            for msg in messages:
                if msg.get("role") == "system":
                    instructions = msg.get("content")

        payload: Dict[str, Any] = {
            "model": self.model_name,
            "input": self._convert_input(messages),
            "store": False,
            "max_output_tokens": kwargs.get("max_tokens") or self.config.max_tokens,
        }
        if instructions:
            payload["instructions"] = instructions

        temperature = kwargs.get("temperature", self.config.temperature)
        if temperature is not None and not self._is_reasoning_model():
            payload["temperature"] = temperature

        if kwargs.get("tools"):
            converted_tools = []
            for tool in kwargs["tools"]:
                if tool.get("type") == "function" and "function" in tool:
                    func = tool["function"]
                    converted_tools.append({
                        "type": "function",
                        "name": func.get("name"),
                        "description": func.get("description"),
                        "parameters": func.get("parameters"),
                    })
                else:
                    converted_tools.append(tool)
            payload["tools"] = converted_tools

        tool_choice = kwargs.get("tool_choice")
        if tool_choice:
            if isinstance(tool_choice, str):
                tool_choice = {"type": "function", "name": tool_choice}
            payload["tool_choice"] = tool_choice

        return payload

    def harmonize_response(self, raw_response: Dict[str, Any], request_start_time: float) -> HarmonizedResponse:
        """
        Convert Responses API output to the standardized model.

        Text is concatenated across every ``message`` item in the output list;
        each ``function_call`` item becomes a ToolCall.
        """
        content = ""
        finish_reason = None
        tool_calls = []

        for item in raw_response.get("output", []):
            item_type = item.get("type", "")

            if item_type == "message":
                status = item.get("status")
                if status == "completed":
                    finish_reason = "stop"
                elif status == "incomplete":
                    finish_reason = "length"
                elif status:
                    finish_reason = status

                message_content = item.get("content", [])
                if isinstance(message_content, str):
                    content += message_content
                    continue
                for content_item in message_content:
                    if isinstance(content_item, dict) and content_item.get("type") == "output_text":
                        content += content_item.get("text", "")
                    elif isinstance(content_item, str):
                        content += content_item

            elif item_type == "function_call":
                tool_calls.append(
                    ToolCall(
                        id=item.get("call_id", item.get("id", "")),
                        function={"name": item.get("name", ""), "arguments": item.get("arguments", "")},
                    )
                )

        usage_data = raw_response.get("usage") or {}
        usage = None
        if usage_data:
            usage = UsageInfo(
                prompt_tokens=usage_data.get("input_tokens"),
                completion_tokens=usage_data.get("output_tokens"),
                total_tokens=usage_data.get("total_tokens"),
            )

        metadata = ResponseMetadata(
            provider=self.provider,
            model=raw_response.get("model") or self.model_name,
            request_id=raw_response.get("id"),
            usage=usage,
            finish_reason=finish_reason,
            response_time=time.time() - request_start_time,
        )

        return HarmonizedResponse(
            role="assistant",
            content=content or None,
            tool_calls=tool_calls,
            metadata=metadata,
        )
