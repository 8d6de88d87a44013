"""
Tests for the provider adapters.

This module tests:
- Anthropic and OpenAI request payload formatting
- Response harmonization (text, tool calls, usage)
- Adapter factory caching and credential errors
- Retry and error classification in the HTTP layer

No network access: HTTP is replaced by patching ``_post`` or by a fake
client session that counts requests.
"""

import json
import time
from unittest.mock import AsyncMock, patch

import pytest

from sandcastle.agents.exceptions import MissingCredentialError, ModelAPIError
from sandcastle.models.adapters import AnthropicAdapter, OpenAIAdapter, ProviderAdapterFactory
from sandcastle.models.catalog import ProviderTag
from sandcastle.models.config import ModelConfig


TOOL = {
    "type": "function",
    "function": {
        "name": "validate_work",
        "description": "Validate",
        "parameters": {"type": "object", "properties": {"passed": {"type": "boolean"}}},
    },
}

CONVERSATION = [
    {"role": "user", "content": "List files"},
    {
        "role": "assistant",
        "content": "Looking",
        "tool_calls": [
            {"id": "call_1", "type": "function", "function": {"name": "terminal", "arguments": json.dumps({"command": "ls"})}},
        ],
    },
    {"role": "tool", "tool_call_id": "call_1", "content": "a.py"},
]


@pytest.fixture
def anthropic_adapter():
    return AnthropicAdapter(ModelConfig(provider=ProviderTag.ANTHROPIC, name="claude-sonnet-4-5", api_key="k"))


@pytest.fixture
def openai_adapter():
    return OpenAIAdapter(ModelConfig(provider=ProviderTag.OPENAI, name="gpt-5", api_key="k", temperature=0.2))


# =============================================================================
# Anthropic Adapter Tests
# =============================================================================

class TestAnthropicPayload:
    def test_system_prompt_and_forced_tool(self, anthropic_adapter):
        payload = anthropic_adapter.format_request_payload(
            [{"role": "user", "content": "hi"}],
            system_prompt="Be brief",
            tools=[TOOL],
            tool_choice="validate_work",
        )

        assert payload["model"] == "claude-sonnet-4-5-20250929"
        assert payload["system"] == "Be brief"
        assert payload["tools"][0]["name"] == "validate_work"
        assert payload["tools"][0]["input_schema"]["type"] == "object"
        assert payload["tool_choice"] == {"type": "tool", "name": "validate_work"}

    def test_tool_round_trip_messages(self, anthropic_adapter):
        payload = anthropic_adapter.format_request_payload(CONVERSATION)

        assistant = payload["messages"][1]
        assert assistant["content"][0] == {"type": "text", "text": "Looking"}
        assert assistant["content"][1]["type"] == "tool_use"
        assert assistant["content"][1]["input"] == {"command": "ls"}

        tool_result = payload["messages"][2]
        assert tool_result["role"] == "user"
        assert tool_result["content"][0]["tool_use_id"] == "call_1"

    def test_consecutive_tool_results_grouped(self, anthropic_adapter):
        messages = CONVERSATION + [{"role": "tool", "tool_call_id": "call_2", "content": "b.py"}]

        payload = anthropic_adapter.format_request_payload(messages)

        assert len(payload["messages"]) == 3
        assert len(payload["messages"][2]["content"]) == 2

    def test_harmonize(self, anthropic_adapter):
        raw = {
            "id": "msg_1",
            "model": "claude-sonnet-4-5-20250929",
            "content": [
                {"type": "text", "text": "Done"},
                {"type": "tool_use", "id": "tu_1", "name": "validate_work", "input": {"passed": True}},
            ],
            "usage": {"input_tokens": 10, "output_tokens": 5},
            "stop_reason": "tool_use",
        }

        response = anthropic_adapter.harmonize_response(raw, time.time())

        assert response.content == "Done"
        assert response.tool_calls[0].arguments == {"passed": True}
        assert response.metadata.usage.total_tokens == 15
        assert response.metadata.finish_reason == "tool_use"

    def test_empty_response(self, anthropic_adapter):
        response = anthropic_adapter.harmonize_response({"content": []}, time.time())

        assert response.is_empty()


# =============================================================================
# OpenAI Adapter Tests
# =============================================================================

class TestOpenAIPayload:
    def test_single_prompt_is_plain_string(self, openai_adapter):
        payload = openai_adapter.format_request_payload(
            [{"role": "user", "content": "hi"}], system_prompt="Be brief"
        )

        assert payload["input"] == "hi"
        assert payload["instructions"] == "Be brief"
        assert payload["store"] is False

    def test_reasoning_model_drops_temperature(self, openai_adapter):
        payload = openai_adapter.format_request_payload([{"role": "user", "content": "hi"}])

        assert "temperature" not in payload

    def test_temperature_kept_for_chat_models(self):
        adapter = OpenAIAdapter(ModelConfig(provider=ProviderTag.OPENAI, name="gpt-4o", api_key="k", temperature=0.2))

        payload = adapter.format_request_payload([{"role": "user", "content": "hi"}])

        assert payload["temperature"] == 0.2

    def test_conversation_items(self, openai_adapter):
        payload = openai_adapter.format_request_payload(CONVERSATION, tools=[TOOL], tool_choice="validate_work")

        types = [item.get("type", item.get("role")) for item in payload["input"]]
        assert types == ["user", "assistant", "function_call", "function_call_output"]
        assert payload["tools"][0]["name"] == "validate_work"
        assert payload["tool_choice"] == {"type": "function", "name": "validate_work"}

    def test_harmonize_concatenates_messages(self, openai_adapter):
        raw = {
            "id": "resp_1",
            "output": [
                {"type": "reasoning"},
                {"type": "message", "status": "completed", "content": [{"type": "output_text", "text": "Hello "}]},
                {"type": "message", "status": "completed", "content": [{"type": "output_text", "text": "world"}]},
                {"type": "function_call", "call_id": "fc_1", "name": "validate_work", "arguments": "{\"passed\": false}"},
            ],
            "usage": {"input_tokens": 3, "output_tokens": 4, "total_tokens": 7},
        }

        response = openai_adapter.harmonize_response(raw, time.time())

        assert response.content == "Hello world"
        assert response.metadata.finish_reason == "stop"
        assert response.tool_calls[0].id == "fc_1"
        assert response.tool_calls[0].arguments == {"passed": False}


# =============================================================================
# Transport Tests
# =============================================================================

class TestTransport:
    @pytest.mark.asyncio
    async def test_arun_uses_standard_flow_without_callback(self, anthropic_adapter):
        raw = {"content": [{"type": "text", "text": "ok"}]}
        with patch.object(anthropic_adapter, "_post", AsyncMock(return_value=raw)) as post:
            response = await anthropic_adapter.arun([{"role": "user", "content": "hi"}])

        assert response.content == "ok"
        payload = post.call_args.args[0]
        assert "stream" not in payload

    @pytest.mark.asyncio
    async def test_api_error_propagates(self, openai_adapter):
        error = ModelAPIError.from_status("openai", 401)
        with patch.object(openai_adapter, "_post", AsyncMock(side_effect=error)):
            with pytest.raises(ModelAPIError) as exc_info:
                await openai_adapter.arun([{"role": "user", "content": "hi"}])

        assert exc_info.value.is_critical()

    def test_handle_api_error_reads_retry_after(self, anthropic_adapter):
        error = anthropic_adapter.handle_api_error(429, {"error": {"message": "slow down"}}, {"retry-after": "3"})

        assert error.classification == "rate_limit"
        assert error.retry_after == 3.0
        assert "slow down" in str(error)

    @pytest.mark.asyncio
    async def test_http_retries_when_configured(self, http_session):
        adapter = AnthropicAdapter(
            ModelConfig(provider=ProviderTag.ANTHROPIC, name="claude-haiku-4-5", api_key="k"),
            max_retries=2,
            base_delay=0,
        )
        session = http_session(adapter, status=503)

        with pytest.raises(ModelAPIError):
            await adapter.arun([{"role": "user", "content": "hi"}])

        assert len(session.posts) == 3

    def test_retry_delay(self, anthropic_adapter):
        assert anthropic_adapter._retry_delay(0) == 1.0
        assert anthropic_adapter._retry_delay(2) == 4.0
        assert anthropic_adapter._retry_delay(0, {"retry-after": "7"}) == 7.0


# =============================================================================
# Factory Tests
# =============================================================================

class TestProviderAdapterFactory:
    def test_adapter_per_provider(self):
        factory = ProviderAdapterFactory(api_keys={"anthropic": "a", "openai": "o"})

        assert isinstance(factory.get_adapter(ProviderTag.ANTHROPIC, "claude-haiku-4-5"), AnthropicAdapter)
        assert isinstance(factory.get_adapter(ProviderTag.OPENAI, "gpt-5"), OpenAIAdapter)

    def test_adapters_are_cached(self):
        factory = ProviderAdapterFactory(api_keys={"anthropic": "a"})

        first = factory.get_adapter(ProviderTag.ANTHROPIC, "claude-haiku-4-5")

        assert factory.get_adapter("anthropic", "claude-haiku-4-5") is first

    @pytest.mark.asyncio
    async def test_factory_adapters_make_one_request(self, http_session):
        factory = ProviderAdapterFactory(api_keys={"anthropic": "a"})
        adapter = factory.get_adapter(ProviderTag.ANTHROPIC, "claude-haiku-4-5")
        session = http_session(adapter, status=503)

        with pytest.raises(ModelAPIError):
            await adapter.arun([{"role": "user", "content": "hi"}])

        assert adapter.max_retries == 0
        assert len(session.posts) == 1

    def test_missing_credential(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        factory = ProviderAdapterFactory()

        with pytest.raises(MissingCredentialError):
            factory.get_adapter(ProviderTag.OPENAI, "gpt-5")
