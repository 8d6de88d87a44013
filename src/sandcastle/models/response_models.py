"""
Pydantic models for harmonized provider responses.

Both provider adapters return a HarmonizedResponse so the task executor and the
orchestration network never look at provider-specific payloads.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ToolCall(BaseModel):
    """Represents a tool/function call."""
    id: str
    type: str = "function"
    function: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("function")
    @classmethod
    def validate_function(cls, v):
        """Ensure function has required fields."""
        if "name" not in v:
            raise ValueError("Function must have 'name' field")
        if "arguments" not in v:
            v["arguments"] = {}
        return v

    @property
    def name(self) -> str:
        return self.function["name"]

    @property
    def arguments(self) -> Dict[str, Any]:
        """Arguments as a dict; streamed calls carry them as a JSON string."""
        args = self.function.get("arguments") or {}
        if isinstance(args, str):
            try:
                args = json.loads(args) if args.strip() else {}
            except json.JSONDecodeError:
                return {}
        return args if isinstance(args, dict) else {}


class UsageInfo(BaseModel):
    """Token usage information."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @model_validator(mode="after")
    def calculate_total(self):
        """Calculate total tokens if not provided."""
        if self.total_tokens is None:
            self.total_tokens = (self.prompt_tokens or 0) + (self.completion_tokens or 0)
        return self


class ResponseMetadata(BaseModel):
    """Metadata about the API response."""
    model_config = ConfigDict(extra="allow")

    provider: str
    model: str
    request_id: Optional[str] = None
    usage: Optional[UsageInfo] = None
    finish_reason: Optional[str] = None
    response_time: Optional[float] = None
    streamed: bool = False


class HarmonizedResponse(BaseModel):
    """
    Standardized response format for both providers.

    Unlike a chat message this may be empty; callers decide whether an empty
    response is an error.
    """
    model_config = ConfigDict(extra="allow")

    role: str = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    metadata: ResponseMetadata

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        valid_roles = ["assistant", "user", "system", "tool"]
        if v not in valid_roles:
            raise ValueError(f"Role must be one of {valid_roles}, got {v}")
        return v

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls

    def find_tool_call(self, name: str) -> Optional[ToolCall]:
        for call in self.tool_calls:
            if call.name == name:
                return call
        return None

    def to_message(self) -> Dict[str, Any]:
        """Render as an OpenAI-style assistant message for conversation history."""
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in self.tool_calls
            ]
        return message
