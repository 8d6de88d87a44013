"""
Agent lifecycle events published on the realtime bus.

Every event is published once to the workspace's ``agent-event`` topic and
never stored.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .bus import RealtimeBus

logger = logging.getLogger(__name__)

AGENT_EVENT_TOPIC = "agent-event"


class AgentEventType(str, Enum):
    RUN_STARTED = "run.started"
    RUN_COMPLETED = "run.completed"
    RUN_FAILED = "run.failed"
    TEXT_DELTA = "text.delta"
    TEXT_COMPLETED = "text.completed"
    TOOL_CALLED = "tool.called"
    TOOL_COMPLETED = "tool.completed"
    TOOL_FAILED = "tool.failed"
    PART_CREATED = "part.created"
    STEP_STARTED = "step.started"
    STEP_COMPLETED = "step.completed"
    STEP_FAILED = "step.failed"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AgentEvent:
    """A single lifecycle event; ``timestamp`` is epoch milliseconds."""
    type: AgentEventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "timestamp": self.timestamp, "data": self.data}


class AgentEventEmitter:
    """Publishes typed agent events for one workspace."""

    def __init__(self, bus: "RealtimeBus", workspace_id: str):
        self.bus = bus
        self.workspace_id = workspace_id

    async def emit(self, event_type: AgentEventType, data: Dict[str, Any]) -> AgentEvent:
        event = AgentEvent(type=AgentEventType(event_type), data=data)
        await self.bus.publish_workspace(self.workspace_id, AGENT_EVENT_TOPIC, event.to_dict())
        return event

    # Run lifecycle

    async def emit_run_started(self, agent_name: str, prompt: str) -> AgentEvent:
        return await self.emit(AgentEventType.RUN_STARTED, {"agent_name": agent_name, "prompt": prompt})

    async def emit_run_completed(self, agent_name: str, output: str, duration: Optional[float] = None) -> AgentEvent:
        data = {"agent_name": agent_name, "output": output}
        if duration is not None:
            data["duration"] = duration
        return await self.emit(AgentEventType.RUN_COMPLETED, data)

    async def emit_run_failed(self, agent_name: str, error: str) -> AgentEvent:
        return await self.emit(AgentEventType.RUN_FAILED, {"agent_name": agent_name, "error": error})

    # Text

    async def emit_text_delta(self, text: str, role: str = "assistant") -> AgentEvent:
        return await self.emit(AgentEventType.TEXT_DELTA, {"text": text, "role": role})

    async def emit_text_completed(self, text: str, role: str = "assistant", agent_name: Optional[str] = None) -> AgentEvent:
        data = {"text": text, "role": role}
        if agent_name:
            data["agent_name"] = agent_name
        return await self.emit(AgentEventType.TEXT_COMPLETED, data)

    # Tools

    async def emit_tool_called(self, name: str, args: Dict[str, Any]) -> AgentEvent:
        return await self.emit(AgentEventType.TOOL_CALLED, {"name": name, "args": args})

    async def emit_tool_completed(self, name: str, result: Any, duration: Optional[float] = None) -> AgentEvent:
        data = {"name": name, "result": result}
        if duration is not None:
            data["duration"] = duration
        return await self.emit(AgentEventType.TOOL_COMPLETED, data)

    async def emit_tool_failed(self, name: str, error: str) -> AgentEvent:
        return await self.emit(AgentEventType.TOOL_FAILED, {"name": name, "error": error})

    # Parts and steps

    async def emit_part_created(self, part_type: str, data: Dict[str, Any]) -> AgentEvent:
        return await self.emit(AgentEventType.PART_CREATED, {"part_type": part_type, **data})

    async def emit_step_started(self, tool_name: str, step: int, total: int, description: str) -> AgentEvent:
        return await self.emit(
            AgentEventType.STEP_STARTED,
            {"tool_name": tool_name, "step": step, "total": total, "description": description},
        )

    async def emit_step_completed(self, tool_name: str, step: int, total: int, description: str) -> AgentEvent:
        return await self.emit(
            AgentEventType.STEP_COMPLETED,
            {"tool_name": tool_name, "step": step, "total": total, "description": description},
        )

    async def emit_step_failed(self, tool_name: str, step: int, total: int, error: str) -> AgentEvent:
        return await self.emit(
            AgentEventType.STEP_FAILED,
            {"tool_name": tool_name, "step": step, "total": total, "error": error},
        )
