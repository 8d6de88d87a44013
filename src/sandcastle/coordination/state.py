"""Run state shared between the orchestration network and its router."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class ToolResult:
    """Outcome of one tool invocation, as returned to the agent."""
    call_id: str
    name: str
    output: str
    success: bool = True


@dataclass
class TurnResult:
    """What one agent did in one turn of the network loop."""
    agent_name: str
    text: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    tool_results: List[ToolResult] = field(default_factory=list)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    @property
    def invoked_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class NetworkState:
    default_agent: str
    completion_open_tag: str = "<task_summary>"
    completion_close_tag: str = "</task_summary>"
    turns: List[TurnResult] = field(default_factory=list)
    final_answer: Optional[str] = None

    @property
    def latest(self) -> Optional[TurnResult]:
        return self.turns[-1] if self.turns else None


class RoutingAction(Enum):
    STOP = "stop"
    CONTINUE = "continue"
    HANDOFF = "handoff"


@dataclass
class RoutingDecision:
    action: RoutingAction
    agent_name: Optional[str] = None
    final_answer: Optional[str] = None
    reason: str = ""

    @property
    def should_stop(self) -> bool:
        return self.action == RoutingAction.STOP
