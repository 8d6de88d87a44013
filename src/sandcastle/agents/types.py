"""
Core record types: agents, tasks and executions.

Agents are immutable once built. Tasks and executions carry a status that only
moves forward; the stores enforce the transition rules defined here.
"""

import time
import uuid
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sandcastle.models.catalog import ProviderTag, resolve_provider


class AgentOrigin(str, Enum):
    """Where an agent definition comes from."""
    SYSTEM = "system"
    CUSTOM = "custom"


class AgentKind(str, Enum):
    """Behaviour type of an agent."""
    PLANNER = "planner"
    LOGIC_CHECKER = "logic_checker"
    CLARIFIER = "clarifier"
    CODE_FEEDBACK = "code_feedback"
    ORCHESTRATOR = "orchestrator"
    CODER = "coder"
    REVIEWER = "reviewer"
    DEBUGGER = "debugger"
    CUSTOM = "custom"


# Result-type tags persisted on tasks run by system agents
RESULT_TYPES = {
    AgentKind.PLANNER: "task_plan",
    AgentKind.LOGIC_CHECKER: "logic_check",
    AgentKind.CLARIFIER: "clarification",
    AgentKind.CODE_FEEDBACK: "code_review",
}

# Tools an agent may be granted inside the orchestration network
SANDBOX_TOOLS: FrozenSet[str] = frozenset({"terminal", "file_ops", "search_files", "git"})


class Agent(BaseModel):
    """
    An immutable agent definition.

    The provider tag is resolved from the model reference when the record is
    built and never re-derived afterwards.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    origin: AgentOrigin
    name: str
    kind: AgentKind = AgentKind.CUSTOM
    model: str
    provider: Optional[ProviderTag] = None
    system_prompt: str
    user_prompt_template: Optional[str] = None
    tools: FrozenSet[str] = Field(default_factory=frozenset)
    output_tool: Optional[str] = None
    team_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_provider(cls, data):
        if isinstance(data, dict) and data.get("provider") is None and data.get("model"):
            data = dict(data)
            data["provider"] = resolve_provider(data["model"])
        return data

    @model_validator(mode="after")
    def _check_tools(self):
        unknown = set(self.tools) - SANDBOX_TOOLS
        if unknown:
            raise ValueError(f"Unknown tools {sorted(unknown)}; allowed: {sorted(SANDBOX_TOOLS)}")
        if self.origin == AgentOrigin.CUSTOM and not self.team_id:
            raise ValueError("Custom agents must belong to a team")
        return self

    @property
    def result_type(self) -> Optional[str]:
        """Result-type tag for tasks run by this agent (system agents only)."""
        if self.origin != AgentOrigin.SYSTEM:
            return None
        return RESULT_TYPES.get(self.kind)

    def build_prompt(self, task_input: str) -> str:
        """Replace every ``{{input}}`` in the template, or use the input verbatim."""
        if self.user_prompt_template:
            return self.user_prompt_template.replace("{{input}}", task_input)
        return task_input


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def can_transition_to(self, new: "TaskStatus") -> bool:
        if new == self:
            return not self.is_terminal
        return new in _TASK_TRANSITIONS[self]


_TASK_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


class Task(BaseModel):
    """A unit of work bound to exactly one system or custom agent."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    system_agent_id: Optional[str] = None
    custom_agent_id: Optional[str] = None
    input: str
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    output: Optional[str] = None
    result_type: Optional[str] = None
    error: Optional[str] = None
    execution_id: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    completed_at: Optional[float] = None

    @model_validator(mode="after")
    def _exactly_one_agent(self):
        if (self.system_agent_id is None) == (self.custom_agent_id is None):
            raise ValueError("Task must reference exactly one of system_agent_id or custom_agent_id")
        return self

    @property
    def agent_id(self) -> str:
        return self.system_agent_id or self.custom_agent_id


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    def can_transition_to(self, new: "ExecutionStatus") -> bool:
        if new == self:
            return not self.is_terminal
        return new in _EXECUTION_TRANSITIONS[self]


_EXECUTION_TRANSITIONS = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING, ExecutionStatus.FAILED},
    ExecutionStatus.RUNNING: {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.PAUSED},
    ExecutionStatus.PAUSED: {ExecutionStatus.RUNNING, ExecutionStatus.FAILED},
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
}


class Execution(BaseModel):
    """A multi-task run owned by a team and bound to a realtime channel."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    team_id: str
    workspace_id: str
    input: str = ""
    status: ExecutionStatus = ExecutionStatus.PENDING
    task_ids: List[str] = Field(default_factory=list)
    output: Optional[str] = None
    error: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def channel(self) -> str:
        return f"workspace:{self.workspace_id}"
