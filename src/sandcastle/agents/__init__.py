"""Agent records, registries, stores and the exception hierarchy."""

from .exceptions import (
    AgentConfigurationError,
    AgentFrameworkError,
    AgentLimitError,
    AgentNotFoundError,
    ConfigurationError,
    InvalidStateTransitionError,
    MissingCredentialError,
    ModelAPIError,
    ModelResponseError,
    NoActiveSessionError,
    SessionExpiredError,
    SessionLockError,
    SubscriptionTokenError,
    ToolExecutionError,
    ToolMappingError,
    WorkflowError,
)
from .types import (
    Agent,
    AgentKind,
    AgentOrigin,
    Execution,
    ExecutionStatus,
    SANDBOX_TOOLS,
    Task,
    TaskStatus,
)
from .store import (
    AgentStore,
    ExecutionStore,
    InMemoryAgentStore,
    InMemoryExecutionStore,
    InMemoryTaskStore,
    TaskStore,
)
from .registry import CustomAgentCatalog, OutputToolCatalog, SystemAgentRegistry

__all__ = [
    # Exceptions
    "AgentFrameworkError",
    "ConfigurationError",
    "AgentConfigurationError",
    "AgentLimitError",
    "AgentNotFoundError",
    "InvalidStateTransitionError",
    "WorkflowError",
    "MissingCredentialError",
    "ModelAPIError",
    "ModelResponseError",
    "NoActiveSessionError",
    "SessionExpiredError",
    "SessionLockError",
    "SubscriptionTokenError",
    "ToolExecutionError",
    "ToolMappingError",
    # Types
    "Agent",
    "AgentKind",
    "AgentOrigin",
    "Execution",
    "ExecutionStatus",
    "SANDBOX_TOOLS",
    "Task",
    "TaskStatus",
    # Stores
    "AgentStore",
    "ExecutionStore",
    "TaskStore",
    "InMemoryAgentStore",
    "InMemoryExecutionStore",
    "InMemoryTaskStore",
    # Registries
    "CustomAgentCatalog",
    "OutputToolCatalog",
    "SystemAgentRegistry",
]
