"""
Sandcastle - agent session and orchestration engine

Runs AI agents against tasks with bounded retry, keeps long-lived interactive
terminal sessions inside a sandbox, orchestrates a growing network of coding
agents, and fans lifecycle events out to subscribers over a realtime bus.
"""

__version__ = "0.1.0"

# Agents, tasks and errors
from .agents import (
    Agent,
    AgentFrameworkError,
    CustomAgentCatalog,
    Execution,
    OutputToolCatalog,
    SystemAgentRegistry,
    Task,
)

# Configuration
from .config import NetworkConfig, SessionConfig, Settings, TokenConfig

# Provider access
from .models import ModelConfig, ProviderAdapterFactory, ProviderTag

# Task execution
from .execution import RateLimiter, TaskExecutor, get_rate_limiter

# Realtime
from .realtime import AgentEventEmitter, AgentEventType, RealtimeBus, SubscriptionToken

# Sandbox and sessions
from .sandbox import LocalSandbox, Sandbox
from .sessions import DescriptorStore, InteractiveSessionManager

# Orchestration
from .coordination import Network, NetworkResult, default_router

__all__ = [
    # Version
    "__version__",
    # Agents
    "Agent",
    "AgentFrameworkError",
    "CustomAgentCatalog",
    "Execution",
    "OutputToolCatalog",
    "SystemAgentRegistry",
    "Task",
    # Config
    "NetworkConfig",
    "SessionConfig",
    "Settings",
    "TokenConfig",
    # Models
    "ModelConfig",
    "ProviderAdapterFactory",
    "ProviderTag",
    # Execution
    "RateLimiter",
    "TaskExecutor",
    "get_rate_limiter",
    # Realtime
    "AgentEventEmitter",
    "AgentEventType",
    "RealtimeBus",
    "SubscriptionToken",
    # Sandbox and sessions
    "LocalSandbox",
    "Sandbox",
    "DescriptorStore",
    "InteractiveSessionManager",
    # Coordination
    "Network",
    "NetworkResult",
    "default_router",
]
