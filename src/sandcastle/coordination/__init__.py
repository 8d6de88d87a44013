"""Orchestration network: router, tool catalog and the agent loop."""

from .agent_factory import CREATE_AGENT_TOOL, AgentCreator, create_agent_schema
from .network import DELEGATE_TOOL, STOP_MAX_ITER, Network, NetworkResult, delegate_schema
from .router import default_router, extract_delimited
from .state import NetworkState, RoutingAction, RoutingDecision, ToolResult, TurnResult
from .tools import SANDBOX_TOOL_SCHEMAS, ToolExecutor, find_similar_tool_names

__all__ = [
    "AgentCreator",
    "CREATE_AGENT_TOOL",
    "create_agent_schema",
    "DELEGATE_TOOL",
    "delegate_schema",
    "Network",
    "NetworkResult",
    "STOP_MAX_ITER",
    "default_router",
    "extract_delimited",
    "NetworkState",
    "RoutingAction",
    "RoutingDecision",
    "ToolResult",
    "TurnResult",
    "SANDBOX_TOOL_SCHEMAS",
    "ToolExecutor",
    "find_similar_tool_names",
]
