"""The ``create_agent`` tool: lets the orchestrator add specialists at runtime."""

import logging
from typing import Any, Callable, Dict, Optional

from sandcastle.agents.registry import CustomAgentCatalog
from sandcastle.agents.types import SANDBOX_TOOLS, Agent
from sandcastle.models.catalog import DEFAULT_MODEL, MODELS

logger = logging.getLogger(__name__)

CREATE_AGENT_TOOL = "create_agent"


def create_agent_schema() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": CREATE_AGENT_TOOL,
            "description": (
                "Create a new specialized agent for a domain the existing agents do not cover "
                "(e.g. \"CSS Specialist\", \"Security Auditor\"). Creating an agent whose name "
                "already exists returns the existing one. The new agent can then be given work "
                "with the delegate tool."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Agent name"},
                    "role": {"type": "string", "description": "Brief description of the agent's role and expertise"},
                    "system_prompt": {
                        "type": "string",
                        "description": "Detailed system prompt defining the agent's capabilities and behavior",
                    },
                    "tools": {
                        "type": "array",
                        "items": {"type": "string", "enum": sorted(SANDBOX_TOOLS)},
                        "description": "Tools this agent may use",
                    },
                    "model": {
                        "type": "string",
                        "enum": sorted(MODELS),
                        "description": f"Model to use (default: {DEFAULT_MODEL})",
                    },
                },
                "required": ["name", "role", "system_prompt", "tools"],
            },
        },
    }


class AgentCreator:
    """
    Handler for ``create_agent``.

    Persists through the team's ``CustomAgentCatalog`` and reports each
    agent to ``on_registered`` so the running network can route to it.
    """

    def __init__(
        self,
        catalog: CustomAgentCatalog,
        on_registered: Callable[[Agent, bool], None],
        default_model: str = DEFAULT_MODEL,
    ):
        self.catalog = catalog
        self.on_registered = on_registered
        self.default_model = default_model

    async def __call__(self, args: Dict[str, Any]) -> str:
        model: Optional[str] = args.get("model") or self.default_model
        agent, created = await self.catalog.create(
            name=args["name"],
            role=args["role"],
            system_prompt=args["system_prompt"],
            tools=args.get("tools", []),
            model=model,
        )
        self.on_registered(agent, created)

        tools = ", ".join(sorted(agent.tools)) or "none"
        if not created:
            return f'Agent "{agent.name}" already exists (tools: {tools}, model: {agent.model}). It is available for delegation.'
        return (
            f'Created "{agent.name}" agent\n'
            f"Role: {args['role']}\n"
            f"Tools: {tools}\n"
            f"Model: {agent.model}\n\n"
            "The agent is now available in the network and can be delegated tasks."
        )
