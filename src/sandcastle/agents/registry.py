import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .exceptions import (
    AgentConfigurationError,
    AgentLimitError,
    AgentNotFoundError,
    ToolMappingError,
)
from .store import AgentStore
from .types import Agent, AgentKind, AgentOrigin

logger = logging.getLogger(__name__)

DEFINITIONS_DIR = Path(__file__).parent / "definitions"

DEFAULT_MAX_CUSTOM_AGENTS = 50


def _load_yaml(path: Union[str, Path]) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as e:
        raise AgentConfigurationError(f"Definition file not found: {path}", config_field="path", config_value=path) from e
    except yaml.YAMLError as e:
        raise AgentConfigurationError(f"Invalid YAML in {path}: {e}", config_field="path", config_value=path) from e


class SystemAgentRegistry:
    """
    Read-only registry of built-in agents.

    Built once from YAML at startup and injected wherever system agents are
    needed; nothing mutates it afterwards.
    """

    def __init__(self, agents: Iterable[Agent]):
        self._agents: Dict[str, Agent] = {}
        for agent in agents:
            if agent.origin != AgentOrigin.SYSTEM:
                raise AgentConfigurationError(
                    f"Agent '{agent.name}' is not a system agent",
                    config_field="origin",
                    config_value=agent.origin.value,
                )
            if agent.id in self._agents:
                raise AgentConfigurationError(
                    f"Duplicate system agent id '{agent.id}'", config_field="id", config_value=agent.id
                )
            self._agents[agent.id] = agent

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "SystemAgentRegistry":
        path = path or DEFINITIONS_DIR / "system_agents.yaml"
        data = _load_yaml(path) or {}

        agents = []
        for entry in data.get("agents", []):
            try:
                agents.append(Agent(origin=AgentOrigin.SYSTEM, **entry))
            except ValidationError as e:
                raise AgentConfigurationError(
                    f"Invalid system agent definition '{entry.get('id', '?')}': {e}",
                    config_field="agents",
                    config_value=entry.get("id"),
                ) from e

        registry = cls(agents)
        logger.info(f"Loaded {len(registry)} system agents from {path}")
        return registry

    def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def by_kind(self, kind: AgentKind) -> List[Agent]:
        return [a for a in self._agents.values() if a.kind == kind]

    def all(self) -> List[Agent]:
        return list(self._agents.values())

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)


class OutputToolCatalog:
    """Structured-output tool schemas keyed by catalog name."""

    def __init__(self, tools: Dict[str, Dict[str, Any]]):
        for key, tool in tools.items():
            if "name" not in tool or "input_schema" not in tool:
                raise ToolMappingError(f"Output tool '{key}' needs 'name' and 'input_schema'", tool_name=key)
        self._tools = dict(tools)

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "OutputToolCatalog":
        path = path or DEFINITIONS_DIR / "output_tools.yaml"
        return cls(_load_yaml(path) or {})

    def require(self, key: str) -> Dict[str, Any]:
        """
        Return the tool in function-calling format.

        Raises:
            ToolMappingError: if ``key`` has no definition
        """
        tool = self._tools.get(key)
        if tool is None:
            raise ToolMappingError(f"No output tool defined for '{key}'", tool_name=key)
        return {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool["input_schema"],
            },
        }

    def __contains__(self, key: str) -> bool:
        return key in self._tools


class CustomAgentCatalog:
    """
    Agents created at runtime for one team.

    Bounded by ``max_agents`` and keyed by name: asking for an existing name
    returns the existing definition instead of creating a second one.
    """

    def __init__(self, store: AgentStore, team_id: str, max_agents: int = DEFAULT_MAX_CUSTOM_AGENTS):
        self.store = store
        self.team_id = team_id
        self.max_agents = max_agents
        self._lock = asyncio.Lock()

    async def create(
        self,
        name: str,
        role: str,
        system_prompt: str,
        tools: Iterable[str],
        model: str,
    ) -> Tuple[Agent, bool]:
        """
        Create or reuse a custom agent.

        Returns:
            (agent, created) where ``created`` is False when an agent with the
            same name already existed

        Raises:
            AgentLimitError: if the team already holds ``max_agents`` agents
            AgentConfigurationError: if the model or tools are invalid
        """
        async with self._lock:
            existing = await self.store.find_by_name(self.team_id, name)
            if existing is not None:
                logger.info(f"Reusing custom agent '{name}' ({existing.id}) for team {self.team_id}")
                return existing, False

            count = len(await self.store.list_for_team(self.team_id))
            if count >= self.max_agents:
                raise AgentLimitError(
                    f"Team {self.team_id} already has {count} custom agents (limit {self.max_agents})",
                    limit=self.max_agents,
                    team_id=self.team_id,
                )

            try:
                agent = Agent(
                    origin=AgentOrigin.CUSTOM,
                    name=name,
                    kind=AgentKind.CUSTOM,
                    model=model,
                    system_prompt=f"Role: {role}\n\n{system_prompt}",
                    tools=frozenset(tools),
                    team_id=self.team_id,
                )
            except ValidationError as e:
                raise AgentConfigurationError(f"Invalid custom agent '{name}': {e}", config_field="tools") from e

            await self.store.create(agent)
            logger.info(f"Created custom agent '{name}' ({agent.id}) for team {self.team_id}")
            return agent, True

    async def get_by_name(self, name: str) -> Optional[Agent]:
        return await self.store.find_by_name(self.team_id, name)

    async def list(self) -> List[Agent]:
        return await self.store.list_for_team(self.team_id)
