"""
Orchestration network.

The orchestrator is the default agent. Each iteration runs one agent turn
(one model call plus the tool calls it requested), then the router decides
whether to stop, let the same agent continue, or hand control back to the
orchestrator. The orchestrator grows the network with ``create_agent`` and
hands subtasks to other agents with ``delegate``.
"""

import logging
import time
from dataclasses import dataclass, field
from difflib import get_close_matches
from typing import Any, Dict, List, Optional

from sandcastle.agents.exceptions import AgentConfigurationError, ToolExecutionError
from sandcastle.agents.registry import CustomAgentCatalog, SystemAgentRegistry
from sandcastle.agents.store import ExecutionStore
from sandcastle.agents.types import Agent, AgentKind, Execution, ExecutionStatus
from sandcastle.config import NetworkConfig
from sandcastle.execution.rate_limiter import RateLimiter, get_rate_limiter
from sandcastle.models.adapters.factory import ProviderAdapterFactory
from sandcastle.realtime.events import AgentEventEmitter
from sandcastle.sandbox.base import Sandbox

from .agent_factory import CREATE_AGENT_TOOL, AgentCreator, create_agent_schema
from .prompts import delegated_task_prompt, handoff_prompt, orchestrator_system_prompt
from .router import RouterFn, default_router
from .state import NetworkState, TurnResult
from .tools import ToolExecutor

logger = logging.getLogger(__name__)

DELEGATE_TOOL = "delegate"
STOP_MAX_ITER = "max_iter"

BASE_AGENT_KINDS = (AgentKind.CODER, AgentKind.REVIEWER, AgentKind.DEBUGGER)


def delegate_schema() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": DELEGATE_TOOL,
            "description": (
                "Hand a subtask to another agent in the network and wait for its report. "
                "The description must be self-contained: the agent does not see this conversation."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "agent_name": {"type": "string", "description": "Name of the agent to delegate to"},
                    "task": {"type": "string", "description": "What the agent should do"},
                },
                "required": ["agent_name", "task"],
            },
        },
    }


@dataclass
class NetworkResult:
    output: str
    final_answer: Optional[str]
    turns: int
    stop_reason: str
    agents_created: List[str] = field(default_factory=list)

    @property
    def hit_iteration_limit(self) -> bool:
        return self.stop_reason == STOP_MAX_ITER


class Network:
    def __init__(
        self,
        registry: SystemAgentRegistry,
        adapter_factory: ProviderAdapterFactory,
        sandbox: Sandbox,
        catalog: Optional[CustomAgentCatalog] = None,
        emitter: Optional[AgentEventEmitter] = None,
        config: Optional[NetworkConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        work_dir: Optional[str] = None,
        execution_store: Optional[ExecutionStore] = None,
        router: RouterFn = default_router,
    ):
        self.adapter_factory = adapter_factory
        self.catalog = catalog
        self.emitter = emitter
        self.config = config or NetworkConfig()
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.execution_store = execution_store
        self.router = router

        orchestrators = registry.by_kind(AgentKind.ORCHESTRATOR)
        if not orchestrators:
            raise AgentConfigurationError("No orchestrator agent defined", config_field="kind", config_value="orchestrator")
        self.default_agent = orchestrators[0]

        self.agents: Dict[str, Agent] = {self.default_agent.name: self.default_agent}
        for kind in BASE_AGENT_KINDS:
            for agent in registry.by_kind(kind):
                self.agents[agent.name] = agent

        self.tools = ToolExecutor(sandbox, emitter, work_dir, self.config.command_timeout_ms)
        self.tools.register(delegate_schema(), self._delegate)
        if catalog is not None:
            self.tools.register(
                create_agent_schema(),
                AgentCreator(catalog, self._on_agent_registered, self.config.default_custom_model),
            )

        self._agents_created: List[str] = []

    def _on_agent_registered(self, agent: Agent, created: bool) -> None:
        self.agents[agent.name] = agent
        if created:
            self._agents_created.append(agent.name)

    def _allowed_tools(self, agent: Agent) -> List[str]:
        allowed = set(agent.tools)
        if agent.name == self.default_agent.name:
            allowed.add(DELEGATE_TOOL)
            if self.catalog is not None:
                allowed.add(CREATE_AGENT_TOOL)
        return sorted(allowed)

    async def _emit_delta(self, text: str) -> None:
        await self.emitter.emit_text_delta(text)

    async def _run_turn(self, agent: Agent, history: List[Dict[str, Any]]) -> TurnResult:
        allowed = self._allowed_tools(agent)
        system_prompt = agent.system_prompt
        if agent.name == self.default_agent.name:
            system_prompt = orchestrator_system_prompt(system_prompt, self.agents.values(), agent.name)

        kwargs: Dict[str, Any] = {"system_prompt": system_prompt}
        schemas = self.tools.schemas_for(allowed)
        if schemas:
            kwargs["tools"] = schemas
        on_delta = self._emit_delta if (self.emitter and self.config.stream_text) else None

        adapter = self.adapter_factory.get_adapter(agent.provider, agent.model)
        messages = list(history)
        response = await self.rate_limiter.run(lambda: adapter.arun(messages, on_text_delta=on_delta, **kwargs))

        turn = TurnResult(agent_name=agent.name, text=response.content)
        if response.is_empty():
            logger.warning(f"{agent.name} returned an empty response", extra={"agent_name": agent.name})
            return turn

        history.append(response.to_message())
        if turn.has_text and self.emitter:
            await self.emitter.emit_text_completed(turn.text, agent_name=agent.name)

        for call in response.tool_calls:
            arguments = call.arguments
            turn.tool_calls.append({"id": call.id, "name": call.name, "arguments": arguments})
            if self.emitter:
                await self.emitter.emit_part_created(
                    "tool-call",
                    {"tool_call_id": call.id, "name": call.name, "args": arguments, "agent_name": agent.name},
                )
            result = await self.tools.execute(call.id, call.name, arguments, allowed)
            turn.tool_results.append(result)
            history.append({"role": "tool", "tool_call_id": call.id, "content": result.output})

        return turn

    async def _delegate(self, args: Dict[str, Any]) -> str:
        name = args["agent_name"]
        agent = self.agents.get(name)
        if agent is None or agent.name == self.default_agent.name:
            candidates = [n for n in self.agents if n != self.default_agent.name]
            similar = get_close_matches(name, candidates, n=1)
            hint = f" Did you mean: {similar[0]}?" if similar else ""
            raise ToolExecutionError(
                f"No agent named '{name}' to delegate to.{hint} Agents: {', '.join(candidates)}",
                tool_name=DELEGATE_TOOL,
                tool_args=args,
            )

        total = self.config.max_delegate_turns
        history = [{"role": "user", "content": delegated_task_prompt(args["task"], self.default_agent.name)}]
        last_text: Optional[str] = None
        logger.info(f"Delegating to {agent.name}: {args['task'][:100]}", extra={"agent_name": agent.name})

        for step in range(1, total + 1):
            description = f"{agent.name} turn {step}"
            if self.emitter:
                await self.emitter.emit_step_started(DELEGATE_TOOL, step, total, description)
            try:
                turn = await self._run_turn(agent, history)
            except Exception as e:
                if self.emitter:
                    await self.emitter.emit_step_failed(DELEGATE_TOOL, step, total, str(e))
                raise
            if self.emitter:
                await self.emitter.emit_step_completed(DELEGATE_TOOL, step, total, description)

            if turn.has_text:
                last_text = turn.text
                if not turn.invoked_tools:
                    return turn.text

        logger.warning(f"{agent.name} did not finish within {total} turns", extra={"agent_name": agent.name})
        note = f"[{agent.name} stopped after {total} turns without a final report]"
        return f"{last_text}\n\n{note}" if last_text else note

    async def _update_execution(self, execution: Execution, **fields: Any) -> None:
        await self.execution_store.update(execution.id, **fields)

    async def run(self, prompt: str, execution: Optional[Execution] = None) -> NetworkResult:
        """
        Run the network on ``prompt`` until the router stops it or
        ``max_iter`` turns have run.

        When ``execution`` is given its record moves to running, then to
        completed (with the output) or failed (with the error).
        """
        if execution is not None and self.execution_store is None:
            raise AgentConfigurationError("An execution store is required to track executions", config_field="execution_store")

        self._agents_created = []
        if self.catalog is not None:
            for agent in await self.catalog.list():
                self.agents.setdefault(agent.name, agent)

        if execution is not None:
            await self._update_execution(execution, status=ExecutionStatus.RUNNING)
        if self.emitter:
            await self.emitter.emit_run_started(self.default_agent.name, prompt)

        start_time = time.time()
        state = NetworkState(
            default_agent=self.default_agent.name,
            completion_open_tag=self.config.completion_open_tag,
            completion_close_tag=self.config.completion_close_tag,
        )
        histories: Dict[str, List[Dict[str, Any]]] = {
            self.default_agent.name: [{"role": "user", "content": prompt}],
        }
        current = self.default_agent
        stop_reason = STOP_MAX_ITER

        try:
            for _ in range(self.config.max_iter):
                turn = await self._run_turn(current, histories[current.name])
                state.turns.append(turn)

                decision = self.router(state)
                if decision.final_answer is not None:
                    state.final_answer = decision.final_answer
                if decision.should_stop:
                    stop_reason = decision.reason
                    break

                next_agent = self.agents.get(decision.agent_name) if decision.agent_name else current
                if next_agent is None:
                    logger.warning(f"Router chose unknown agent '{decision.agent_name}', using {self.default_agent.name}", extra={"agent_name": current.name})
                    next_agent = self.default_agent
                if next_agent.name != current.name:
                    history = histories.setdefault(next_agent.name, [{"role": "user", "content": prompt}])
                    if turn.has_text:
                        history.append({"role": "user", "content": handoff_prompt(current.name, turn.text)})
                current = next_agent
            else:
                logger.warning(
                    f"Network stopped after max_iter={self.config.max_iter} turns without a final answer"
                )
        except Exception as e:
            logger.error(f"Network run failed: {e}")
            if self.emitter:
                await self.emitter.emit_run_failed(self.default_agent.name, str(e))
            if execution is not None:
                await self._update_execution(execution, status=ExecutionStatus.FAILED, error=str(e))
            raise

        output = state.final_answer
        if output is None:
            output = next((t.text for t in reversed(state.turns) if t.has_text), "")

        if self.emitter:
            await self.emitter.emit_run_completed(
                self.default_agent.name, output, duration=(time.time() - start_time) * 1000
            )
        if execution is not None:
            await self._update_execution(execution, status=ExecutionStatus.COMPLETED, output=output)

        logger.info(f"Network run finished after {len(state.turns)} turns ({stop_reason})")
        return NetworkResult(
            output=output,
            final_answer=state.final_answer,
            turns=len(state.turns),
            stop_reason=stop_reason,
            agents_created=list(self._agents_created),
        )
