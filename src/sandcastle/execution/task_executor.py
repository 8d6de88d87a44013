"""
Task executor: runs one agent against one task with bounded retry.

The executor is the only writer of task status. A task moves
``pending -> running`` once, before the first attempt, and ends either
``completed`` with output or ``failed`` with the last error message.
Configuration errors fail the task immediately without consuming attempts.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from sandcastle.agents.exceptions import (
    AgentNotFoundError,
    ModelResponseError,
    StateError,
    is_configuration_error,
)
from sandcastle.agents.registry import OutputToolCatalog, SystemAgentRegistry
from sandcastle.agents.store import AgentStore, TaskStore
from sandcastle.agents.types import Agent, AgentOrigin, Task, TaskStatus
from sandcastle.models.adapters.factory import ProviderAdapterFactory
from sandcastle.realtime.events import AgentEventEmitter
from sandcastle.utils.schema import validate_data

from .rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class TaskExecutor:
    def __init__(
        self,
        registry: SystemAgentRegistry,
        task_store: TaskStore,
        adapter_factory: ProviderAdapterFactory,
        rate_limiter: Optional[RateLimiter] = None,
        emitter: Optional[AgentEventEmitter] = None,
        agent_store: Optional[AgentStore] = None,
        output_tools: Optional[OutputToolCatalog] = None,
    ):
        self.registry = registry
        self.task_store = task_store
        self.adapter_factory = adapter_factory
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.emitter = emitter
        self.agent_store = agent_store
        self.output_tools = output_tools or OutputToolCatalog.from_yaml()

    async def resolve_agent(self, task: Task) -> Agent:
        """
        Find the agent a task is bound to.

        Raises:
            AgentNotFoundError: if neither the registry nor the agent store
                knows the id
        """
        if task.system_agent_id is not None:
            return self.registry.require(task.system_agent_id)
        agent = None
        if self.agent_store is not None:
            agent = await self.agent_store.get(task.custom_agent_id)
        if agent is None:
            raise AgentNotFoundError(task.custom_agent_id)
        return agent

    async def execute(self, agent: Agent, task: Task) -> str:
        """
        Run a single attempt.

        Returns the structured tool input as a JSON string when the agent has
        an output tool, otherwise the response text.

        Raises:
            ToolMappingError: if the agent's output tool is not in the catalog
            MissingCredentialError: if the provider has no API key
            ModelAPIError: for provider failures
            ModelResponseError: if the provider returned nothing usable
        """
        prompt = agent.build_prompt(task.input)

        kwargs: Dict[str, Any] = {"system_prompt": agent.system_prompt}
        output_tool = None
        if agent.output_tool:
            output_tool = self.output_tools.require(agent.output_tool)
            kwargs["tools"] = [output_tool]
            kwargs["tool_choice"] = output_tool["function"]["name"]

        adapter = self.adapter_factory.get_adapter(agent.provider, agent.model)
        messages: List[Dict[str, Any]] = [{"role": "user", "content": prompt}]

        response = await self.rate_limiter.run(lambda: adapter.arun(messages, **kwargs))

        if output_tool is not None:
            call = response.find_tool_call(output_tool["function"]["name"])
            if call is not None:
                arguments = call.arguments
                is_valid, error = validate_data(arguments, output_tool["function"]["parameters"])
                if not is_valid:
                    raise ModelResponseError(
                        f"Structured output from {agent.name} failed validation: {error}",
                        provider=adapter.provider,
                    )
                return json.dumps(arguments)

        if not response.content:
            raise ModelResponseError(f"No response received from {agent.model}", provider=adapter.provider)
        return response.content

    async def execute_with_retry(self, agent: Agent, task: Task, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
        """
        Run ``execute`` until it succeeds or ``max_attempts`` is exhausted.

        Retries are immediate. On exhaustion the task is marked failed and the
        last error is re-raised unchanged.
        """
        if task.status != TaskStatus.RUNNING:
            task = await self.task_store.update(task.id, status=TaskStatus.RUNNING)
        if self.emitter:
            await self.emitter.emit_run_started(agent.name, task.input)

        start = time.time()
        attempts = task.attempts
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                output = await self.execute(agent, task)
            except Exception as e:
                if is_configuration_error(e):
                    logger.error(f"Task {task.id} failed with configuration error: {e}", extra={"agent_name": agent.name})
                    await self._fail(agent, task, e)
                    raise
                last_error = e
                attempts += 1
                await self.task_store.update(task.id, attempts=attempts)
                logger.warning(f"Task {task.id} attempt {attempt + 1}/{max_attempts} failed: {e}", extra={"agent_name": agent.name})
                continue

            result_type = agent.result_type if agent.origin == AgentOrigin.SYSTEM else None
            await self.task_store.update(
                task.id, output=output, result_type=result_type, status=TaskStatus.COMPLETED
            )
            logger.info(f"Task {task.id} completed by {agent.name} after {attempt + 1} attempt(s)", extra={"agent_name": agent.name})
            if self.emitter:
                await self.emitter.emit_run_completed(agent.name, output, duration=(time.time() - start) * 1000)
            return output

        if last_error is None:
            last_error = ModelResponseError(f"Task {task.id} was never attempted")
        logger.error(f"Task {task.id} failed after {max_attempts} attempts: {last_error}", extra={"agent_name": agent.name})
        await self._fail(agent, task, last_error)
        raise last_error

    async def _fail(self, agent: Agent, task: Task, error: Exception) -> None:
        message = str(error)
        await self.task_store.update(task.id, status=TaskStatus.FAILED, error=message)
        if self.emitter:
            await self.emitter.emit_run_failed(agent.name, message)

    async def run_task(self, task_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
        """
        Load a task, resolve its agent and execute it with retry.

        Raises:
            StateError: if the task does not exist
            AgentNotFoundError: if its agent cannot be resolved (task marked failed)
        """
        task = await self.task_store.get(task_id)
        if task is None:
            raise StateError(f"Task {task_id} not found", context={"task_id": task_id})

        task = await self.task_store.update(task.id, status=TaskStatus.RUNNING)
        try:
            agent = await self.resolve_agent(task)
        except AgentNotFoundError as e:
            logger.error(f"Task {task.id} references unknown agent {task.agent_id}")
            await self.task_store.update(task.id, status=TaskStatus.FAILED, error=str(e))
            raise

        return await self.execute_with_retry(agent, task, max_attempts=max_attempts)
