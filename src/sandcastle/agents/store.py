"""
Persistence seams for agents, tasks and executions.

The relational storage behind a deployment is external; these ABCs are the
surface the executor and the network need, with in-memory implementations
used in development and tests.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .exceptions import InvalidStateTransitionError, StateError
from .types import Agent, Execution, ExecutionStatus, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore(ABC):
    @abstractmethod
    async def create(self, task: Task) -> Task:
        ...

    @abstractmethod
    async def get(self, task_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    async def update(self, task_id: str, **fields: Any) -> Task:
        """
        Apply field updates to a task.

        Raises:
            InvalidStateTransitionError: if ``status`` would move backwards or
                leave a terminal state
        """


class AgentStore(ABC):
    @abstractmethod
    async def create(self, agent: Agent) -> Agent:
        ...

    @abstractmethod
    async def get(self, agent_id: str) -> Optional[Agent]:
        ...

    @abstractmethod
    async def find_by_name(self, team_id: str, name: str) -> Optional[Agent]:
        ...

    @abstractmethod
    async def list_for_team(self, team_id: str) -> List[Agent]:
        ...


class ExecutionStore(ABC):
    @abstractmethod
    async def create(self, execution: Execution) -> Execution:
        ...

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[Execution]:
        ...

    @abstractmethod
    async def update(self, execution_id: str, **fields: Any) -> Execution:
        ...


class InMemoryTaskStore(TaskStore):
    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._lock = asyncio.Lock()

    async def create(self, task: Task) -> Task:
        async with self._lock:
            if task.id in self._tasks:
                raise StateError(f"Task '{task.id}' already exists", task_id=task.id)
            self._tasks[task.id] = task.model_copy(deep=True)
        return task

    async def get(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update(self, task_id: str, **fields: Any) -> Task:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise StateError(f"Task '{task_id}' not found", task_id=task_id)

            if "status" in fields:
                new_status = TaskStatus(fields["status"])
                if not task.status.can_transition_to(new_status):
                    raise InvalidStateTransitionError("task", task_id, task.status.value, new_status.value)
                fields["status"] = new_status
                if new_status.is_terminal and "completed_at" not in fields:
                    fields["completed_at"] = time.time()

            updated = Task.model_validate({**task.model_dump(), **fields})
            self._tasks[task_id] = updated
            logger.debug(f"Task {task_id} updated: {sorted(fields)}")
            return updated.model_copy(deep=True)


class InMemoryAgentStore(AgentStore):
    def __init__(self):
        self._agents: Dict[str, Agent] = {}

    async def create(self, agent: Agent) -> Agent:
        self._agents[agent.id] = agent
        return agent

    async def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    async def find_by_name(self, team_id: str, name: str) -> Optional[Agent]:
        for agent in self._agents.values():
            if agent.team_id == team_id and agent.name == name:
                return agent
        return None

    async def list_for_team(self, team_id: str) -> List[Agent]:
        return [a for a in self._agents.values() if a.team_id == team_id]


class InMemoryExecutionStore(ExecutionStore):
    def __init__(self):
        self._executions: Dict[str, Execution] = {}
        self._lock = asyncio.Lock()

    async def create(self, execution: Execution) -> Execution:
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def get(self, execution_id: str) -> Optional[Execution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def update(self, execution_id: str, **fields: Any) -> Execution:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                raise StateError(f"Execution '{execution_id}' not found")

            if "status" in fields:
                new_status = ExecutionStatus(fields["status"])
                if not execution.status.can_transition_to(new_status):
                    raise InvalidStateTransitionError(
                        "execution", execution_id, execution.status.value, new_status.value
                    )
                fields["status"] = new_status
                if new_status.is_terminal and "completed_at" not in fields:
                    fields["completed_at"] = time.time()

            updated = Execution.model_validate({**execution.model_dump(), **fields})
            self._executions[execution_id] = updated
            return updated.model_copy(deep=True)
