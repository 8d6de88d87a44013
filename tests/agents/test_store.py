"""
Tests for the in-memory task, agent and execution stores.

This module tests:
- Create/get/update semantics and copy isolation
- Status monotonicity enforced on update
- Team scoping for custom agents
"""

import pytest

from sandcastle.agents.exceptions import InvalidStateTransitionError, StateError
from sandcastle.agents.store import InMemoryAgentStore, InMemoryExecutionStore, InMemoryTaskStore
from sandcastle.agents.types import Agent, AgentOrigin, Execution, ExecutionStatus, Task, TaskStatus


def _agent(name: str, team_id: str) -> Agent:
    return Agent(
        origin=AgentOrigin.CUSTOM,
        name=name,
        model="claude-haiku-4-5",
        system_prompt="prompt",
        team_id=team_id,
    )


# =============================================================================
# Task Store Tests
# =============================================================================

class TestInMemoryTaskStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))

        loaded = await store.get(task.id)

        assert loaded.id == task.id
        assert loaded is not task

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))

        with pytest.raises(StateError):
            await store.create(task)

    @pytest.mark.asyncio
    async def test_get_missing(self):
        assert await InMemoryTaskStore().get("nope") is None

    @pytest.mark.asyncio
    async def test_update_missing(self):
        with pytest.raises(StateError):
            await InMemoryTaskStore().update("nope", attempts=1)

    @pytest.mark.asyncio
    async def test_terminal_status_sets_completed_at(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))

        await store.update(task.id, status=TaskStatus.RUNNING)
        updated = await store.update(task.id, status=TaskStatus.COMPLETED, output="done")

        assert updated.status == TaskStatus.COMPLETED
        assert updated.output == "done"
        assert updated.completed_at is not None

    @pytest.mark.asyncio
    async def test_backwards_transition_rejected(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))
        await store.update(task.id, status=TaskStatus.RUNNING)
        await store.update(task.id, status=TaskStatus.FAILED)

        with pytest.raises(InvalidStateTransitionError):
            await store.update(task.id, status=TaskStatus.RUNNING)

        assert (await store.get(task.id)).status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_status_accepts_string(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))

        updated = await store.update(task.id, status="running")

        assert updated.status == TaskStatus.RUNNING

    @pytest.mark.asyncio
    async def test_returned_copy_does_not_leak(self):
        store = InMemoryTaskStore()
        task = await store.create(Task(input="x", system_agent_id="a"))

        loaded = await store.get(task.id)
        loaded.attempts = 5

        assert (await store.get(task.id)).attempts == 0


# =============================================================================
# Agent Store Tests
# =============================================================================

class TestInMemoryAgentStore:
    @pytest.mark.asyncio
    async def test_find_by_name_is_team_scoped(self):
        store = InMemoryAgentStore()
        mine = await store.create(_agent("Helper", "team-1"))
        await store.create(_agent("Helper", "team-2"))

        found = await store.find_by_name("team-1", "Helper")

        assert found.id == mine.id
        assert await store.find_by_name("team-3", "Helper") is None

    @pytest.mark.asyncio
    async def test_list_for_team(self):
        store = InMemoryAgentStore()
        await store.create(_agent("A", "team-1"))
        await store.create(_agent("B", "team-1"))
        await store.create(_agent("C", "team-2"))

        names = sorted(a.name for a in await store.list_for_team("team-1"))

        assert names == ["A", "B"]


# =============================================================================
# Execution Store Tests
# =============================================================================

class TestInMemoryExecutionStore:
    @pytest.mark.asyncio
    async def test_lifecycle(self):
        store = InMemoryExecutionStore()
        execution = await store.create(Execution(team_id="t", workspace_id="w"))

        await store.update(execution.id, status=ExecutionStatus.RUNNING)
        await store.update(execution.id, status=ExecutionStatus.PAUSED)
        await store.update(execution.id, status=ExecutionStatus.RUNNING)
        final = await store.update(execution.id, status=ExecutionStatus.COMPLETED, output="ok")

        assert final.status == ExecutionStatus.COMPLETED
        assert final.completed_at is not None

    @pytest.mark.asyncio
    async def test_completed_is_final(self):
        store = InMemoryExecutionStore()
        execution = await store.create(Execution(team_id="t", workspace_id="w"))
        await store.update(execution.id, status=ExecutionStatus.RUNNING)
        await store.update(execution.id, status=ExecutionStatus.COMPLETED)

        with pytest.raises(InvalidStateTransitionError):
            await store.update(execution.id, status=ExecutionStatus.FAILED)

    @pytest.mark.asyncio
    async def test_update_missing(self):
        with pytest.raises(StateError):
            await InMemoryExecutionStore().update("nope", status=ExecutionStatus.RUNNING)
