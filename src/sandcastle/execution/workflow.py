"""
Plan-then-execute workflows.

``run`` asks the task planner for a plan, has the logic checker review it,
then lets the orchestrator design a team of specialists and assign the
planned tasks to them. The specialists are stored in the team's custom agent
catalog and the execution is parked in ``paused`` with the plan in its
output, so a person can review it before anything touches the workspace.

``resume`` turns the stored plan into one task per assigned step and runs
the steps in dependency waves: every step whose dependencies have completed
runs concurrently with the others in its wave. Each step's output goes back
to the logic checker; a rejected step is run again with the checker's
feedback until ``review_rounds`` runs have been made.

Every model call goes through ``TaskExecutor.execute_with_retry``. Any error
marks the execution failed and is re-raised.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sandcastle.agents.exceptions import ModelResponseError, StateError, WorkflowError
from sandcastle.agents.registry import CustomAgentCatalog
from sandcastle.agents.store import ExecutionStore
from sandcastle.agents.types import Agent, AgentOrigin, Execution, ExecutionStatus, Task
from sandcastle.models.catalog import DEFAULT_MODEL, MODELS
from sandcastle.realtime.events import AgentEventEmitter

from .task_executor import DEFAULT_MAX_ATTEMPTS, TaskExecutor

logger = logging.getLogger(__name__)

PLANNER_ID = "task-planner"
LOGIC_CHECKER_ID = "logic-checker"
ORCHESTRATOR_ID = "orchestrator"

DEFAULT_REVIEW_ROUNDS = 3


@dataclass
class WorkflowStep:
    """One planned task assigned to one specialist."""

    title: str
    description: str
    agent_name: str
    dependencies: List[str] = field(default_factory=list)


def iter_plan_tasks(plan: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    for category in plan.get("task_categories", []):
        yield from category.get("tasks", [])


def build_steps(plan: Dict[str, Any], team: Dict[str, Any], agent_names: Set[str]) -> List[WorkflowStep]:
    """
    Order the orchestrator's assignments into steps.

    Dependencies come from the planner's task of the same title and are
    limited to titles that became steps. Assignments to agents the
    orchestrator did not define are dropped.
    """
    planned = {task["title"]: task for task in iter_plan_tasks(plan)}

    steps: List[WorkflowStep] = []
    for assignment in team.get("task_assignments", []):
        agent_name = assignment["agent_name"]
        if agent_name not in agent_names:
            logger.warning(f"Dropping tasks assigned to undefined agent '{agent_name}'")
            continue
        for item in sorted(assignment["tasks"], key=lambda t: t["order"]):
            source = planned.get(item["title"], {})
            steps.append(
                WorkflowStep(
                    title=item["title"],
                    description=item["description"],
                    agent_name=agent_name,
                    dependencies=list(source.get("dependencies", [])),
                )
            )

    titles = {step.title for step in steps}
    for step in steps:
        step.dependencies = [d for d in step.dependencies if d in titles and d != step.title]
    return steps


def specialist_prompt(name: str, role: str, skills: Iterable[str]) -> str:
    skill_list = ", ".join(skills)
    prompt = f"You are {name}. {role}"
    if skill_list:
        prompt += f"\n\nSkills: {skill_list}"
    return prompt + (
        "\n\nYou work inside a shared workspace with other specialists. "
        "Finish your task, then reply with a short report of what you changed."
    )


def revision_prompt(description: str, previous_output: str, feedback: str) -> str:
    return (
        f"{description}\n\n"
        f"A reviewer rejected your previous attempt.\n\nPrevious output:\n{previous_output}\n\n"
        f"Feedback:\n{feedback}\n\nAddress the feedback and report again."
    )


def _structured(output: str, agent: Agent) -> Dict[str, Any]:
    try:
        data = json.loads(output)
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise ModelResponseError(f"{agent.name} did not return structured output")
    return data


class WorkflowRunner:
    def __init__(
        self,
        executor: TaskExecutor,
        execution_store: ExecutionStore,
        catalog: CustomAgentCatalog,
        emitter: Optional[AgentEventEmitter] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        review_rounds: int = DEFAULT_REVIEW_ROUNDS,
        default_model: str = DEFAULT_MODEL,
    ):
        """
        Args:
            executor: Runs every task; its registry supplies the planner,
                logic checker and orchestrator
            catalog: The team's custom agents; specialists are created here
            max_attempts: Attempts per task, passed to ``execute_with_retry``
            review_rounds: Runs of a step before its last output is accepted
                even though the checker rejected it
            default_model: Model for specialists whose model is missing or unknown
        """
        self.executor = executor
        self.registry = executor.registry
        self.task_store = executor.task_store
        self.execution_store = execution_store
        self.catalog = catalog
        self.emitter = emitter
        self.max_attempts = max_attempts
        self.review_rounds = max(1, review_rounds)
        self.default_model = default_model
        self._task_ids_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _run_task(self, execution: Execution, agent: Agent, task_input: str) -> Tuple[Task, str]:
        if agent.origin == AgentOrigin.SYSTEM:
            task = Task(input=task_input, system_agent_id=agent.id, execution_id=execution.id)
        else:
            task = Task(input=task_input, custom_agent_id=agent.id, execution_id=execution.id)
        await self.task_store.create(task)
        async with self._task_ids_lock:
            current = await self.execution_store.get(execution.id)
            await self.execution_store.update(execution.id, task_ids=current.task_ids + [task.id])

        output = await self.executor.execute_with_retry(agent, task, max_attempts=self.max_attempts)
        return task, output

    async def _check(self, execution: Execution, kind: str, original_input: str, output: str) -> Dict[str, Any]:
        checker = self.registry.require(LOGIC_CHECKER_ID)
        payload = json.dumps({"type": kind, "original_input": original_input, "output": output})
        _, result = await self._run_task(execution, checker, payload)
        try:
            verdict = json.loads(result)
        except ValueError:
            verdict = None
        if not isinstance(verdict, dict):
            return {"passed": False, "feedback": result}
        return verdict

    async def _fail(self, execution: Execution, error: Exception) -> None:
        logger.error(f"Workflow {execution.id} failed: {error}", extra={"workspace_id": execution.workspace_id})
        await self.execution_store.update(execution.id, status=ExecutionStatus.FAILED, error=str(error))

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def _create_specialists(self, team: Dict[str, Any]) -> List[Agent]:
        agents = []
        for proposal in team["agents"]:
            model = proposal.get("model")
            if model not in MODELS:
                model = self.default_model
            agent, _ = await self.catalog.create(
                name=proposal["name"],
                role=proposal["role"],
                system_prompt=specialist_prompt(proposal["name"], proposal["role"], proposal.get("skills", [])),
                tools=proposal.get("tools", []),
                model=model,
            )
            agents.append(agent)
        return agents

    async def run(self, execution: Execution) -> Execution:
        """
        Plan ``execution.input`` and design the team, then pause for review.

        The paused execution's output holds the plan, the specialists and
        the ordered steps that ``resume`` will run.

        Raises:
            InvalidStateTransitionError: if the execution is not pending
            ModelResponseError: if the planner or orchestrator returns no
                structured output (execution marked failed)
        """
        await self.execution_store.update(execution.id, status=ExecutionStatus.RUNNING)
        logger.info(f"Planning workflow {execution.id}", extra={"workspace_id": execution.workspace_id})

        try:
            planner = self.registry.require(PLANNER_ID)
            _, plan_output = await self._run_task(execution, planner, execution.input)
            plan = _structured(plan_output, planner)

            verdict = await self._check(execution, "plan", execution.input, plan_output)
            if not verdict.get("passed"):
                logger.warning(
                    f"Plan for {execution.id} did not pass review: {verdict.get('feedback', '')}",
                    extra={"workspace_id": execution.workspace_id},
                )

            orchestrator = self.registry.require(ORCHESTRATOR_ID)
            team_input = json.dumps({"original_request": execution.input, "plan": plan})
            _, team_output = await self._run_task(execution, orchestrator, team_input)
            team = _structured(team_output, orchestrator)

            agents = await self._create_specialists(team)
            steps = build_steps(plan, team, {agent.name for agent in agents})
            if not steps:
                raise WorkflowError("The orchestrator assigned no tasks", execution_id=execution.id)

            output = {
                "plan": plan,
                "collaboration_strategy": team.get("collaboration_strategy", ""),
                "agents": [{"id": a.id, "name": a.name, "model": a.model} for a in agents],
                "steps": [asdict(step) for step in steps],
            }
            updated = await self.execution_store.update(
                execution.id, status=ExecutionStatus.PAUSED, output=json.dumps(output)
            )
        except Exception as e:
            await self._fail(execution, e)
            raise

        logger.info(
            f"Workflow {execution.id} paused for review with {len(steps)} steps for {len(agents)} agents",
            extra={"workspace_id": execution.workspace_id},
        )
        return updated

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _load_steps(self, execution: Execution) -> List[WorkflowStep]:
        try:
            data = json.loads(execution.output or "{}")
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("steps"):
            raise WorkflowError("Invalid execution data: missing plan steps", execution_id=execution.id)
        return [WorkflowStep(**step) for step in data["steps"]]

    async def _run_step(self, execution: Execution, index: int, total: int, step: WorkflowStep, agent: Agent) -> Dict[str, Any]:
        if self.emitter:
            await self.emitter.emit_step_started(agent.name, index + 1, total, step.title)

        prompt = step.description
        try:
            for round_number in range(1, self.review_rounds + 1):
                task, output = await self._run_task(execution, agent, prompt)
                verdict = await self._check(execution, "task", step.description, output)
                if verdict.get("passed"):
                    break
                feedback = verdict.get("feedback", "")
                logger.info(
                    f"Step '{step.title}' rejected in round {round_number}/{self.review_rounds}: {feedback}",
                    extra={"agent_name": agent.name},
                )
                prompt = revision_prompt(step.description, output, feedback)
        except Exception as e:
            if self.emitter:
                await self.emitter.emit_step_failed(agent.name, index + 1, total, str(e))
            raise

        if self.emitter:
            await self.emitter.emit_step_completed(agent.name, index + 1, total, step.title)
        return {
            "title": step.title,
            "agent_name": agent.name,
            "task_id": task.id,
            "output": output,
            "passed": bool(verdict.get("passed")),
        }

    async def _run_waves(self, execution: Execution, steps: List[WorkflowStep], agents: Dict[str, Agent]) -> List[Dict[str, Any]]:
        results: Dict[int, Dict[str, Any]] = {}
        completed: Set[str] = set()
        total = len(steps)

        while len(results) < total:
            ready = [
                i for i, step in enumerate(steps)
                if i not in results and all(d in completed for d in step.dependencies)
            ]
            if not ready:
                blocked = [steps[i].title for i in range(total) if i not in results]
                raise WorkflowError(
                    "Deadlock detected: no tasks can proceed",
                    execution_id=execution.id,
                    context={"blocked": blocked},
                )

            logger.debug(f"Workflow {execution.id} running wave of {len(ready)} step(s)")
            outcomes = await asyncio.gather(
                *(self._run_step(execution, i, total, steps[i], agents[steps[i].agent_name]) for i in ready),
                return_exceptions=True,
            )
            for i, outcome in zip(ready, outcomes):
                if isinstance(outcome, BaseException):
                    raise outcome
                results[i] = outcome
                completed.add(steps[i].title)

        return [results[i] for i in range(total)]

    async def resume(self, execution: Execution) -> Execution:
        """
        Run the steps stored by ``run`` and complete the execution.

        Raises:
            StateError: if the execution does not exist
            WorkflowError: if the stored plan is missing, a specialist no
                longer exists, or the dependencies form a cycle (execution
                marked failed)
        """
        current = await self.execution_store.get(execution.id)
        if current is None:
            raise StateError(f"Execution {execution.id} not found")

        await self.execution_store.update(execution.id, status=ExecutionStatus.RUNNING)
        logger.info(f"Resuming workflow {execution.id}", extra={"workspace_id": current.workspace_id})

        try:
            steps = self._load_steps(current)
            agents: Dict[str, Agent] = {}
            for name in {step.agent_name for step in steps}:
                agent = await self.catalog.get_by_name(name)
                if agent is None:
                    raise WorkflowError(f"Agent '{name}' from the stored plan no longer exists", execution_id=execution.id)
                agents[name] = agent

            results = await self._run_waves(current, steps, agents)
            updated = await self.execution_store.update(
                execution.id, status=ExecutionStatus.COMPLETED, output=json.dumps({"tasks": results})
            )
        except Exception as e:
            await self._fail(current, e)
            raise

        logger.info(f"Workflow {execution.id} completed {len(results)} steps", extra={"workspace_id": current.workspace_id})
        return updated
