"""Prompt fragments the network adds around agent definitions."""

from typing import Iterable

from sandcastle.agents.types import Agent


def build_roster(agents: Iterable[Agent], exclude: str = "") -> str:
    """List the agents the orchestrator can delegate to."""
    lines = []
    for agent in agents:
        if agent.name == exclude:
            continue
        tools = ", ".join(sorted(agent.tools)) or "no tools"
        lines.append(f"- {agent.name} ({agent.kind.value}; tools: {tools})")
    if not lines:
        return ""
    return "## Agents in this network\n\n" + "\n".join(lines)


def orchestrator_system_prompt(base: str, agents: Iterable[Agent], orchestrator_name: str) -> str:
    roster = build_roster(agents, exclude=orchestrator_name)
    return f"{base.rstrip()}\n\n{roster}" if roster else base


def delegated_task_prompt(task: str, requested_by: str) -> str:
    return (
        f"{requested_by} assigned you this task:\n\n{task}\n\n"
        "Work on it with your tools. When you are done, reply with a short report of what you did "
        "and anything left unresolved, without calling further tools."
    )


def handoff_prompt(previous_agent: str, text: str) -> str:
    return f"{previous_agent} reported:\n\n{text}\n\nDecide the next step."
