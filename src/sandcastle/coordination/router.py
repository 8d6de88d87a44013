"""
Default routing for the orchestration network.

After every turn the router decides whether the run is finished, whether the
same agent keeps going, or whether control returns to the default agent.
"""

import logging
from typing import Callable, Optional

from .state import NetworkState, RoutingAction, RoutingDecision

logger = logging.getLogger(__name__)

RouterFn = Callable[[NetworkState], RoutingDecision]


def extract_delimited(text: str, open_tag: str, close_tag: str) -> Optional[str]:
    """Return the trimmed content between the tags, or None if they are absent."""
    start = text.find(open_tag)
    if start == -1:
        return None
    start += len(open_tag)
    end = text.find(close_tag, start)
    if end == -1:
        return None
    return text[start:end].strip()


def default_router(state: NetworkState) -> RoutingDecision:
    """
    Route after a turn. Rules are applied in order:

    1. A final answer is already recorded: stop.
    2. The latest text contains the completion delimiter: record the
       enclosed content and stop.
    3. The latest turn produced text and called no tool: record the text
       verbatim and stop.
    4. The latest turn produced tool results but no text: the same agent
       continues.
    5. Otherwise control goes to the default agent.
    """
    if state.final_answer is not None:
        return RoutingDecision(RoutingAction.STOP, final_answer=state.final_answer, reason="final_answer")

    turn = state.latest
    if turn is None:
        return RoutingDecision(RoutingAction.HANDOFF, agent_name=state.default_agent, reason="no_turns")

    if turn.has_text:
        summary = extract_delimited(turn.text, state.completion_open_tag, state.completion_close_tag)
        if summary is not None:
            logger.debug(f"Completion delimiter found in output of {turn.agent_name}")
            return RoutingDecision(RoutingAction.STOP, final_answer=summary, reason="completion_delimiter")

        if not turn.invoked_tools:
            return RoutingDecision(RoutingAction.STOP, final_answer=turn.text, reason="text_response")

    if turn.tool_results and not turn.has_text:
        return RoutingDecision(RoutingAction.CONTINUE, agent_name=turn.agent_name, reason="tool_results")

    return RoutingDecision(RoutingAction.HANDOFF, agent_name=state.default_agent, reason="default_agent")
