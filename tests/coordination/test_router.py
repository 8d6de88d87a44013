"""
Tests for the default network router.

Each rule is checked in isolation and against the rules ahead of it.
"""

import pytest

from sandcastle.coordination.router import default_router, extract_delimited
from sandcastle.coordination.state import NetworkState, RoutingAction, ToolResult, TurnResult


def _state(*turns, final_answer=None):
    return NetworkState(default_agent="Orchestrator", turns=list(turns), final_answer=final_answer)


def _tool_turn(agent="Coder", text=None):
    return TurnResult(
        agent_name=agent,
        text=text,
        tool_calls=[{"id": "c1", "name": "terminal", "arguments": {"command": "ls"}}],
        tool_results=[ToolResult(call_id="c1", name="terminal", output="a.py")],
    )


class TestExtractDelimited:
    def test_content_trimmed(self):
        assert extract_delimited("before <task_summary>\n done \n</task_summary> after", "<task_summary>", "</task_summary>") == "done"

    @pytest.mark.parametrize("text", ["no tags", "<task_summary> unclosed", "</task_summary> reversed <task_summary>"])
    def test_absent(self, text):
        assert extract_delimited(text, "<task_summary>", "</task_summary>") is None


class TestDefaultRouter:
    def test_recorded_final_answer_stops(self):
        decision = default_router(_state(_tool_turn(), final_answer="done"))

        assert decision.should_stop
        assert decision.final_answer == "done"
        assert decision.reason == "final_answer"

    def test_no_turns_goes_to_default(self):
        decision = default_router(_state())

        assert decision.action == RoutingAction.HANDOFF
        assert decision.agent_name == "Orchestrator"

    def test_delimiter_stops_even_with_tool_calls(self):
        turn = _tool_turn(agent="Orchestrator", text="All good <task_summary>Shipped v1</task_summary>")

        decision = default_router(_state(turn))

        assert decision.should_stop
        assert decision.final_answer == "Shipped v1"
        assert decision.reason == "completion_delimiter"

    def test_custom_delimiters(self):
        state = NetworkState(
            default_agent="Orchestrator",
            completion_open_tag="[[done]]",
            completion_close_tag="[[/done]]",
            turns=[TurnResult(agent_name="Orchestrator", text="x [[done]]ok[[/done]]")],
        )

        assert default_router(state).final_answer == "ok"

    def test_text_without_tools_stops_verbatim(self):
        decision = default_router(_state(TurnResult(agent_name="Orchestrator", text="  Here is the answer.  ")))

        assert decision.should_stop
        assert decision.final_answer == "  Here is the answer.  "
        assert decision.reason == "text_response"

    def test_whitespace_text_is_not_text(self):
        decision = default_router(_state(TurnResult(agent_name="Coder", text="   ")))

        assert decision.action == RoutingAction.HANDOFF
        assert decision.agent_name == "Orchestrator"

    def test_tool_results_continue_same_agent(self):
        decision = default_router(_state(_tool_turn(agent="Coder")))

        assert decision.action == RoutingAction.CONTINUE
        assert decision.agent_name == "Coder"

    def test_text_and_tools_hand_back(self):
        decision = default_router(_state(_tool_turn(agent="Coder", text="Running ls")))

        assert decision.action == RoutingAction.HANDOFF
        assert decision.agent_name == "Orchestrator"
        assert decision.reason == "default_agent"

    def test_only_latest_turn_counts(self):
        earlier = TurnResult(agent_name="Orchestrator", text="Old answer")

        decision = default_router(_state(earlier, _tool_turn()))

        assert decision.action == RoutingAction.CONTINUE
