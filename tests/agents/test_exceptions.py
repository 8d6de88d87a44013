"""
Tests for the sandcastle.agents.exceptions module.

This module tests:
- AgentFrameworkError base class and serialization
- Provider error classification from HTTP status codes
- Configuration-error detection used by the task executor
- Session errors and their remediation actions
"""

import asyncio

import pytest

from sandcastle.agents.exceptions import (
    AgentConfigurationError,
    AgentFrameworkError,
    AgentLimitError,
    AgentNotFoundError,
    ErrorAction,
    InvalidStateTransitionError,
    MissingCredentialError,
    ModelAPIError,
    ModelResponseError,
    NoActiveSessionError,
    ProcessNotFoundError,
    SessionExpiredError,
    SessionLockError,
    ToolExecutionError,
    ToolMappingError,
    WorkflowError,
    get_error_summary,
    is_configuration_error,
)


# =============================================================================
# AgentFrameworkError Tests
# =============================================================================

class TestAgentFrameworkError:
    """Tests for the base AgentFrameworkError class."""

    def test_basic_creation(self):
        error = AgentFrameworkError("Something went wrong")

        assert str(error) == "Something went wrong"
        assert error.error_code == "AGENT_FRAMEWORK_ERROR"
        assert error.user_message == "Something went wrong"

    def test_context_and_names(self):
        error = AgentFrameworkError(
            "Test error",
            error_code="ERR001",
            agent_name="Coder",
            task_id="task-1",
            context={"key": "value"},
        )

        assert error.error_code == "ERR001"
        assert error.agent_name == "Coder"
        assert error.task_id == "task-1"
        assert error.context == {"key": "value"}

    def test_to_dict(self):
        error = AgentFrameworkError("Test error", suggestion="Try again")

        data = error.to_dict()

        assert data["error_type"] == "AgentFrameworkError"
        assert data["message"] == "Test error"
        assert data["suggestion"] == "Try again"
        assert "timestamp" in data

    def test_error_summary(self):
        error = AgentNotFoundError("missing-agent")

        summary = get_error_summary(error)

        assert summary["error_type"] == "AgentNotFoundError"
        assert summary["error_code"] == "AGENT_NOT_FOUND_ERROR"


# =============================================================================
# Configuration Error Tests
# =============================================================================

class TestConfigurationErrors:
    """Errors that retrying cannot fix."""

    def test_missing_credential(self):
        error = MissingCredentialError("anthropic", "ANTHROPIC_API_KEY")

        assert "ANTHROPIC_API_KEY" in str(error)
        assert error.context["provider"] == "anthropic"
        assert error.get_error_action() == ErrorAction.CONFIGURATION

    def test_tool_mapping(self):
        error = ToolMappingError("No output tool defined for 'x'", tool_name="x")

        assert error.tool_name == "x"
        assert error.error_code == "TOOL_MAPPING_ERROR"

    def test_agent_configuration(self):
        error = AgentConfigurationError("bad model", config_field="model", config_value="nope")

        assert error.context["config_field"] == "model"
        assert error.context["config_value"] == "nope"

    @pytest.mark.parametrize(
        "error",
        [
            MissingCredentialError("openai", "OPENAI_API_KEY"),
            ToolMappingError("missing"),
            AgentNotFoundError("a"),
            AgentConfigurationError("bad"),
            ModelAPIError.from_status("anthropic", 401),
            ModelAPIError.from_status("anthropic", 402),
            ModelAPIError.from_status("anthropic", 403),
            ModelAPIError.from_status("anthropic", 404),
        ],
    )
    def test_is_configuration_error(self, error):
        assert is_configuration_error(error)

    @pytest.mark.parametrize(
        "error",
        [
            ModelAPIError.from_status("openai", 429),
            ModelAPIError.from_status("openai", 503),
            ModelResponseError("empty"),
            AgentLimitError("full"),
            RuntimeError("boom"),
        ],
    )
    def test_transient_errors(self, error):
        assert not is_configuration_error(error)


# =============================================================================
# ModelAPIError Tests
# =============================================================================

class TestModelAPIError:
    """Classification of provider failures."""

    @pytest.mark.parametrize(
        "status,classification,critical",
        [
            (401, "authentication_failed", True),
            (402, "insufficient_credits", True),
            (403, "permission_denied", True),
            (404, "invalid_model", True),
            (429, "rate_limit", False),
            (500, "service_unavailable", False),
            (529, "service_unavailable", False),
            (504, "timeout", False),
            (418, "unknown", False),
        ],
    )
    def test_from_status(self, status, classification, critical):
        error = ModelAPIError.from_status("anthropic", status)

        assert error.status_code == status
        assert error.classification == classification
        assert error.is_critical() is critical
        assert error.is_retryable is not critical
        assert error.error_code == f"MODEL_API_{classification.upper()}_ERROR"

    def test_body_message_included(self):
        error = ModelAPIError.from_status("openai", 400, {"error": {"message": "bad input"}})

        assert "bad input" in str(error)

    def test_rate_limit_suggestion(self):
        error = ModelAPIError.from_status("openai", 429, retry_after=2.0)

        assert error.retry_after == 2.0
        assert "2.0 seconds" in error.suggestion

    def test_from_exception(self):
        assert ModelAPIError.from_exception("anthropic", asyncio.TimeoutError()).classification == "timeout"
        assert ModelAPIError.from_exception("anthropic", ConnectionError("reset")).classification == "network_error"


# =============================================================================
# State and Session Error Tests
# =============================================================================

class TestStateErrors:
    def test_invalid_transition(self):
        error = InvalidStateTransitionError("task", "t-1", "completed", "running")

        assert "completed -> running" in str(error)
        assert error.context["entity_id"] == "t-1"

    def test_no_active_session_message(self):
        error = NoActiveSessionError("ws-1")

        assert str(error) == "No active session found for workspace 'ws-1'. Please start a session first."
        assert error.workspace_id == "ws-1"

    def test_session_expired_offers_restart(self):
        error = SessionExpiredError("ws-1", pid=42)

        assert error.pid == 42
        assert error.user_message == "Session expired. Please restart the session."
        assert error.get_error_action() == ErrorAction.RESTART

    def test_session_lock_is_retryable(self):
        error = SessionLockError("ws-1", timeout_seconds=5.0)

        assert error.get_error_action() == ErrorAction.AUTO_RETRY
        assert error.context["timeout_seconds"] == 5.0

    def test_process_not_found(self):
        error = ProcessNotFoundError(99)

        assert str(error) == "Process 99 not_found"
        assert error.pid == 99

    def test_workflow_error_context(self):
        error = WorkflowError("Deadlock detected: no tasks can proceed", execution_id="ex-1", context={"blocked": ["a"]})

        assert error.error_code == "WORKFLOW_ERROR"
        assert error.context == {"blocked": ["a"], "execution_id": "ex-1"}
        assert not is_configuration_error(error)


class TestToolExecutionError:
    def test_attributes(self):
        error = ToolExecutionError("failed", tool_name="terminal", tool_args={"command": "ls"})

        assert error.tool_name == "terminal"
        assert error.context["tool_name"] == "terminal"
        assert error.user_message == "Tool execution failed."
