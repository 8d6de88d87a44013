"""
Sandcastle Exception Hierarchy

This module defines the exception hierarchy shared by the task executor, the
interactive session manager, the orchestration network and the realtime bus.

The hierarchy is designed to:
1. Separate configuration errors (never retried) from transient errors
2. Carry rich context (agent names, task ids, workspace ids, timestamps)
3. Give callers a distinct remediation path for expired sessions
4. Serialize cleanly for structured logging
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorAction(Enum):
    """What action can be taken for this error."""

    # Caller must change configuration before retrying
    CONFIGURATION = "configuration"

    # Cannot be fixed on-the-fly, must terminate
    TERMINAL = "terminal"

    # System should retry automatically (no user interaction)
    AUTO_RETRY = "auto_retry"

    # Caller should restart the resource (e.g. an interactive session)
    RESTART = "restart"


class AgentFrameworkError(Exception):
    """
    Base exception class for all sandcastle errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        agent_name: Name of the agent where error occurred (if applicable)
        task_id: Task ID where error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "AGENT_FRAMEWORK_ERROR",
        agent_name: Optional[str] = None,
        task_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.agent_name = agent_name
        self.task_id = task_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "agent_name": self.agent_name,
            "task_id": self.task_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        return self.developer_message


# =============================================================================
# CONFIGURATION ERRORS (never retried)
# =============================================================================

class ConfigurationError(AgentFrameworkError):
    """Base class for errors that retrying cannot fix."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.CONFIGURATION


class MissingCredentialError(ConfigurationError):
    """Raised when a provider credential is absent from process configuration."""

    def __init__(self, provider: str, env_var: str, **kwargs):
        self.provider = provider
        self.env_var = env_var

        context = kwargs.pop("context", {})
        context.update({"provider": provider, "env_var": env_var})

        super().__init__(
            f"API key for provider '{provider}' not found. Set the '{env_var}' environment variable.",
            error_code="MISSING_CREDENTIAL_ERROR",
            context=context,
            user_message=f"The {provider} provider is not configured.",
            suggestion=f"Set {env_var} in the process environment.",
            **kwargs,
        )


class ToolMappingError(ConfigurationError):
    """Raised when an agent refers to an output tool that has no definition."""

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs):
        self.tool_name = tool_name

        context = kwargs.pop("context", {})
        if tool_name:
            context["tool_name"] = tool_name

        super().__init__(
            message,
            error_code="TOOL_MAPPING_ERROR",
            context=context,
            suggestion="Add the tool definition to output_tools.yaml or fix the agent's output_tool.",
            **kwargs,
        )


class AgentNotFoundError(ConfigurationError):
    """Raised when a task refers to an agent record that does not exist."""

    def __init__(self, agent_id: str, **kwargs):
        self.agent_id = agent_id

        context = kwargs.pop("context", {})
        context["agent_id"] = agent_id

        super().__init__(
            f"Agent '{agent_id}' not found",
            error_code="AGENT_NOT_FOUND_ERROR",
            context=context,
            **kwargs,
        )


class AgentConfigurationError(ConfigurationError):
    """
    Raised when agent configuration is invalid or incomplete.

    Examples:
    - Unknown model with no provider tag
    - Tool allowlist outside the fixed catalog
    - Malformed static agent definition
    """

    def __init__(
        self,
        message: str,
        config_field: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ):
        self.config_field = config_field
        self.config_value = config_value

        context = kwargs.pop("context", {})
        if config_field:
            context["config_field"] = config_field
        if config_value is not None:
            context["config_value"] = str(config_value)

        super().__init__(
            message,
            error_code="AGENT_CONFIGURATION_ERROR",
            context=context,
            user_message="The agent configuration is invalid.",
            suggestion="Check agent configuration for missing or invalid fields.",
            **kwargs
        )


# =============================================================================
# AGENT LIMIT ERRORS
# =============================================================================

class AgentLimitError(AgentFrameworkError):
    """Raised when the custom agent catalog for a team is full."""

    def __init__(self, message: str, limit: Optional[int] = None, team_id: Optional[str] = None, **kwargs):
        self.limit = limit
        self.team_id = team_id

        context = kwargs.pop("context", {})
        if limit is not None:
            context["limit"] = limit
        if team_id:
            context["team_id"] = team_id

        super().__init__(
            message,
            error_code="AGENT_LIMIT_ERROR",
            context=context,
            suggestion="Reuse an existing agent by name instead of creating a new one.",
            **kwargs,
        )


# =============================================================================
# MODEL / PROVIDER ERRORS (transient unless critical)
# =============================================================================

class APIErrorClassification(Enum):
    """Classification of API errors for retry decisions."""

    # Critical (non-retryable)
    INSUFFICIENT_CREDITS = "insufficient_credits"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_MODEL = "invalid_model"
    PERMISSION_DENIED = "permission_denied"

    # Temporary (retryable)
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"

    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


_STATUS_CLASSIFICATION = {
    400: APIErrorClassification.INVALID_REQUEST,
    401: APIErrorClassification.AUTHENTICATION_FAILED,
    402: APIErrorClassification.INSUFFICIENT_CREDITS,
    403: APIErrorClassification.PERMISSION_DENIED,
    404: APIErrorClassification.INVALID_MODEL,
    408: APIErrorClassification.TIMEOUT,
    429: APIErrorClassification.RATE_LIMIT,
    500: APIErrorClassification.SERVICE_UNAVAILABLE,
    502: APIErrorClassification.SERVICE_UNAVAILABLE,
    503: APIErrorClassification.SERVICE_UNAVAILABLE,
    504: APIErrorClassification.TIMEOUT,
    529: APIErrorClassification.SERVICE_UNAVAILABLE,
}


class ModelError(AgentFrameworkError):
    """Base class for provider call failures."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "MODEL_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.AUTO_RETRY


class ModelResponseError(ModelError):
    """Raised when the provider answered but the answer is unusable (e.g. empty)."""

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        self.provider = provider

        context = kwargs.pop("context", {})
        if provider:
            context["provider"] = provider

        super().__init__(message, error_code="MODEL_RESPONSE_ERROR", context=context, **kwargs)


class ModelAPIError(ModelError):
    """
    Provider HTTP/API error with classification.

    Critical classifications (credits, authentication, permissions, unknown
    model) are not worth retrying; everything else is transient.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        classification: Optional[str] = None,
        retry_after: Optional[float] = None,
        **kwargs
    ):
        self.provider = provider
        self.status_code = status_code
        self.classification = classification or APIErrorClassification.UNKNOWN.value
        self.retry_after = retry_after

        context = kwargs.pop("context", {})
        context.update({
            "provider": provider,
            "status_code": status_code,
            "classification": self.classification,
            "retry_after": retry_after,
        })

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            if self.classification == APIErrorClassification.AUTHENTICATION_FAILED.value:
                suggestion = f"Check your {provider} API key configuration"
            elif self.classification == APIErrorClassification.RATE_LIMIT.value:
                suggestion = f"Wait {retry_after} seconds before retrying" if retry_after else "Wait before retrying"
            elif self.classification == APIErrorClassification.SERVICE_UNAVAILABLE.value:
                suggestion = "Service temporarily unavailable. Please try again later."

        super().__init__(
            message,
            error_code=f"MODEL_API_{self.classification.upper()}_ERROR",
            context=context,
            suggestion=suggestion,
            **kwargs
        )

    @property
    def is_retryable(self) -> bool:
        return not self.is_critical()

    def is_critical(self) -> bool:
        """Check if this is a critical error that cannot be retried."""
        return self.classification in [
            APIErrorClassification.INSUFFICIENT_CREDITS.value,
            APIErrorClassification.AUTHENTICATION_FAILED.value,
            APIErrorClassification.PERMISSION_DENIED.value,
            APIErrorClassification.INVALID_MODEL.value,
        ]

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.TERMINAL if self.is_critical() else ErrorAction.AUTO_RETRY

    @classmethod
    def from_status(
        cls,
        provider: str,
        status_code: int,
        body: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ) -> "ModelAPIError":
        """Build a classified error from an HTTP status and optional JSON body."""
        classification = _STATUS_CLASSIFICATION.get(status_code, APIErrorClassification.UNKNOWN)
        message = f"{provider} API returned HTTP {status_code}"
        if body:
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                message = f"{message}: {error['message']}"
            elif isinstance(error, str):
                message = f"{message}: {error}"
        return cls(
            message,
            provider=provider,
            status_code=status_code,
            classification=classification.value,
            retry_after=retry_after,
        )

    @classmethod
    def from_exception(cls, provider: str, exception: Exception) -> "ModelAPIError":
        """Wrap a transport-level exception (connection reset, timeout, ...)."""
        import asyncio

        if isinstance(exception, asyncio.TimeoutError):
            classification = APIErrorClassification.TIMEOUT
        else:
            classification = APIErrorClassification.NETWORK_ERROR
        return cls(
            f"{provider} request failed: {exception}",
            provider=provider,
            classification=classification.value,
        )


# =============================================================================
# TOOL ERRORS
# =============================================================================

class ToolExecutionError(AgentFrameworkError):
    """
    Raised when tool execution fails.

    Caught per tool call by the tool executor and turned into a string result
    for the invoking agent; never propagated out of a network run.
    """

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.tool_name = tool_name
        self.tool_args = tool_args

        context = kwargs.pop("context", {})
        if tool_name:
            context["tool_name"] = tool_name
        if tool_args:
            context["tool_args"] = str(tool_args)

        super().__init__(
            message,
            error_code="TOOL_EXECUTION_ERROR",
            context=context,
            user_message="Tool execution failed.",
            **kwargs
        )


# =============================================================================
# STATE ERRORS
# =============================================================================

class StateError(AgentFrameworkError):
    """Base class for state management errors."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "STATE_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)


class InvalidStateTransitionError(StateError):
    """Raised when a task or execution status would move backwards or skip a state."""

    def __init__(self, entity: str, entity_id: str, current: str, requested: str, **kwargs):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.requested = requested

        context = kwargs.pop("context", {})
        context.update({"entity": entity, "entity_id": entity_id, "current": current, "requested": requested})

        super().__init__(
            f"Invalid {entity} status transition for {entity_id}: {current} -> {requested}",
            error_code="INVALID_STATE_TRANSITION_ERROR",
            context=context,
            **kwargs,
        )


class WorkflowError(StateError):
    """Raised when a planned workflow cannot continue (bad stored plan, dependency deadlock)."""

    def __init__(self, message: str, execution_id: Optional[str] = None, **kwargs):
        self.execution_id = execution_id

        context = kwargs.pop("context", {})
        if execution_id:
            context["execution_id"] = execution_id

        super().__init__(message, error_code="WORKFLOW_ERROR", context=context, **kwargs)


class SessionError(StateError):
    """Base class for interactive session errors."""

    def __init__(self, message: str, workspace_id: Optional[str] = None, **kwargs):
        self.workspace_id = workspace_id

        context = kwargs.pop("context", {})
        if workspace_id:
            context["workspace_id"] = workspace_id

        error_code = kwargs.pop("error_code", "SESSION_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class NoActiveSessionError(SessionError):
    """Raised when no session is tracked in memory or recoverable from the descriptor."""

    def __init__(self, workspace_id: str, **kwargs):
        super().__init__(
            f"No active session found for workspace '{workspace_id}'. Please start a session first.",
            workspace_id=workspace_id,
            error_code="NO_ACTIVE_SESSION_ERROR",
            user_message="No active session. Please start a session first.",
            suggestion="Start a session before sending input.",
            **kwargs,
        )


class SessionExpiredError(SessionError):
    """
    Raised when the sandbox reports the session's process no longer exists.

    Distinct from transport errors so callers can offer "restart" rather
    than "retry".
    """

    def __init__(self, workspace_id: str, pid: Optional[int] = None, **kwargs):
        self.pid = pid

        context = kwargs.pop("context", {})
        if pid is not None:
            context["pid"] = pid

        super().__init__(
            f"Session for workspace '{workspace_id}' expired (process {pid} not found).",
            workspace_id=workspace_id,
            error_code="SESSION_EXPIRED_ERROR",
            context=context,
            user_message="Session expired. Please restart the session.",
            suggestion="Start the session again.",
            **kwargs,
        )

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.RESTART


class SessionLockError(SessionError):
    """Raised when the per-workspace send lease cannot be acquired."""

    def __init__(self, workspace_id: str, timeout_seconds: Optional[float] = None, **kwargs):
        self.timeout_seconds = timeout_seconds

        context = kwargs.pop("context", {})
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds

        super().__init__(
            f"Could not acquire send lease for workspace '{workspace_id}'",
            workspace_id=workspace_id,
            error_code="SESSION_LOCK_ERROR",
            context=context,
            user_message="Another message is being delivered to this session.",
            suggestion="Wait for other operations to complete and try again.",
            **kwargs,
        )

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.AUTO_RETRY


# =============================================================================
# SANDBOX ERRORS
# =============================================================================

class SandboxError(AgentFrameworkError):
    """Base class for sandbox capability failures."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "SANDBOX_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)


class SandboxNotFoundError(SandboxError):
    """A process or path the caller referred to does not exist in the sandbox."""


class ProcessNotFoundError(SandboxNotFoundError):
    """Raised by the sandbox when a pid is unknown (the process died or never existed)."""

    def __init__(self, pid: int, **kwargs):
        self.pid = pid

        context = kwargs.pop("context", {})
        context["pid"] = pid

        super().__init__(
            f"Process {pid} not_found",
            error_code="PROCESS_NOT_FOUND_ERROR",
            context=context,
            **kwargs,
        )


class SandboxPathNotFoundError(SandboxNotFoundError):
    """Raised by the sandbox when a file or directory does not exist."""

    def __init__(self, path: str, **kwargs):
        self.path = path

        context = kwargs.pop("context", {})
        context["path"] = path

        super().__init__(
            f"Path not found: {path}",
            error_code="SANDBOX_PATH_NOT_FOUND_ERROR",
            context=context,
            **kwargs,
        )


class SandboxCommandError(SandboxError):
    """Raised when the sandbox could not run a command at all (not a non-zero exit)."""

    def __init__(self, message: str, command: Optional[str] = None, **kwargs):
        self.command = command

        context = kwargs.pop("context", {})
        if command:
            context["command"] = command

        super().__init__(message, error_code="SANDBOX_COMMAND_ERROR", context=context, **kwargs)

    def get_error_action(self) -> ErrorAction:
        return ErrorAction.AUTO_RETRY


# =============================================================================
# REALTIME ERRORS
# =============================================================================

class SubscriptionTokenError(AgentFrameworkError):
    """Raised when a subscription token is malformed or expired."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="SUBSCRIPTION_TOKEN_ERROR", **kwargs)


def get_error_summary(error: AgentFrameworkError) -> Dict[str, Any]:
    """Get a summary of error information for logging/reporting."""
    return {
        "error_code": error.error_code,
        "error_type": type(error).__name__,
        "agent_name": error.agent_name,
        "task_id": error.task_id,
        "user_message": error.user_message,
        "suggestion": error.suggestion,
        "timestamp": error.timestamp,
    }


def is_configuration_error(error: BaseException) -> bool:
    """True when retrying cannot change the outcome."""
    if isinstance(error, ConfigurationError):
        return True
    if isinstance(error, ModelAPIError) and error.is_critical():
        return True
    return False


__all__: List[str] = [
    "ErrorAction",
    "AgentFrameworkError",
    "ConfigurationError",
    "MissingCredentialError",
    "ToolMappingError",
    "AgentNotFoundError",
    "AgentConfigurationError",
    "AgentLimitError",
    "APIErrorClassification",
    "ModelError",
    "ModelResponseError",
    "ModelAPIError",
    "ToolExecutionError",
    "StateError",
    "InvalidStateTransitionError",
    "WorkflowError",
    "SessionError",
    "NoActiveSessionError",
    "SessionExpiredError",
    "SessionLockError",
    "SandboxError",
    "SandboxNotFoundError",
    "ProcessNotFoundError",
    "SandboxPathNotFoundError",
    "SandboxCommandError",
    "SubscriptionTokenError",
    "get_error_summary",
    "is_configuration_error",
]
