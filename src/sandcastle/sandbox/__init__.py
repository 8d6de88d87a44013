"""Sandbox capability surface and the local subprocess-backed implementation."""

from .base import (
    CommandResult,
    DEFAULT_COMMAND_TIMEOUT_MS,
    FileEvent,
    ProcessHandle,
    ProcessNotFoundError,
    Sandbox,
    SandboxCommandError,
    SandboxError,
    SandboxNotFoundError,
    SandboxPathNotFoundError,
    WatchHandle,
)
from .local import LocalSandbox

__all__ = [
    "CommandResult",
    "DEFAULT_COMMAND_TIMEOUT_MS",
    "FileEvent",
    "LocalSandbox",
    "ProcessHandle",
    "ProcessNotFoundError",
    "Sandbox",
    "SandboxCommandError",
    "SandboxError",
    "SandboxNotFoundError",
    "SandboxPathNotFoundError",
    "WatchHandle",
]
