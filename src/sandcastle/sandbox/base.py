"""
Sandbox capability surface.

The compute host that runs agent processes is external; this is everything the
session manager and the tool catalog need from it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Union

from sandcastle.agents.exceptions import (
    ProcessNotFoundError,
    SandboxCommandError,
    SandboxError,
    SandboxNotFoundError,
    SandboxPathNotFoundError,
)

DEFAULT_COMMAND_TIMEOUT_MS = 60_000


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class ProcessHandle:
    pid: int


@dataclass(frozen=True)
class FileEvent:
    """A filesystem change; ``type`` is one of create, write, remove."""
    type: str
    path: str


DataCallback = Callable[[bytes], Union[None, Awaitable[None]]]
FileEventCallback = Callable[[FileEvent], Union[None, Awaitable[None]]]


class WatchHandle(ABC):
    @abstractmethod
    async def stop(self) -> None:
        ...


class Sandbox(ABC):
    """Async interface to a remote (or local) execution sandbox."""

    @abstractmethod
    async def run_command(
        self, cmd: str, timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS, cwd: Optional[str] = None
    ) -> CommandResult:
        """
        Run a shell command to completion.

        ``timeout_ms=0`` means no timeout. A non-zero exit is a normal result;
        failing to run or timing out raises SandboxCommandError.
        """

    @abstractmethod
    async def open_interactive_process(
        self,
        cols: int,
        rows: int,
        cwd: Optional[str],
        on_data: DataCallback,
        envs: Optional[Dict[str, str]] = None,
    ) -> ProcessHandle:
        """Start a terminal-attached shell; every output chunk goes to ``on_data``."""

    @abstractmethod
    async def send_input(self, pid: int, data: bytes) -> None:
        """Write to a process's stdin. Raises ProcessNotFoundError for unknown pids."""

    @abstractmethod
    async def kill_process(self, pid: int) -> None:
        """Kill a process. Raises ProcessNotFoundError for unknown pids."""

    @abstractmethod
    async def read_file(self, path: str) -> str:
        ...

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    async def list_dir(self, path: str) -> List[str]:
        """Entry names in a directory; directories carry a trailing ``/``."""

    @abstractmethod
    async def watch_directory(self, path: str, recursive: bool, on_event: FileEventCallback) -> WatchHandle:
        ...


__all__ = [
    "CommandResult",
    "DEFAULT_COMMAND_TIMEOUT_MS",
    "FileEvent",
    "ProcessHandle",
    "ProcessNotFoundError",
    "Sandbox",
    "SandboxCommandError",
    "SandboxError",
    "SandboxNotFoundError",
    "SandboxPathNotFoundError",
    "WatchHandle",
]
