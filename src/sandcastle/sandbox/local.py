"""
Local sandbox backed by asyncio subprocesses, a pseudo-terminal, psutil and
watchfiles.

Used for development and tests. Paths are resolved against ``root`` unless
absolute. Interactive processes get a real PTY so ANSI output and line
editing behave as they would in a remote sandbox.
"""

import asyncio
import fcntl
import inspect
import logging
import os
import pty
import struct
import termios
from pathlib import Path
from typing import Dict, List, Optional, Set

import psutil
from watchfiles import Change, awatch

from .base import (
    CommandResult,
    DataCallback,
    DEFAULT_COMMAND_TIMEOUT_MS,
    FileEvent,
    FileEventCallback,
    ProcessHandle,
    ProcessNotFoundError,
    Sandbox,
    SandboxCommandError,
    SandboxPathNotFoundError,
    WatchHandle,
)

logger = logging.getLogger(__name__)


def _kill_tree(pid: int, timeout: float = 3.0) -> None:
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    procs = parent.children(recursive=True) + [parent]
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    psutil.wait_procs(procs, timeout=timeout)


class _InteractiveProcess:
    def __init__(self, process: asyncio.subprocess.Process, master_fd: int):
        self.process = process
        self.master_fd = master_fd
        self.closed = False

    @property
    def pid(self) -> int:
        return self.process.pid


_CHANGE_TYPES = {
    Change.added: "create",
    Change.modified: "write",
    Change.deleted: "remove",
}


class FileWatchHandle(WatchHandle):
    """Feeds ``watchfiles.awatch`` change batches to a callback as FileEvents."""

    def __init__(self, root: Path, recursive: bool, on_event: FileEventCallback, debounce_ms: int):
        self.root = root
        self.recursive = recursive
        self.on_event = on_event
        self.debounce_ms = debounce_ms
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run())
        # awatch registers its watches before its first await
        await asyncio.sleep(0)

    async def _run(self) -> None:
        try:
            async for changes in awatch(
                self.root,
                recursive=self.recursive,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
            ):
                for change, path in sorted(changes, key=lambda c: c[1]):
                    event = FileEvent(_CHANGE_TYPES[change], os.path.relpath(path, self.root))
                    try:
                        result = self.on_event(event)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        logger.error(f"File watch callback failed for {event.path}: {e}")
        except (OSError, RuntimeError) as e:
            logger.warning(f"Watching {self.root} stopped: {e}")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task


class LocalSandbox(Sandbox):
    def __init__(self, root: str, shell: str = "/bin/bash", watch_debounce_ms: int = 500):
        self.root = Path(root).resolve()
        self.shell = shell
        self.watch_debounce_ms = watch_debounce_ms
        self._processes: Dict[int, _InteractiveProcess] = {}
        self._pending: Set[asyncio.Task] = set()

    def _resolve(self, path: Optional[str]) -> Path:
        if not path:
            return self.root
        p = Path(path)
        return p if p.is_absolute() else self.root / p

    async def run_command(
        self, cmd: str, timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS, cwd: Optional[str] = None
    ) -> CommandResult:
        workdir = self._resolve(cwd)
        try:
            proc = await asyncio.create_subprocess_shell(
                cmd,
                cwd=str(workdir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SandboxCommandError(f"Failed to start command: {e}", command=cmd) from e

        timeout = timeout_ms / 1000 if timeout_ms else None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await asyncio.to_thread(_kill_tree, proc.pid)
            await proc.wait()
            raise SandboxCommandError(f"Command timed out after {timeout_ms}ms", command=cmd)

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode,
        )

    async def open_interactive_process(
        self,
        cols: int,
        rows: int,
        cwd: Optional[str],
        on_data: DataCallback,
        envs: Optional[Dict[str, str]] = None,
    ) -> ProcessHandle:
        master_fd, slave_fd = pty.openpty()
        fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))

        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=str(self._resolve(cwd)),
                env={**os.environ, **(envs or {})},
                start_new_session=True,
            )
        except OSError as e:
            os.close(master_fd)
            raise SandboxCommandError(f"Failed to start interactive process: {e}", command=self.shell) from e
        finally:
            os.close(slave_fd)

        entry = _InteractiveProcess(process, master_fd)
        self._processes[process.pid] = entry
        loop = asyncio.get_running_loop()

        def _on_readable() -> None:
            try:
                data = os.read(master_fd, 4096)
            except OSError:
                data = b""
            if not data:
                loop.remove_reader(master_fd)
                return
            result = on_data(data)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        loop.add_reader(master_fd, _on_readable)

        reaper = asyncio.create_task(self._reap(entry))
        self._pending.add(reaper)
        reaper.add_done_callback(self._pending.discard)

        logger.info(f"Started interactive process {process.pid} ({cols}x{rows})")
        return ProcessHandle(pid=process.pid)

    async def _reap(self, entry: _InteractiveProcess) -> None:
        await entry.process.wait()
        logger.info(f"Interactive process {entry.pid} exited with {entry.process.returncode}")
        self._close(entry)

    def _close(self, entry: _InteractiveProcess) -> None:
        if entry.closed:
            return
        entry.closed = True
        self._processes.pop(entry.pid, None)
        try:
            asyncio.get_running_loop().remove_reader(entry.master_fd)
        except RuntimeError:
            pass
        try:
            os.close(entry.master_fd)
        except OSError:
            pass

    def _require(self, pid: int) -> _InteractiveProcess:
        entry = self._processes.get(pid)
        if entry is None or entry.closed or not psutil.pid_exists(pid):
            raise ProcessNotFoundError(pid)
        return entry

    async def send_input(self, pid: int, data: bytes) -> None:
        entry = self._require(pid)
        try:
            os.write(entry.master_fd, data)
        except OSError as e:
            raise ProcessNotFoundError(pid) from e

    async def kill_process(self, pid: int) -> None:
        entry = self._require(pid)
        await asyncio.to_thread(_kill_tree, pid)
        self._close(entry)

    async def read_file(self, path: str) -> str:
        target = self._resolve(path)
        if not target.is_file():
            raise SandboxPathNotFoundError(str(path))
        return await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")

    async def write_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")

    async def list_dir(self, path: str) -> List[str]:
        target = self._resolve(path)
        if not target.is_dir():
            raise SandboxPathNotFoundError(str(path))
        return sorted(p.name + ("/" if p.is_dir() else "") for p in target.iterdir())

    async def watch_directory(self, path: str, recursive: bool, on_event: FileEventCallback) -> WatchHandle:
        target = self._resolve(path)
        if not target.is_dir():
            raise SandboxPathNotFoundError(str(path))
        handle = FileWatchHandle(target, recursive, on_event, self.watch_debounce_ms)
        await handle.start()
        return handle

    async def shutdown(self) -> None:
        """Kill every interactive process this sandbox started."""
        for pid in list(self._processes):
            try:
                await self.kill_process(pid)
            except ProcessNotFoundError:
                continue
