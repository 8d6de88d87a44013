"""
Interactive session manager.

Keeps one long-lived terminal process per workspace inside the sandbox,
streams its output and file changes onto the realtime bus, and delivers user
input to it. The in-memory session table is a cache over the persisted
descriptor: another process can pick up a workspace's session from the
descriptor alone, without output streaming or file watching.

Session lifecycle: absent -> starting -> running -> (crashed | stopped).
"""

import asyncio
import codecs
import inspect
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from redis.exceptions import RedisError

from sandcastle.agents.exceptions import NoActiveSessionError, SessionExpiredError
from sandcastle.config import SessionConfig
from sandcastle.realtime.bus import (
    TOPIC_FILE_CHANGE,
    TOPIC_SESSION_CRASH,
    TOPIC_TERMINAL_OUTPUT,
    RealtimeBus,
)
from sandcastle.realtime.events import now_ms
from sandcastle.sandbox.base import FileEvent, ProcessNotFoundError, Sandbox, WatchHandle

from .descriptors import DescriptorStore
from .health import SessionHealthMonitor

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class Session:
    id: str
    workspace_id: str
    pid: int
    work_dir: Optional[str] = None
    is_running: bool = True
    started_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    watcher: Optional[WatchHandle] = None
    restored: bool = False

    @property
    def age_seconds(self) -> float:
        return time.time() - self.started_at


@dataclass
class _WorkspaceLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class InteractiveSessionManager:
    def __init__(
        self,
        sandbox: Sandbox,
        bus: RealtimeBus,
        descriptors: DescriptorStore,
        config: Optional[SessionConfig] = None,
    ):
        self.sandbox = sandbox
        self.bus = bus
        self.descriptors = descriptors
        self.config = config or descriptors.config
        self._sessions: Dict[str, Session] = {}
        self._monitors: Dict[str, SessionHealthMonitor] = {}
        self._locks: Dict[str, _WorkspaceLock] = {}

    @asynccontextmanager
    async def _workspace_lock(self, workspace_id: str) -> AsyncIterator[None]:
        """Serialize start/stop per workspace; the entry is dropped once unused."""
        entry = self._locks.get(workspace_id)
        if entry is None:
            entry = self._locks[workspace_id] = _WorkspaceLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[workspace_id]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        workspace_id: str,
        work_dir: Optional[str] = None,
        on_output: Optional[OutputCallback] = None,
    ) -> Session:
        """
        Start the workspace's interactive process, or return the live one.

        Output chunks are republished verbatim (ANSI sequences included) to
        ``terminal-output``; file changes under ``work_dir`` go to
        ``file-change``.
        """
        async with self._workspace_lock(workspace_id):
            existing = self._sessions.get(workspace_id)
            if existing is not None and existing.is_running:
                logger.info(f"Existing session found: {existing.id}", extra={"workspace_id": workspace_id})
                return existing

            logger.info(f"Starting new interactive session for workspace {workspace_id}", extra={"workspace_id": workspace_id})
            handle = await self.sandbox.open_interactive_process(
                cols=self.config.cols,
                rows=self.config.rows,
                cwd=work_dir,
                on_data=self._output_handler(workspace_id, on_output),
                envs=self.config.process_env(),
            )

            try:
                watcher = await self.sandbox.watch_directory(
                    work_dir or ".",
                    recursive=self.config.watch_recursive,
                    on_event=self._file_event_handler(workspace_id),
                )
            except Exception:
                logger.error(f"Failed to watch {work_dir or '.'} for workspace {workspace_id}; killing process {handle.pid}", extra={"workspace_id": workspace_id})
                try:
                    await self.sandbox.kill_process(handle.pid)
                except ProcessNotFoundError:
                    pass
                raise

            session = Session(
                id=f"session-{workspace_id}-{now_ms()}",
                workspace_id=workspace_id,
                pid=handle.pid,
                work_dir=work_dir,
                watcher=watcher,
            )
            self._sessions[workspace_id] = session

            try:
                await self.descriptors.set_pid(workspace_id, handle.pid)
            except (RedisError, OSError) as e:
                logger.error(f"Failed to persist session descriptor for {workspace_id}: {e}", extra={"workspace_id": workspace_id})

            monitor = SessionHealthMonitor(session, self.config)
            monitor.start()
            self._monitors[workspace_id] = monitor

            logger.info(f"Session {session.id} started (pid {session.pid})", extra={"workspace_id": session.workspace_id})
            return session

    def _output_handler(self, workspace_id: str, on_output: Optional[OutputCallback]):
        # PTY reads can split multi-byte characters across chunks
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        async def _on_data(data: bytes) -> None:
            text = decoder.decode(data)
            if not text:
                return
            await self.bus.publish_workspace(
                workspace_id,
                TOPIC_TERMINAL_OUTPUT,
                {"type": "stdout", "data": text, "timestamp": now_ms()},
            )
            if on_output is not None:
                result = on_output(text)
                if inspect.isawaitable(result):
                    await result

        return _on_data

    def _file_event_handler(self, workspace_id: str):
        async def _on_event(event: FileEvent) -> None:
            logger.debug(f"File change in {workspace_id}: {event.type} {event.path}", extra={"workspace_id": workspace_id})
            await self.bus.publish_workspace(
                workspace_id,
                TOPIC_FILE_CHANGE,
                {"type": event.type, "path": event.path, "timestamp": now_ms()},
            )

        return _on_event

    async def _recover(self, workspace_id: str) -> Optional[Session]:
        try:
            pid = await self.descriptors.get_pid(workspace_id)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to read session descriptor for {workspace_id}: {e}", extra={"workspace_id": workspace_id})
            return None
        if pid is None:
            return None

        logger.info(f"Restored session pid {pid} for workspace {workspace_id} from descriptor", extra={"workspace_id": workspace_id})
        session = Session(
            id=f"session-{workspace_id}-restored",
            workspace_id=workspace_id,
            pid=pid,
            restored=True,
        )
        self._sessions[workspace_id] = session
        return session

    async def send(self, workspace_id: str, message: str) -> None:
        """
        Write ``message`` plus a newline to the workspace's process.

        Raises:
            NoActiveSessionError: if no session is tracked or recoverable
            SessionExpiredError: if the sandbox no longer knows the process
            SessionLockError: if another sender holds the workspace lease
        """
        session = self._sessions.get(workspace_id)
        if session is None:
            session = await self._recover(workspace_id)
        if session is None:
            raise NoActiveSessionError(workspace_id)

        async with self.descriptors.lease(workspace_id):
            session.last_activity_at = time.time()
            logger.debug(f"Sending {len(message)} chars to session {session.id}", extra={"workspace_id": session.workspace_id})
            try:
                await self.sandbox.send_input(session.pid, (message + "\n").encode("utf-8"))
            except ProcessNotFoundError as e:
                logger.warning(f"Process {session.pid} for {workspace_id} is gone, clearing stale session", extra={"workspace_id": workspace_id})
                await self._discard(session)
                await self.bus.publish_workspace(
                    workspace_id,
                    TOPIC_SESSION_CRASH,
                    {"message": "Session process exited unexpectedly", "timestamp": now_ms()},
                )
                raise SessionExpiredError(workspace_id, pid=session.pid) from e

    async def _discard(self, session: Session) -> None:
        session.is_running = False
        if self._sessions.get(session.workspace_id) is session:
            del self._sessions[session.workspace_id]
        monitor = self._monitors.pop(session.workspace_id, None)
        if monitor is not None:
            await monitor.stop()
        if session.watcher is not None:
            await session.watcher.stop()
        try:
            await self.descriptors.delete_pid(session.workspace_id)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to clear session descriptor for {session.workspace_id}: {e}", extra={"workspace_id": session.workspace_id})

    async def stop(self, workspace_id: str) -> None:
        async with self._workspace_lock(workspace_id):
            session = self._sessions.get(workspace_id)
            if session is None:
                logger.warning(f"No session to stop for workspace {workspace_id}", extra={"workspace_id": workspace_id})
                return

            logger.info(f"Stopping session {session.id}", extra={"workspace_id": session.workspace_id})
            if session.watcher is not None:
                await session.watcher.stop()
                session.watcher = None
            try:
                await self.sandbox.kill_process(session.pid)
            except ProcessNotFoundError:
                logger.info(f"Process {session.pid} already gone", extra={"workspace_id": session.workspace_id})
            await self._discard(session)
            logger.info(f"Session {session.id} stopped", extra={"workspace_id": session.workspace_id})

    async def restart(
        self,
        workspace_id: str,
        context_summary: Optional[str] = None,
        work_dir: Optional[str] = None,
        on_output: Optional[OutputCallback] = None,
    ) -> Session:
        """Stop, wait for cleanup, start again and optionally replay a context summary."""
        previous = self._sessions.get(workspace_id)
        if work_dir is None and previous is not None:
            work_dir = previous.work_dir

        await self.stop(workspace_id)
        await asyncio.sleep(self.config.restart_settle_seconds)
        session = await self.start(workspace_id, work_dir=work_dir, on_output=on_output)

        if context_summary:
            logger.info(f"Providing context summary to session {session.id}", extra={"workspace_id": session.workspace_id})
            await self.send(workspace_id, context_summary)
        return session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, workspace_id: str) -> Optional[Session]:
        return self._sessions.get(workspace_id)

    def active_workspaces(self) -> List[str]:
        return [ws for ws, s in self._sessions.items() if s.is_running]

    def is_healthy(self, workspace_id: str) -> bool:
        """Running and younger than the age ceiling; activity does not matter."""
        session = self._sessions.get(workspace_id)
        if session is None or not session.is_running:
            return False
        if session.age_seconds > self.config.max_session_age_seconds:
            logger.warning(f"Session {session.id} is stale (over the age ceiling)", extra={"workspace_id": session.workspace_id})
            return False
        return True

    async def shutdown(self) -> None:
        """Stop every tracked session."""
        for workspace_id in list(self._sessions):
            try:
                await self.stop(workspace_id)
            except Exception as e:
                logger.error(f"Error stopping session for {workspace_id} during shutdown: {e}", extra={"workspace_id": workspace_id})
