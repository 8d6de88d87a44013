"""Background health monitoring for interactive sessions."""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from sandcastle.config import SessionConfig

if TYPE_CHECKING:
    from .manager import Session

logger = logging.getLogger(__name__)


class SessionHealthMonitor:
    """
    Two loops per session.

    The liveness loop wakes every ``liveness_interval_seconds`` and logs when
    the session has been idle or alive too long. It never terminates the
    session. The watchdog wakes every ``watchdog_interval_seconds`` and
    cancels the liveness loop once the session is no longer running.
    """

    def __init__(self, session: "Session", config: SessionConfig):
        self.session = session
        self.config = config
        self._liveness: Optional[asyncio.Task] = None
        self._watchdog: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._liveness is not None and not self._liveness.done()

    def start(self) -> None:
        if self.running:
            return
        self._liveness = asyncio.create_task(self._liveness_loop())
        self._watchdog = asyncio.create_task(self._watchdog_loop())

    async def _liveness_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.liveness_interval_seconds)
            if not self.session.is_running:
                return
            self.check()

    def check(self) -> None:
        """Log staleness for the monitored session."""
        now = time.time()
        idle = now - self.session.last_activity_at
        age = now - self.session.started_at
        if age > self.config.max_session_age_seconds:
            logger.warning(f"Session {self.session.id} is stale ({age / 3600:.1f}h old)", extra={"workspace_id": self.session.workspace_id})
        elif idle > self.config.stale_after_seconds:
            logger.info(f"Session {self.session.id} idle for {idle:.0f}s", extra={"workspace_id": self.session.workspace_id})
        else:
            logger.debug(f"Session {self.session.id} healthy (pid {self.session.pid})", extra={"workspace_id": self.session.workspace_id})

    async def _watchdog_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.watchdog_interval_seconds)
            if not self.session.is_running:
                if self._liveness and not self._liveness.done():
                    self._liveness.cancel()
                logger.debug(f"Health monitor for {self.session.id} stopped")
                return

    async def stop(self) -> None:
        for task in (self._liveness, self._watchdog):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
