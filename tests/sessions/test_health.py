"""Tests for the session health monitor loops."""

import asyncio
import logging
import time

import pytest

from sandcastle.config import SessionConfig
from sandcastle.sessions.health import SessionHealthMonitor
from sandcastle.sessions.manager import Session


@pytest.fixture
def fast_config():
    return SessionConfig(
        liveness_interval_seconds=0.01,
        watchdog_interval_seconds=0.01,
        max_session_age_seconds=3600,
        stale_after_seconds=60,
    )


class TestSessionHealthMonitor:
    def test_check_logs_stale_session(self, fast_config, caplog):
        session = Session(id="s-1", workspace_id="ws", pid=1, started_at=time.time() - 7200)
        monitor = SessionHealthMonitor(session, fast_config)

        with caplog.at_level(logging.WARNING, logger="sandcastle.sessions.health"):
            monitor.check()

        assert "stale" in caplog.text
        assert session.is_running

    def test_check_logs_idle_session(self, fast_config, caplog):
        session = Session(id="s-1", workspace_id="ws", pid=1, last_activity_at=time.time() - 120)
        monitor = SessionHealthMonitor(session, fast_config)

        with caplog.at_level(logging.INFO, logger="sandcastle.sessions.health"):
            monitor.check()

        assert "idle" in caplog.text

    @pytest.mark.asyncio
    async def test_watchdog_stops_liveness(self, fast_config):
        session = Session(id="s-1", workspace_id="ws", pid=1)
        monitor = SessionHealthMonitor(session, fast_config)
        monitor.start()
        assert monitor.running

        session.is_running = False
        await asyncio.sleep(0.05)

        assert not monitor.running
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_loops(self, fast_config):
        session = Session(id="s-1", workspace_id="ws", pid=1)
        monitor = SessionHealthMonitor(session, fast_config)
        monitor.start()

        await monitor.stop()

        assert not monitor.running
        assert session.is_running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, fast_config):
        session = Session(id="s-1", workspace_id="ws", pid=1)
        monitor = SessionHealthMonitor(session, fast_config)
        monitor.start()
        first = monitor._liveness

        monitor.start()

        assert monitor._liveness is first
        await monitor.stop()
