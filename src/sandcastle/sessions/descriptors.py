"""
Persisted session descriptors and the per-workspace send lease.

A descriptor maps ``session-pid:{workspace_id}`` to the pid of the
workspace's interactive process, with a TTL matching the sandbox
inactivity timeout. Any process sharing the broker can rebuild a minimal
session handle from it.

The lease ``session-lock:{workspace_id}`` serializes ``send`` across
processes. It is a plain SET NX PX with a random owner token; release only
deletes the key while the caller still owns it.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from sandcastle.agents.exceptions import SessionLockError
from sandcastle.config import SessionConfig

logger = logging.getLogger(__name__)


def _decode(value) -> Optional[str]:
    if value is None:
        return None
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class DescriptorStore:
    def __init__(self, client: aioredis.Redis, config: Optional[SessionConfig] = None):
        self.client = client
        self.config = config or SessionConfig()

    @staticmethod
    def _pid_key(workspace_id: str) -> str:
        return f"session-pid:{workspace_id}"

    @staticmethod
    def _lock_key(workspace_id: str) -> str:
        return f"session-lock:{workspace_id}"

    async def set_pid(self, workspace_id: str, pid: int) -> None:
        await self.client.set(self._pid_key(workspace_id), str(pid), ex=self.config.sandbox_timeout_seconds)
        logger.debug(f"Stored session pid {pid} for workspace {workspace_id}", extra={"workspace_id": workspace_id})

    async def get_pid(self, workspace_id: str) -> Optional[int]:
        value = _decode(await self.client.get(self._pid_key(workspace_id)))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring malformed session descriptor for workspace {workspace_id}: {value!r}")
            return None

    async def delete_pid(self, workspace_id: str) -> None:
        await self.client.delete(self._pid_key(workspace_id))

    async def try_acquire_lease(self, workspace_id: str, owner: str) -> bool:
        """Attempt to take the send lease once."""
        acquired = bool(
            await self.client.set(self._lock_key(workspace_id), owner, nx=True, px=self.config.send_lock_ttl_ms)
        )
        if not acquired:
            current = _decode(await self.client.get(self._lock_key(workspace_id)))
            logger.debug(f"Send lease for {workspace_id} held by {current or 'unknown'}")
        return acquired

    async def acquire_lease(self, workspace_id: str) -> str:
        """
        Wait for the send lease and return the owner token.

        Raises:
            SessionLockError: if the lease is still held after
                ``send_lock_wait_seconds``
        """
        owner = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.send_lock_wait_seconds
        while True:
            if await self.try_acquire_lease(workspace_id, owner):
                return owner
            if loop.time() >= deadline:
                raise SessionLockError(workspace_id, timeout_seconds=self.config.send_lock_wait_seconds)
            await asyncio.sleep(self.config.send_lock_poll_seconds)

    async def release_lease(self, workspace_id: str, owner: str) -> bool:
        """Release the lease if ``owner`` still holds it; returns whether it did."""
        key = self._lock_key(workspace_id)
        if _decode(await self.client.get(key)) != owner:
            logger.warning(f"Send lease for {workspace_id} expired before release")
            return False
        await self.client.delete(key)
        return True

    @asynccontextmanager
    async def lease(self, workspace_id: str) -> AsyncIterator[str]:
        owner = await self.acquire_lease(workspace_id)
        try:
            yield owner
        finally:
            await self.release_lease(workspace_id, owner)
