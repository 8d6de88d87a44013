"""
Realtime bus: typed publish/subscribe fan-out over Redis.

Broker channel names are ``{channel}:{topic}`` where ``channel`` is
``workspace:{workspace_id}``. Payloads are JSON ``{channel, topic, data,
timestamp}``. Delivery is at-most-once; ordering holds only within one topic
from one publisher.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from sandcastle.agents.exceptions import SubscriptionTokenError
from sandcastle.config import TokenConfig

from .events import now_ms
from .tokens import SubscriptionToken

logger = logging.getLogger(__name__)

# Topics that partition a workspace channel
TOPIC_MESSAGES = "messages"
TOPIC_STATUS = "status"
TOPIC_FILE_CHANGE = "file-change"
TOPIC_TERMINAL_OUTPUT = "terminal-output"
TOPIC_AGENT_EVENT = "agent-event"
TOPIC_SESSION_CRASH = "session-crash"

WORKSPACE_TOPICS = (
    TOPIC_MESSAGES,
    TOPIC_STATUS,
    TOPIC_FILE_CHANGE,
    TOPIC_TERMINAL_OUTPUT,
    TOPIC_AGENT_EVENT,
    TOPIC_SESSION_CRASH,
)

MessageHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


def workspace_channel(workspace_id: str) -> str:
    return f"workspace:{workspace_id}"


class Subscription:
    """A running pattern subscription; call ``close()`` to stop it."""

    def __init__(self, pubsub, patterns: List[str], task: "asyncio.Task"):
        self.pubsub = pubsub
        self.patterns = patterns
        self._task = task

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def close(self) -> None:
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        try:
            await self.pubsub.punsubscribe(*self.patterns)
            await self.pubsub.aclose()
        except RedisError as e:
            logger.warning(f"Error closing subscription {self.patterns}: {e}")


class RealtimeBus:
    """
    Publish/subscribe over a shared Redis broker.

    The bus carries no business logic. Publishing never raises for broker
    failures: they are logged and dropped, since the bus is never the only
    record of anything.
    """

    def __init__(self, client: aioredis.Redis, token_config: Optional[TokenConfig] = None, poll_timeout: float = 1.0):
        self.client = client
        self.token_config = token_config or TokenConfig()
        self.poll_timeout = poll_timeout

    @classmethod
    def from_url(cls, url: str, token_config: Optional[TokenConfig] = None) -> "RealtimeBus":
        return cls(aioredis.from_url(url), token_config=token_config)

    def issue_token(self, workspace_id: str, topics: Optional[List[str]] = None) -> SubscriptionToken:
        """Grant access to a workspace channel (all topics unless narrowed)."""
        return SubscriptionToken.issue(
            workspace_channel(workspace_id),
            list(topics) if topics else list(WORKSPACE_TOPICS),
            lifetime_ms=self.token_config.lifetime_ms,
        )

    async def publish(self, channel: str, topic: str, data: Any) -> bool:
        """Publish ``data``; returns False (after logging) if the broker failed."""
        message = {"channel": channel, "topic": topic, "data": data, "timestamp": now_ms()}
        redis_channel = f"{channel}:{topic}"
        try:
            await self.client.publish(redis_channel, json.dumps(message, default=str))
        except (RedisError, OSError) as e:
            logger.error(f"Failed to publish to {redis_channel}: {e}")
            return False
        logger.debug(f"Published to {redis_channel}")
        return True

    async def publish_workspace(self, workspace_id: str, topic: str, data: Any) -> bool:
        return await self.publish(workspace_channel(workspace_id), topic, data)

    async def subscribe(self, channel: str, topics: List[str], on_message: MessageHandler) -> Subscription:
        """
        Pattern-subscribe to ``{channel}:{topic}`` for each topic.

        ``on_message`` receives the decoded payload dict and may be sync or
        async. Malformed messages are logged and skipped.
        """
        patterns = [f"{channel}:{topic}" for topic in topics]
        pubsub = self.client.pubsub()
        await pubsub.psubscribe(*patterns)
        task = asyncio.create_task(self._listen(pubsub, on_message))
        logger.info(f"Subscribed to channels: {patterns}")
        return Subscription(pubsub, patterns, task)

    async def subscribe_with_token(self, token: Union[str, SubscriptionToken], on_message: MessageHandler) -> Subscription:
        """
        Subscribe to the channel and topics granted by a token.

        Raises:
            SubscriptionTokenError: if the token is malformed or expired
        """
        if isinstance(token, str):
            token = SubscriptionToken.decode(token)
        if token.is_expired():
            raise SubscriptionTokenError(
                f"Subscription token for {token.channel} expired",
                context={"channel": token.channel, "exp": token.exp},
            )
        return await self.subscribe(token.channel, token.topics, on_message)

    async def _listen(self, pubsub, on_message: MessageHandler) -> None:
        while True:
            raw = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_timeout)
            if raw is None:
                continue
            if raw.get("type") not in ("pmessage", "message"):
                continue

            payload = raw.get("data")
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8", errors="replace")
            try:
                message = json.loads(payload)
            except (TypeError, ValueError) as e:
                logger.error(f"Failed to parse message on {raw.get('channel')}: {e}")
                continue

            try:
                result = on_message(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in subscription handler for {raw.get('channel')}: {e}")

    async def close(self) -> None:
        await self.client.aclose()
