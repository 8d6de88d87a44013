"""Realtime bus, subscription tokens and agent lifecycle events."""

from .events import AGENT_EVENT_TOPIC, AgentEvent, AgentEventEmitter, AgentEventType
from .tokens import DEFAULT_TOKEN_LIFETIME_MS, SubscriptionToken
from .bus import (
    TOPIC_AGENT_EVENT,
    TOPIC_FILE_CHANGE,
    TOPIC_MESSAGES,
    TOPIC_SESSION_CRASH,
    TOPIC_STATUS,
    TOPIC_TERMINAL_OUTPUT,
    WORKSPACE_TOPICS,
    RealtimeBus,
    Subscription,
    workspace_channel,
)

__all__ = [
    "AGENT_EVENT_TOPIC",
    "AgentEvent",
    "AgentEventEmitter",
    "AgentEventType",
    "DEFAULT_TOKEN_LIFETIME_MS",
    "SubscriptionToken",
    "RealtimeBus",
    "Subscription",
    "workspace_channel",
    "WORKSPACE_TOPICS",
    "TOPIC_AGENT_EVENT",
    "TOPIC_FILE_CHANGE",
    "TOPIC_MESSAGES",
    "TOPIC_SESSION_CRASH",
    "TOPIC_STATUS",
    "TOPIC_TERMINAL_OUTPUT",
]
