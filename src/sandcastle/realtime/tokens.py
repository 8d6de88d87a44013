"""
Subscription tokens.

A token is base64-encoded JSON ``{channel, topics, exp}`` with ``exp`` in epoch
milliseconds. Tokens are not signed: anyone who can build the JSON can mint
one, so they must only be handed out behind an authenticated endpoint.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import List, Optional

from sandcastle.agents.exceptions import SubscriptionTokenError

from .events import now_ms

DEFAULT_TOKEN_LIFETIME_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class SubscriptionToken:
    channel: str
    topics: List[str] = field(default_factory=list)
    exp: int = 0

    @classmethod
    def issue(cls, channel: str, topics: List[str], lifetime_ms: int = DEFAULT_TOKEN_LIFETIME_MS) -> "SubscriptionToken":
        return cls(channel=channel, topics=list(topics), exp=now_ms() + lifetime_ms)

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        return (at_ms if at_ms is not None else now_ms()) >= self.exp

    def encode(self) -> str:
        payload = json.dumps({"channel": self.channel, "topics": list(self.topics), "exp": self.exp}, separators=(",", ":"))
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> "SubscriptionToken":
        """
        Parse a token string.

        Raises:
            SubscriptionTokenError: if the token is not base64 JSON of the expected shape
        """
        try:
            data = json.loads(base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise SubscriptionTokenError(f"Malformed subscription token: {e}") from e

        if not isinstance(data, dict):
            raise SubscriptionTokenError("Malformed subscription token: payload is not an object")

        channel, topics, exp = data.get("channel"), data.get("topics"), data.get("exp")
        if not isinstance(channel, str) or not isinstance(topics, list) or not isinstance(exp, int) \
                or not all(isinstance(t, str) for t in topics):
            raise SubscriptionTokenError("Malformed subscription token: expected {channel, topics, exp}")

        return cls(channel=channel, topics=topics, exp=exp)
