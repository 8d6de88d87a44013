"""
Configuration for sandcastle.

Process-level settings come from the environment via ``Settings.from_env()``;
component behaviour is tuned through the dataclass configs below.
"""

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from sandcastle.models.catalog import DEFAULT_MODEL, ProviderTag

FOUR_HOURS_SECONDS = 4 * 60 * 60


@dataclass
class SessionConfig:
    """Configuration for interactive sessions."""
    cols: int = 80
    rows: int = 24
    term: str = "xterm-256color"
    force_color: bool = True

    # Descriptor TTL matches the sandbox inactivity timeout
    sandbox_timeout_seconds: int = FOUR_HOURS_SECONDS
    max_session_age_seconds: int = FOUR_HOURS_SECONDS

    restart_settle_seconds: float = 1.0

    # Health monitor
    liveness_interval_seconds: float = 30.0
    watchdog_interval_seconds: float = 5.0
    stale_after_seconds: float = 30 * 60

    # Per-workspace send lease
    send_lock_ttl_ms: int = 10_000
    send_lock_wait_seconds: float = 5.0
    send_lock_poll_seconds: float = 0.05

    watch_recursive: bool = True

    def process_env(self) -> Dict[str, str]:
        env = {"TERM": self.term}
        if self.force_color:
            env["FORCE_COLOR"] = "1"
        return env


@dataclass
class NetworkConfig:
    """Configuration for the orchestration network."""
    max_iter: int = 30
    max_delegate_turns: int = 8
    max_custom_agents: int = 50
    default_custom_model: str = DEFAULT_MODEL
    completion_open_tag: str = "<task_summary>"
    completion_close_tag: str = "</task_summary>"
    command_timeout_ms: int = 60_000
    stream_text: bool = True


@dataclass
class TokenConfig:
    """Configuration for realtime subscription tokens."""
    lifetime_ms: int = 60 * 60 * 1000


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Process-wide settings, usually built with ``from_env()``."""

    redis_url: str = "redis://localhost:6379"
    anthropic_api_key: Optional[str] = Field(None, repr=False)
    openai_api_key: Optional[str] = Field(None, repr=False)
    max_concurrent_calls: int = Field(4, ge=1)
    calls_per_minute: int = Field(60, ge=1)
    session_ttl_seconds: int = Field(FOUR_HOURS_SECONDS, ge=1)
    max_custom_agents: int = Field(50, ge=1)
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "redis_url": env.get("REDIS_URL"),
            "anthropic_api_key": env.get("ANTHROPIC_API_KEY"),
            "openai_api_key": env.get("OPENAI_API_KEY"),
            "max_concurrent_calls": env.get("SANDCASTLE_MAX_CONCURRENT_CALLS"),
            "calls_per_minute": env.get("SANDCASTLE_CALLS_PER_MINUTE"),
            "session_ttl_seconds": env.get("SANDCASTLE_SESSION_TTL_SECONDS"),
            "max_custom_agents": env.get("SANDCASTLE_MAX_CUSTOM_AGENTS"),
            "log_level": env.get("SANDCASTLE_LOG_LEVEL"),
        }
        values = {k: v for k, v in values.items() if v is not None}
        values["log_json"] = _env_bool(env.get("SANDCASTLE_LOG_JSON"), False)
        return cls(**values)

    def api_keys(self) -> Dict[ProviderTag, str]:
        keys = {}
        if self.anthropic_api_key:
            keys[ProviderTag.ANTHROPIC] = self.anthropic_api_key
        if self.openai_api_key:
            keys[ProviderTag.OPENAI] = self.openai_api_key
        return keys

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            sandbox_timeout_seconds=self.session_ttl_seconds,
            max_session_age_seconds=self.session_ttl_seconds,
        )

    def network_config(self) -> NetworkConfig:
        return NetworkConfig(max_custom_agents=self.max_custom_agents)
