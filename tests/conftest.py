"""
Shared fixtures: an in-memory sandbox, a recording bus, fake Redis and
scripted provider adapters.
"""

import inspect
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from sandcastle.agents.registry import OutputToolCatalog, SystemAgentRegistry
from sandcastle.agents.store import InMemoryAgentStore, InMemoryExecutionStore, InMemoryTaskStore
from sandcastle.execution.rate_limiter import RateLimiter
from sandcastle.models.response_models import HarmonizedResponse, ResponseMetadata, ToolCall
from sandcastle.realtime.events import AgentEventEmitter
from sandcastle.sandbox.base import (
    CommandResult,
    ProcessHandle,
    ProcessNotFoundError,
    Sandbox,
    SandboxPathNotFoundError,
    WatchHandle,
)


# =============================================================================
# Sandbox
# =============================================================================

class FakeWatchHandle(WatchHandle):
    def __init__(self, path: str, recursive: bool, on_event):
        self.path = path
        self.recursive = recursive
        self.on_event = on_event
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class FakeSandbox(Sandbox):
    """Sandbox double that records every call and keeps files in a dict."""

    def __init__(self):
        self.next_pid = 1000
        self.processes: Dict[int, SimpleNamespace] = {}
        self.killed: List[int] = []
        self.files: Dict[str, str] = {}
        self.commands: List[Dict[str, Any]] = []
        self.command_results: Dict[str, Any] = {}
        self.watchers: List[FakeWatchHandle] = []

    async def run_command(self, cmd, timeout_ms=60_000, cwd=None):
        self.commands.append({"cmd": cmd, "timeout_ms": timeout_ms, "cwd": cwd})
        result = self.command_results.get(cmd)
        if isinstance(result, Exception):
            raise result
        return result or CommandResult(stdout=f"ran {cmd}", stderr="", exit_code=0)

    async def open_interactive_process(self, cols, rows, cwd, on_data, envs=None):
        pid = self.next_pid
        self.next_pid += 1
        self.processes[pid] = SimpleNamespace(cols=cols, rows=rows, cwd=cwd, envs=envs, on_data=on_data, input=[])
        return ProcessHandle(pid=pid)

    async def send_input(self, pid, data):
        if pid not in self.processes:
            raise ProcessNotFoundError(pid)
        self.processes[pid].input.append(data)

    async def kill_process(self, pid):
        if pid not in self.processes:
            raise ProcessNotFoundError(pid)
        del self.processes[pid]
        self.killed.append(pid)

    async def read_file(self, path):
        if path not in self.files:
            raise SandboxPathNotFoundError(path)
        return self.files[path]

    async def write_file(self, path, content):
        self.files[path] = content

    async def list_dir(self, path):
        prefix = path.rstrip("/") + "/"
        entries = set()
        for name in self.files:
            if name.startswith(prefix):
                rest = name[len(prefix):]
                entries.add(rest.split("/")[0] + ("/" if "/" in rest else ""))
        if not entries and path not in (".", ""):
            raise SandboxPathNotFoundError(path)
        return sorted(entries)

    async def watch_directory(self, path, recursive, on_event):
        handle = FakeWatchHandle(path, recursive, on_event)
        self.watchers.append(handle)
        return handle

    async def emit_output(self, pid: int, data: bytes) -> None:
        """Feed bytes to a process's output callback as the sandbox would."""
        result = self.processes[pid].on_data(data)
        if inspect.isawaitable(result):
            await result


@pytest.fixture
def sandbox():
    return FakeSandbox()


# =============================================================================
# Realtime
# =============================================================================

class RecordingBus:
    """Stands in for RealtimeBus and keeps every publish in order."""

    def __init__(self):
        self.published: List[Dict[str, Any]] = []

    async def publish(self, channel: str, topic: str, data: Any) -> bool:
        self.published.append({"channel": channel, "topic": topic, "data": data})
        return True

    async def publish_workspace(self, workspace_id: str, topic: str, data: Any) -> bool:
        return await self.publish(f"workspace:{workspace_id}", topic, data)

    def on_topic(self, topic: str) -> List[Any]:
        return [m["data"] for m in self.published if m["topic"] == topic]

    def event_types(self) -> List[str]:
        return [e["type"] for e in self.on_topic("agent-event")]


@pytest.fixture
def recording_bus():
    return RecordingBus()


@pytest.fixture
def emitter(recording_bus):
    return AgentEventEmitter(recording_bus, "ws-1")


@pytest.fixture
def fake_redis():
    fakeredis = pytest.importorskip("fakeredis")
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


# =============================================================================
# Agents and stores
# =============================================================================

@pytest.fixture(scope="session")
def registry():
    return SystemAgentRegistry.from_yaml()


@pytest.fixture(scope="session")
def output_tools():
    return OutputToolCatalog.from_yaml()


@pytest.fixture
def task_store():
    return InMemoryTaskStore()


@pytest.fixture
def agent_store():
    return InMemoryAgentStore()


@pytest.fixture
def execution_store():
    return InMemoryExecutionStore()


@pytest.fixture
def rate_limiter():
    return RateLimiter(max_concurrent=4, calls_per_minute=10_000)


# =============================================================================
# Provider doubles
# =============================================================================

def make_response(content: Optional[str] = None, tool_calls: Optional[List[Dict[str, Any]]] = None) -> HarmonizedResponse:
    calls = [
        ToolCall(id=call.get("id", f"call_{i}"), function={"name": call["name"], "arguments": call.get("arguments", {})})
        for i, call in enumerate(tool_calls or [])
    ]
    return HarmonizedResponse(
        content=content,
        tool_calls=calls,
        metadata=ResponseMetadata(provider="anthropic", model="claude-haiku-4-5"),
    )


class ScriptedAdapter:
    """Returns (or raises) queued responses in order and records each request."""

    provider = "anthropic"

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def arun(self, messages, on_text_delta=None, **kwargs):
        self.calls.append({"messages": [dict(m) for m in messages], **kwargs})
        if not self.responses:
            raise AssertionError("No scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if on_text_delta is not None and item.content:
            await on_text_delta(item.content)
        return item


class ScriptedFactory:
    """Adapter factory double: one scripted adapter per model name, or one shared."""

    def __init__(self, adapter: Optional[ScriptedAdapter] = None, per_model: Optional[Dict[str, ScriptedAdapter]] = None):
        self.adapter = adapter
        self.per_model = per_model or {}
        self.requested: List[tuple] = []

    def get_adapter(self, provider, model_name):
        self.requested.append((provider, model_name))
        return self.per_model.get(model_name, self.adapter)


@pytest.fixture
def response():
    return make_response


@pytest.fixture
def scripted():
    """Build a (factory, adapter) pair from a list of responses/exceptions."""
    def _build(responses):
        adapter = ScriptedAdapter(responses)
        return ScriptedFactory(adapter), adapter
    return _build


@pytest.fixture
def scripted_models():
    """Build a factory with one scripted adapter per model name."""
    def _build(responses_by_model):
        adapters = {model: ScriptedAdapter(responses) for model, responses in responses_by_model.items()}
        return ScriptedFactory(per_model=adapters), adapters
    return _build


class FakeHTTPResponse:
    def __init__(self, status: int, body: Optional[Dict[str, Any]] = None):
        self.status = status
        self.headers: Dict[str, str] = {}
        self._body = body

    async def json(self, content_type=None):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeHTTPSession:
    """Stands in for aiohttp.ClientSession; counts POSTs and answers with one status."""

    closed = False

    def __init__(self, status: int = 503, body: Optional[Dict[str, Any]] = None):
        self.status = status
        self.body = body if body is not None else {"error": {"message": "overloaded"}}
        self.posts: List[Dict[str, Any]] = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "json": json})
        return FakeHTTPResponse(self.status, self.body)

    async def close(self):
        self.closed = True


@pytest.fixture
def http_session():
    """Attach a FakeHTTPSession to an adapter; returns the session."""
    def _attach(adapter, status: int = 503, body: Optional[Dict[str, Any]] = None):
        session = FakeHTTPSession(status, body)
        adapter._session = session
        return session
    return _attach
