"""
Sandbox tools available to network agents, and the executor that runs them.

Every invocation emits ``tool.called`` before it runs and exactly one of
``tool.completed`` / ``tool.failed`` afterwards. Failures never propagate to
the agent loop: the error is returned to the agent as the tool's output.
"""

import inspect
import logging
import posixpath
import shlex
import time
from difflib import get_close_matches
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from sandcastle.agents.exceptions import ToolExecutionError
from sandcastle.realtime.events import AgentEventEmitter
from sandcastle.sandbox.base import DEFAULT_COMMAND_TIMEOUT_MS, Sandbox
from sandcastle.utils.schema import validate_data

from .state import ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[str]]


def _function(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


SANDBOX_TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "terminal": _function(
        "terminal",
        "Execute a shell command in the sandbox terminal.",
        {
            "command": {"type": "string", "description": "The command to execute"},
            "timeout_ms": {
                "type": "integer",
                "minimum": 0,
                "description": "Timeout in milliseconds (0 waits indefinitely)",
            },
        },
        ["command"],
    ),
    "file_ops": _function(
        "file_ops",
        "Read, write, or list files in the sandbox.",
        {
            "operation": {"type": "string", "enum": ["read", "write", "list"]},
            "path": {"type": "string", "description": "Path relative to the working directory"},
            "content": {"type": "string", "description": "File content (write only)"},
        },
        ["operation"],
    ),
    "search_files": _function(
        "search_files",
        "Search for files by name or content, recursively from the working directory.",
        {
            "query": {"type": "string", "description": "Search query"},
            "type": {"type": "string", "enum": ["name", "content"], "description": "Search by filename or file content"},
        },
        ["query", "type"],
    ),
    "git": _function(
        "git",
        "Execute a git command in the working directory.",
        {"command": {"type": "string", "description": 'Git arguments, e.g. "status" or "diff HEAD~1"'}},
        ["command"],
    ),
}


def find_similar_tool_names(tool_name: str, available_tools: List[str], cutoff: float = 0.6) -> List[str]:
    """Find similar tool names using fuzzy matching."""
    clean_name = tool_name.replace("functions.", "").replace("tools.", "")
    return get_close_matches(clean_name, available_tools, n=3, cutoff=cutoff)


class ToolExecutor:
    """
    Runs tool calls for network agents.

    The four sandbox tools are registered at construction; the network adds
    its own (``create_agent``, ``delegate``) with ``register``.
    """

    def __init__(
        self,
        sandbox: Sandbox,
        emitter: Optional[AgentEventEmitter] = None,
        work_dir: Optional[str] = None,
        command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS,
    ):
        self.sandbox = sandbox
        self.emitter = emitter
        self.work_dir = work_dir
        self.command_timeout_ms = command_timeout_ms
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._handlers: Dict[str, ToolHandler] = {}

        self.register(SANDBOX_TOOL_SCHEMAS["terminal"], self._terminal)
        self.register(SANDBOX_TOOL_SCHEMAS["file_ops"], self._file_ops)
        self.register(SANDBOX_TOOL_SCHEMAS["search_files"], self._search_files)
        self.register(SANDBOX_TOOL_SCHEMAS["git"], self._git)

    def register(self, schema: Dict[str, Any], handler: ToolHandler) -> None:
        name = schema["function"]["name"]
        self._schemas[name] = schema
        self._handlers[name] = handler

    def schemas_for(self, names: Iterable[str]) -> List[Dict[str, Any]]:
        return [self._schemas[name] for name in sorted(names) if name in self._schemas]

    @property
    def tool_names(self) -> List[str]:
        return list(self._schemas)

    async def execute(
        self,
        call_id: str,
        name: str,
        arguments: Dict[str, Any],
        allowed: Iterable[str],
    ) -> ToolResult:
        """Run one tool call restricted to ``allowed``; never raises for tool failures."""
        if self.emitter:
            await self.emitter.emit_tool_called(name, arguments)

        start_time = time.time()
        try:
            output = await self._dispatch(name, arguments, set(allowed))
        except Exception as e:
            error_msg = f"Tool '{name}' failed: {e}"
            logger.error(error_msg)
            if self.emitter:
                await self.emitter.emit_tool_failed(name, error_msg)
            return ToolResult(call_id=call_id, name=name, output=error_msg, success=False)

        if self.emitter:
            await self.emitter.emit_tool_completed(name, output, duration=(time.time() - start_time) * 1000)
        return ToolResult(call_id=call_id, name=name, output=output)

    async def _dispatch(self, name: str, arguments: Dict[str, Any], allowed: set) -> str:
        if name not in self._handlers:
            similar = find_similar_tool_names(name, sorted(allowed))
            hint = f" Did you mean: {similar[0]}?" if similar else ""
            raise ToolExecutionError(
                f"Tool '{name}' not found.{hint} Available tools: {', '.join(sorted(allowed))}",
                tool_name=name,
                tool_args=arguments,
            )
        if name not in allowed:
            raise ToolExecutionError(f"Tool '{name}' is not available to this agent", tool_name=name, tool_args=arguments)

        is_valid, error = validate_data(arguments, self._schemas[name]["function"]["parameters"])
        if not is_valid:
            raise ToolExecutionError(f"Invalid arguments: {error}", tool_name=name, tool_args=arguments)

        logger.info(f"Executing tool: {name} with args: {arguments}")
        result = self._handlers[name](arguments)
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, str) else str(result)

    def _path(self, path: Optional[str]) -> str:
        if not path:
            return self.work_dir or "."
        if self.work_dir and not posixpath.isabs(path):
            return posixpath.join(self.work_dir, path)
        return path

    # ------------------------------------------------------------------
    # Sandbox tools
    # ------------------------------------------------------------------

    async def _terminal(self, args: Dict[str, Any]) -> str:
        timeout_ms = args.get("timeout_ms", self.command_timeout_ms)
        result = await self.sandbox.run_command(args["command"], timeout_ms=timeout_ms, cwd=self.work_dir)
        output = result.stdout or result.stderr or "Command completed"
        if not result.ok:
            return f"Exit code {result.exit_code}\n{result.stdout}{result.stderr}".rstrip()
        return output

    async def _file_ops(self, args: Dict[str, Any]) -> str:
        operation = args["operation"]
        path = args.get("path")
        if operation == "read":
            if not path:
                raise ToolExecutionError("'path' is required for read", tool_name="file_ops", tool_args=args)
            return await self.sandbox.read_file(self._path(path))
        if operation == "write":
            if not path or args.get("content") is None:
                raise ToolExecutionError(
                    "'path' and 'content' are required for write", tool_name="file_ops", tool_args=args
                )
            await self.sandbox.write_file(self._path(path), args["content"])
            return f"Successfully wrote {path}"
        entries = await self.sandbox.list_dir(self._path(path))
        return "\n".join(entries) if entries else "(empty directory)"

    async def _search_files(self, args: Dict[str, Any]) -> str:
        root = shlex.quote(self.work_dir or ".")
        query = args["query"]
        if args["type"] == "name":
            command = f"find {root} -type f -name {shlex.quote(f'*{query}*')}"
        else:
            command = f"grep -rn -- {shlex.quote(query)} {root} || true"
        result = await self.sandbox.run_command(command, timeout_ms=self.command_timeout_ms)
        return result.stdout.strip() or "No results found"

    async def _git(self, args: Dict[str, Any]) -> str:
        result = await self.sandbox.run_command(
            f"git {args['command']}", timeout_ms=self.command_timeout_ms, cwd=self.work_dir
        )
        output = result.stdout or result.stderr or "Git command completed"
        if not result.ok:
            return f"Exit code {result.exit_code}\n{output}".rstrip()
        return output
