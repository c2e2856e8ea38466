"""MCP server exposing session management as tools."""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, Callable

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent
from mcp.types import Tool as MCPTool

from .errors import SessionError
from .mutations import (
    clear_sessions,
    delete_message,
    delete_session,
    preview_cleanup,
    rename_session,
    split_session,
)
from .summary import get_session_files, list_projects, list_sessions, read_session

logger = logging.getLogger(__name__)

_PROJECT = {"type": "string", "description": "Project folder name (e.g. '-Users-alice-dev-app')"}
_SESSION = {"type": "string", "description": "Session id (file name without .jsonl)"}
_OPTIONAL_PROJECT = {"type": "string", "description": "Optional: limit to one project"}


def _schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


_INPUT_SCHEMAS: dict[str, dict[str, Any]] = {}


def _tool(name: str, description: str, input_schema: dict[str, Any]) -> MCPTool:
    _INPUT_SCHEMAS[name] = input_schema
    return MCPTool(name=name, description=description, inputSchema=input_schema)


TOOLS: list[MCPTool] = [
    _tool(
        name="list_projects",
        description="List all Claude Code projects with session counts",
        input_schema=_schema({}),
    ),
    _tool(
        name="list_sessions",
        description="List all sessions in a project",
        input_schema=_schema({"project_name": _PROJECT}, ["project_name"]),
    ),
    _tool(
        name="read_session",
        description="Return every record of a session",
        input_schema=_schema({"project_name": _PROJECT, "session_id": _SESSION}, ["project_name", "session_id"]),
    ),
    _tool(
        name="rename_session",
        description="Rename a session by adding a title prefix to the first message",
        input_schema=_schema(
            {
                "project_name": _PROJECT,
                "session_id": _SESSION,
                "new_title": {"type": "string", "description": "New title to add as prefix"},
            },
            ["project_name", "session_id", "new_title"],
        ),
    ),
    _tool(
        name="delete_session",
        description="Delete a session (moves it to a .bak folder for recovery)",
        input_schema=_schema({"project_name": _PROJECT, "session_id": _SESSION}, ["project_name", "session_id"]),
    ),
    _tool(
        name="delete_message",
        description="Delete a message from a session and repair the parentUuid chain",
        input_schema=_schema(
            {
                "project_name": _PROJECT,
                "session_id": _SESSION,
                "message_uuid": {"type": "string", "description": "uuid (or messageId) of the message"},
            },
            ["project_name", "session_id", "message_uuid"],
        ),
    ),
    _tool(
        name="split_session",
        description="Move messages from the given one onward into a new session",
        input_schema=_schema(
            {
                "project_name": _PROJECT,
                "session_id": _SESSION,
                "message_uuid": {"type": "string", "description": "uuid of the first message to move"},
            },
            ["project_name", "session_id", "message_uuid"],
        ),
    ),
    _tool(
        name="preview_cleanup",
        description="Preview sessions and files that clear_sessions would act on",
        input_schema=_schema({"project_name": _OPTIONAL_PROJECT}),
    ),
    _tool(
        name="clear_sessions",
        description="Delete empty sessions, scrub invalid API key messages and retire orphans",
        input_schema=_schema({
            "project_name": _OPTIONAL_PROJECT,
            "clear_empty": {"type": "boolean", "default": True, "description": "Clear empty sessions"},
            "clear_invalid": {"type": "boolean", "default": True, "description": "Scrub invalid API key messages"},
            "clear_orphan_agents": {
                "type": "boolean",
                "default": True,
                "description": "Retire agent logs whose session no longer exists",
            },
            "clear_orphan_todos": {
                "type": "boolean",
                "default": False,
                "description": "Retire todo files whose session no longer exists",
            },
        }),
    ),
    _tool(
        name="get_session_files",
        description="List files changed in a session (from file-history-snapshot and tool_use)",
        input_schema=_schema({"project_name": _PROJECT, "session_id": _SESSION}, ["project_name", "session_id"]),
    ),
]


def _as_json(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [_as_json(v) for v in value]
    return value


def _rename_session(args: dict[str, Any]) -> dict[str, Any]:
    rename_session(args["project_name"], args["session_id"], args["new_title"])
    return {}


def _delete_message(args: dict[str, Any]) -> dict[str, Any]:
    delete_message(args["project_name"], args["session_id"], args["message_uuid"])
    return {}


def _clear_sessions(args: dict[str, Any]) -> dict[str, Any]:
    result = clear_sessions(
        project=args.get("project_name"),
        clear_empty=args.get("clear_empty", True),
        clear_invalid=args.get("clear_invalid", True),
        clear_orphan_agents=args.get("clear_orphan_agents", True),
        clear_orphan_todos=args.get("clear_orphan_todos", False),
    )
    return _as_json(result)


_HANDLERS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "list_projects": lambda a: {"projects": _as_json(list_projects())},
    "list_sessions": lambda a: {"sessions": _as_json(list_sessions(a["project_name"]))},
    "read_session": lambda a: {"records": read_session(a["project_name"], a["session_id"])},
    "rename_session": _rename_session,
    "delete_session": lambda a: _as_json(delete_session(a["project_name"], a["session_id"])),
    "delete_message": _delete_message,
    "split_session": lambda a: _as_json(split_session(a["project_name"], a["session_id"], a["message_uuid"])),
    "preview_cleanup": lambda a: _as_json(preview_cleanup(a.get("project_name"))),
    "clear_sessions": _clear_sessions,
    "get_session_files": lambda a: _as_json(get_session_files(a["project_name"], a["session_id"])),
}

_REQUIRED_ARGS = {name: schema["required"] for name, schema in _INPUT_SCHEMAS.items()}


def dispatch_tool(name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """Run a tool and wrap its result in the success envelope."""
    if name not in _HANDLERS:
        raise ValueError(f"Unknown tool: {name}")

    args = arguments or {}
    missing = [arg for arg in _REQUIRED_ARGS[name] if arg not in args]
    if missing:
        return {"success": False, "error": f"Missing argument(s): {', '.join(missing)}"}

    try:
        return {"success": True, **_HANDLERS[name](args)}
    except SessionError as e:
        logger.warning("Tool %s failed: %s", name, e)
        return {"success": False, "error": str(e)}


def create_mcp_server(server_name: str = "claude-sessions") -> Server:
    """Create an MCP Server that exposes the session tools."""
    server = Server(server_name)

    @server.list_tools()
    async def list_tools() -> list[MCPTool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        result = dispatch_tool(name, arguments)
        return [TextContent(type="text", text=json.dumps(result, indent=2, ensure_ascii=False))]

    return server


async def run_stdio_server(server: Server) -> None:
    """Run MCP server over stdio transport."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
