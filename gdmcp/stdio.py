from __future__ import annotations

import json
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from auth.models import Grant

from .constants import LOGGER, SERVICE_NAME
from .dispatch import Dispatcher


class ToolCallError(RuntimeError):
    pass


def tool_definitions(dispatcher: Dispatcher) -> list[Tool]:
    return [
        Tool(name=item["name"], description=item["description"], inputSchema=item["inputSchema"])
        for item in dispatcher.list_tools()
    ]


async def call_tool_content(
    dispatcher: Dispatcher,
    grant: Grant | None,
    name: str,
    arguments: dict[str, Any] | None,
) -> list[TextContent]:
    result = await dispatcher.dispatch(name, arguments, grant)
    if not result.ok:
        # the SDK reports a raised exception as an isError tool result
        raise ToolCallError(f"Error: {result.error}")
    return [TextContent(type="text", text=json.dumps(result.payload, indent=2))]


def create_stdio_server(dispatcher: Dispatcher, grant: Grant | None) -> Server:
    """Single-tenant MCP server: every call is bound to the one process-wide Grant."""
    server = Server(SERVICE_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tool_definitions(dispatcher)

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        return await call_tool_content(dispatcher, grant, name, arguments)

    return server


async def run_stdio_server(server: Server) -> None:
    LOGGER.info("Google Drive MCP server running on stdio")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )
