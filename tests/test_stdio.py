import json

import pytest
from mcp.types import CallToolRequest, ListToolsRequest

from gdmcp.catalog import build_registry
from gdmcp.dispatch import Dispatcher
from gdmcp.stdio import ToolCallError, call_tool_content, create_stdio_server, tool_definitions


def test_tool_definitions_cover_catalog(recording_factory) -> None:
    tools = tool_definitions(Dispatcher(build_registry(), recording_factory))

    assert len(tools) == 26
    assert tools[0].name == "docs_create_document"
    assert tools[0].inputSchema["required"] == ["title"]


@pytest.mark.asyncio
async def test_call_tool_returns_json_text(grant, recording_factory) -> None:
    dispatcher = Dispatcher(build_registry(), recording_factory)

    content = await call_tool_content(dispatcher, grant, "docs_create_document", {"title": "Plan"})

    assert content[0].type == "text"
    assert json.loads(content[0].text)["documentId"] == "doc-1"


@pytest.mark.asyncio
async def test_call_tool_error_envelope_raises(grant, recording_factory) -> None:
    dispatcher = Dispatcher(build_registry(), recording_factory)

    with pytest.raises(ToolCallError, match="Error: Unknown tool: nope"):
        await call_tool_content(dispatcher, grant, "nope", {})


@pytest.mark.asyncio
async def test_call_tool_without_tokens(recording_factory) -> None:
    dispatcher = Dispatcher(build_registry(), recording_factory)

    with pytest.raises(ToolCallError, match="No OAuth credentials found"):
        await call_tool_content(dispatcher, None, "docs_create_document", {"title": "Plan"})


def test_stdio_server_registers_tool_handlers(grant, recording_factory) -> None:
    server = create_stdio_server(Dispatcher(build_registry(), recording_factory), grant)

    assert ListToolsRequest in server.request_handlers
    assert CallToolRequest in server.request_handlers
