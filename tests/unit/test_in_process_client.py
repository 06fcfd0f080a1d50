"""Protocol client against the built-in servers over the in-process transport."""

import json

import pytest
import pytest_asyncio

from toolchat_server.mcp_client import (
    InProcessTransport,
    McpClient,
    McpClientError,
    TransportClosedError,
    TransportError,
)
from toolchat_server.servers.builtin import (
    EXPR_EVALUATOR_ID,
    TIME_SERVER_ID,
    create_builtin_registry,
)


@pytest.fixture
def registry():
    return create_builtin_registry()


@pytest_asyncio.fixture
async def expr_client(registry):
    client = McpClient("toolchat-test", "0.0.1", request_timeout_s=5)
    await client.connect(InProcessTransport(EXPR_EVALUATOR_ID, registry))
    yield client
    await client.close()


@pytest.mark.asyncio
async def test_handshake_and_discovery(expr_client):
    assert expr_client.connected
    assert expr_client.server_info.name == "Toolchat Expression Evaluator"

    tools = await expr_client.list_tools()

    assert [tool.name for tool in tools] == ["expr_evaluator"]
    assert tools[0].inputSchema["required"] == ["expression"]


@pytest.mark.asyncio
async def test_call_tool(expr_client):
    result = await expr_client.call_tool("expr_evaluator", {"expression": "6 * 7"})

    assert not result.isError
    assert result.content[0].text == "42"


@pytest.mark.asyncio
async def test_tool_failure_is_an_error_result(expr_client):
    result = await expr_client.call_tool("expr_evaluator", {"expression": "open('x')"})

    assert result.isError
    assert "Evaluation failed" in result.content[0].text


@pytest.mark.asyncio
async def test_time_server_tools(registry):
    client = McpClient("toolchat-test", "0.0.1")
    await client.connect(InProcessTransport(TIME_SERVER_ID, registry))
    try:
        names = sorted(tool.name for tool in await client.list_tools())
        result = await client.call_tool("get_current_time", {"timezone": "Asia/Tokyo"})
    finally:
        await client.close()

    assert names == ["convert_time", "get_current_time"]
    payload = json.loads(result.content[0].text)
    assert payload["timezone"] == "Asia/Tokyo"
    assert payload["datetime"].endswith("+09:00")


@pytest.mark.asyncio
async def test_close_fires_onclose_once_and_blocks_requests(registry):
    client = McpClient("toolchat-test", "0.0.1")
    transport = InProcessTransport(EXPR_EVALUATOR_ID, registry)
    await client.connect(transport)
    closes = []
    previous = transport.onclose

    def on_close():
        closes.append(True)
        previous()

    transport.onclose = on_close

    await client.close()
    await client.close()

    assert closes == [True]
    assert not client.connected
    with pytest.raises(McpClientError):
        await client.list_tools()
    with pytest.raises(TransportClosedError):
        await transport.send(None)


def test_unknown_builtin_is_rejected(registry):
    with pytest.raises(TransportError):
        InProcessTransport("builtin::missing", registry)


@pytest.mark.asyncio
async def test_client_cannot_be_reused(registry):
    client = McpClient("toolchat-test", "0.0.1")
    await client.connect(InProcessTransport(EXPR_EVALUATOR_ID, registry))
    await client.close()

    with pytest.raises(McpClientError):
        await client.connect(InProcessTransport(EXPR_EVALUATOR_ID, registry))
