"""Unit tests for the remote event stream transport with the SDK client patched out."""

import asyncio
import math
from contextlib import asynccontextmanager
from unittest.mock import patch

import anyio
import pytest
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage, JSONRPCRequest

from toolchat_server.mcp_client import (
    RemoteStreamTransport,
    TransportClosedError,
    TransportError,
)

URL = "http://localhost:9000/sse"


class FakeEventStream:
    """Stands in for ``sse_client``: memory streams instead of HTTP."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple] = []
        self.to_client, self._client_reads = anyio.create_memory_object_stream(math.inf)
        self._client_writes, self.from_client = anyio.create_memory_object_stream(math.inf)

    @asynccontextmanager
    async def __call__(self, url, headers=None, timeout=5.0):
        self.calls.append((url, headers, timeout))
        if self.error is not None:
            raise self.error
        yield self._client_reads, self._client_writes


def _ping(request_id: int = 1) -> JSONRPCMessage:
    return JSONRPCMessage(JSONRPCRequest(jsonrpc="2.0", id=request_id, method="ping"))


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def stream():
    fake = FakeEventStream()
    with patch("toolchat_server.mcp_client.remote.sse_client", fake):
        yield fake


@pytest.fixture
def transport() -> RemoteStreamTransport:
    return RemoteStreamTransport(URL, headers={"Authorization": "Bearer t"}, timeout_s=1.0)


@pytest.mark.asyncio
async def test_send_and_receive(stream, transport):
    messages = []
    transport.onmessage = messages.append

    await transport.start()
    await transport.send(_ping(3))
    stream.to_client.send_nowait(SessionMessage(_ping(4)))
    await _wait_for(lambda: messages)

    assert stream.calls == [(URL, {"Authorization": "Bearer t"}, 1.0)]
    assert stream.from_client.receive_nowait().message == _ping(3)
    assert messages == [_ping(4)]
    await transport.close()


@pytest.mark.asyncio
async def test_receive_errors_are_reported_without_closing(stream, transport):
    errors = []
    closes = []
    transport.onerror = errors.append
    transport.onclose = lambda: closes.append(True)

    await transport.start()
    stream.to_client.send_nowait(ValueError("bad event"))
    await _wait_for(lambda: errors)

    assert isinstance(errors[0], TransportError)
    assert "bad event" in str(errors[0])
    assert closes == []
    await transport.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_fires_onclose_once(stream, transport):
    closes = []
    transport.onclose = lambda: closes.append(True)
    await transport.start()

    await transport.close()
    await transport.close()

    assert closes == [True]
    with pytest.raises(TransportClosedError):
        await transport.send(_ping())


@pytest.mark.asyncio
async def test_remote_end_of_stream_closes_once(stream, transport):
    closes = []
    transport.onclose = lambda: closes.append(True)
    await transport.start()

    stream.to_client.close()
    await _wait_for(lambda: closes)
    await transport.close()

    assert closes == [True]
    with pytest.raises(TransportClosedError):
        await transport.send(_ping())


@pytest.mark.asyncio
async def test_start_failure_reports_error_and_leaves_transport_unstarted(transport):
    errors = []
    closes = []
    transport.onerror = errors.append
    transport.onclose = lambda: closes.append(True)

    failing = FakeEventStream(error=ConnectionError("connection refused"))
    with patch("toolchat_server.mcp_client.remote.sse_client", failing):
        with pytest.raises(TransportError) as exc_info:
            await transport.start()

    assert exc_info.value.details == {"url": URL}
    assert len(errors) == 1
    with pytest.raises(TransportClosedError):
        await transport.send(_ping())

    await transport.close()
    await transport.close()
    assert closes == []


@pytest.mark.asyncio
async def test_send_before_start_and_double_start(stream, transport):
    with pytest.raises(TransportClosedError):
        await transport.send(_ping())

    await transport.start()
    with pytest.raises(TransportError):
        await transport.start()
    await transport.close()
