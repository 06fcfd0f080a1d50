"""Transport for tool servers reachable over HTTP with a server-sent event stream."""

import asyncio
import logging
from typing import Any

import anyio
from mcp.client.sse import sse_client
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from toolchat_server.mcp_client.errors import TransportClosedError, TransportError
from toolchat_server.mcp_client.transport import (
    CloseCallback,
    ErrorCallback,
    MessageCallback,
)

logger = logging.getLogger(__name__)


class RemoteStreamTransport:
    """Event stream for inbound messages plus HTTP POST for outbound ones.

    The SDK's ``sse_client`` context runs inside an owner task for the whole
    lifetime of the transport.

    Attributes:
        url: Event stream endpoint of the server
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = 5.0,
    ):
        self.url = url
        self.headers = headers
        self.timeout_s = timeout_s

        self.onmessage: MessageCallback | None = None
        self.onerror: ErrorCallback | None = None
        self.onclose: CloseCallback | None = None

        self._write_stream: Any = None
        self._owner: asyncio.Task | None = None
        self._closing = asyncio.Event()
        self._started = False
        self._closed = False

    async def start(self) -> None:
        if self._owner is not None:
            raise TransportError("Transport already started.")

        logger.info(f"Connecting to remote server at {self.url}")
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._owner = asyncio.create_task(self._run(ready))

        try:
            await ready
        except Exception as e:
            logger.error(f"Failed to connect to {self.url}: {e}")
            self._owner = None
            error = TransportError(
                f"Failed to connect to {self.url}: {e}", details={"url": self.url}
            )
            self._emit_error(error)
            raise error from e

        self._started = True

    async def _run(self, ready: asyncio.Future) -> None:
        try:
            async with sse_client(
                self.url, headers=self.headers, timeout=self.timeout_s
            ) as (read_stream, write_stream):
                self._write_stream = write_stream
                ready.set_result(None)

                reader = asyncio.create_task(self._pump_incoming(read_stream))
                try:
                    await self._closing.wait()
                finally:
                    reader.cancel()
                    try:
                        await reader
                    except asyncio.CancelledError:
                        pass
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
                return
            logger.error(f"Remote stream {self.url} failed: {e}")
            self._emit_error(TransportError(f"Remote stream failed: {e}"))
        finally:
            self._write_stream = None
            if self._started:
                self._mark_closed()

    async def _pump_incoming(self, read_stream: Any) -> None:
        async for item in read_stream:
            if isinstance(item, Exception):
                self._emit_error(TransportError(f"Receive failed: {item}"))
                continue
            logger.debug(f"Received message from {self.url}")
            if self.onmessage is not None:
                self.onmessage(item.message)

        logger.info(f"Remote stream {self.url} ended")
        self._closing.set()

    async def send(self, message: JSONRPCMessage) -> None:
        if self._write_stream is None or self._closed:
            raise TransportClosedError()

        try:
            await self._write_stream.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportClosedError() from e

    async def close(self) -> None:
        if self._closing.is_set() and self._owner is None:
            return
        self._closing.set()

        owner, self._owner = self._owner, None
        if owner is not None:
            done, _ = await asyncio.wait({owner}, timeout=self.timeout_s)
            if not done:
                logger.warning(f"Remote stream {self.url} did not close in time")
                owner.cancel()
                try:
                    await owner
                except asyncio.CancelledError:
                    pass

        if self._started:
            self._mark_closed()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"Transport closed for {self.url}")
        if self.onclose is not None:
            self.onclose()

    def _emit_error(self, error: Exception) -> None:
        if self.onerror is not None:
            self.onerror(error)
