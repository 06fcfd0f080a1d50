"""Transport for tool servers living in the same process.

Messages are handed over as objects through anyio memory streams, the same way
the SDK's in-memory test transport links a client to a server.
"""

import asyncio
import logging
import math
from collections.abc import Mapping
from typing import Any

import anyio
from mcp.server.fastmcp import FastMCP
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from toolchat_server.mcp_client.errors import TransportClosedError, TransportError
from toolchat_server.mcp_client.transport import (
    CloseCallback,
    ErrorCallback,
    MessageCallback,
)

logger = logging.getLogger(__name__)


class InProcessTransport:
    """Runs a registered ``FastMCP`` server in a background task.

    Args:
        server_id: Id of the built-in server in ``registry``
        registry: Mapping of server ids to server objects

    Raises:
        TransportError: If ``server_id`` is not registered
    """

    def __init__(self, server_id: str, registry: Mapping[str, FastMCP]):
        server = registry.get(server_id)
        if server is None:
            raise TransportError(
                f"In-process server {server_id} is not registered",
                details={"server_id": server_id},
            )

        self.server_id = server_id
        self.server = server

        self.onmessage: MessageCallback | None = None
        self.onerror: ErrorCallback | None = None
        self.onclose: CloseCallback | None = None

        self._to_server: Any = None
        self._server_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._closed = False

    async def start(self) -> None:
        if self._server_task is not None:
            raise TransportError("Transport already started.")
        if self._closed:
            raise TransportClosedError("Transport has been closed.")

        to_server_send, to_server_recv = anyio.create_memory_object_stream(math.inf)
        to_client_send, to_client_recv = anyio.create_memory_object_stream(math.inf)

        self._to_server = to_server_send
        self._server_task = asyncio.create_task(
            self._serve(to_server_recv, to_client_send)
        )
        self._reader_task = asyncio.create_task(self._pump_incoming(to_client_recv))
        logger.info(f"Started in-process server {self.server_id}")

    async def _serve(self, read_stream: Any, write_stream: Any) -> None:
        lowlevel = self.server._mcp_server
        try:
            await lowlevel.run(
                read_stream,
                write_stream,
                lowlevel.create_initialization_options(),
            )
        except Exception as e:
            logger.error(f"In-process server {self.server_id} crashed: {e}", exc_info=True)
            self._emit_error(TransportError(f"In-process server failed: {e}"))
        finally:
            await write_stream.aclose()

    async def _pump_incoming(self, read_stream: Any) -> None:
        async with read_stream:
            async for item in read_stream:
                if isinstance(item, Exception):
                    self._emit_error(TransportError(f"Server error: {item}"))
                    continue
                if self.onmessage is not None:
                    self.onmessage(item.message)
        self._mark_closed()

    async def send(self, message: JSONRPCMessage) -> None:
        if self._to_server is None or self._closed:
            raise TransportClosedError()

        try:
            await self._to_server.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportClosedError() from e

    async def close(self) -> None:
        if self._to_server is not None:
            await self._to_server.aclose()
            self._to_server = None

        for task in (self._server_task, self._reader_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._mark_closed()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"In-process server {self.server_id} stopped")
        if self._server_task is not None and self.onclose is not None:
            self.onclose()

    def _emit_error(self, error: Exception) -> None:
        if self.onerror is not None:
            self.onerror(error)
