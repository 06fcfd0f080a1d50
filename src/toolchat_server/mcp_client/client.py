"""Protocol client handle bound to a single transport.

``McpClient`` wraps the MCP SDK ``ClientSession``. The session reads and writes
anyio memory streams; this module bridges those streams to the callback-based
``Transport`` contract so every adapter kind shares one client implementation.
"""

import asyncio
import logging
import math
from datetime import timedelta
from typing import Any

import anyio
from mcp import ClientSession
from mcp.shared.message import SessionMessage
from mcp.types import CallToolResult, Implementation, Prompt, Resource, Tool

from toolchat_server.mcp_client.errors import McpClientError
from toolchat_server.mcp_client.transport import Transport

logger = logging.getLogger(__name__)


class McpClient:
    """Client handle for one tool server connection.

    The ``ClientSession`` is entered and exited inside a dedicated runner task,
    since anyio cancel scopes must be left from the task that entered them.
    Requests may be issued from any task once ``connect()`` returned.

    Attributes:
        name: Client name reported during the handshake
        version: Client version reported during the handshake
        server_info: Implementation info reported by the server, once connected
    """

    def __init__(self, name: str, version: str, request_timeout_s: float = 30.0):
        self.name = name
        self.version = version
        self.request_timeout_s = request_timeout_s
        self.server_info: Implementation | None = None

        self._transport: Transport | None = None
        self._session: ClientSession | None = None
        self._runner: asyncio.Task | None = None
        self._closing: asyncio.Event | None = None
        self._ready: asyncio.Future[None] | None = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._closed

    async def connect(self, transport: Transport) -> None:
        """Start ``transport`` and perform the protocol handshake over it.

        Args:
            transport: A not yet started transport

        Raises:
            McpClientError: If the client was already used or the handshake fails
            TransportError: If the transport fails to start
        """
        if self._transport is not None or self._closed:
            raise McpClientError("client_error", "Client already connected or closed.")

        read_send, read_recv = anyio.create_memory_object_stream(math.inf)
        write_send, write_recv = anyio.create_memory_object_stream(math.inf)

        def on_message(message: Any) -> None:
            try:
                read_send.send_nowait(SessionMessage(message))
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                logger.debug("Dropped message received after session shutdown")

        def on_error(error: Exception) -> None:
            logger.warning(f"Transport error: {error}")
            try:
                read_send.send_nowait(error)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                pass

        def on_close() -> None:
            logger.debug("Transport reported close")
            read_send.close()

        transport.onmessage = on_message
        transport.onerror = on_error
        transport.onclose = on_close
        self._transport = transport

        await transport.start()

        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._ready = ready
        self._closing = asyncio.Event()
        self._runner = asyncio.create_task(
            self._run(read_recv, write_send, write_recv, ready)
        )

        try:
            await ready
        except Exception as e:
            logger.error(f"Handshake failed: {e}")
            await self._stop_runner()
            raise McpClientError("handshake_error", f"Handshake failed: {e}") from e

        logger.info(
            f"Connected to server {self.server_info.name if self.server_info else 'unknown'}"
        )

    async def _run(
        self,
        read_recv: Any,
        write_send: Any,
        write_recv: Any,
        ready: asyncio.Future,
    ) -> None:
        if self._transport is None or self._closing is None:
            raise McpClientError("client_error", "Client runner started before connect().")
        closing = self._closing
        pump = asyncio.create_task(self._pump_outgoing(write_recv, self._transport))

        try:
            async with ClientSession(
                read_recv,
                write_send,
                read_timeout_seconds=timedelta(seconds=self.request_timeout_s),
                client_info=Implementation(name=self.name, version=self.version),
            ) as session:
                result = await session.initialize()
                self.server_info = result.serverInfo
                self._session = session
                ready.set_result(None)

                await closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"Client session ended with error: {e}", exc_info=True)
        finally:
            # A cancelled handshake must still wake up connect()
            if not ready.done():
                ready.set_exception(
                    McpClientError("handshake_error", "Client closed during handshake")
                )
            self._session = None
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

    async def _pump_outgoing(self, write_recv: Any, transport: Transport) -> None:
        async with write_recv:
            async for session_message in write_recv:
                try:
                    await transport.send(session_message.message)
                except Exception as e:
                    logger.warning(f"Failed to send message over transport: {e}")

    def _require_session(self) -> ClientSession:
        if self._session is None or self._closed:
            raise McpClientError("not_connected", "Client is not connected.")
        return self._session

    async def list_tools(self) -> list[Tool]:
        result = await self._require_session().list_tools()
        return list(result.tools)

    async def list_resources(self) -> list[Resource]:
        result = await self._require_session().list_resources()
        return list(result.resources)

    async def list_prompts(self) -> list[Prompt]:
        result = await self._require_session().list_prompts()
        return list(result.prompts)

    async def call_tool(self, name: str, arguments: Any = None) -> CallToolResult:
        """Invoke a tool on the connected server.

        Args:
            name: Tool name as discovered on the server
            arguments: Tool arguments, passed through unvalidated

        Returns:
            CallToolResult: The raw protocol result
        """
        session = self._require_session()
        logger.info(f"Calling tool {name}")
        return await session.call_tool(name, arguments)

    async def close(self, timeout_s: float = 5.0) -> None:
        """Shut down the session and close the transport. Idempotent."""
        if self._closed:
            return
        self._closed = True

        await self._stop_runner(timeout_s)

        if self._transport is not None:
            await self._transport.close()
        logger.debug("Client closed")

    async def _stop_runner(self, timeout_s: float = 5.0) -> None:
        if self._closing is not None:
            self._closing.set()
        if self._runner is None or self._runner.done():
            return

        if self._ready is not None and not self._ready.done():
            # Nothing observes the closing event until the handshake finished
            logger.debug("Client closed during handshake, cancelling session")
            self._runner.cancel()
        else:
            done, _ = await asyncio.wait({self._runner}, timeout=timeout_s)
            if done:
                return
            logger.warning("Client session did not stop in time, cancelling it")
            self._runner.cancel()

        try:
            await self._runner
        except asyncio.CancelledError:
            pass
