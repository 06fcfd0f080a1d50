"""Transport for tool servers running as external processes.

The adapter delegates all process I/O to a ``ProcessHost``. Inbound messages
arrive as JSON text lines on the host's ``message`` event; outbound messages are
serialized and written through ``ProcessHost.send``.
"""

import logging

from mcp.types import JSONRPCMessage
from pydantic import ValidationError

from toolchat_server.mcp_client.errors import TransportClosedError, TransportError
from toolchat_server.mcp_client.host import ProcessEvent, ProcessHost, Unlisten
from toolchat_server.mcp_client.transport import (
    CloseCallback,
    ErrorCallback,
    MessageCallback,
)

logger = logging.getLogger(__name__)


class ExternalProcessTransport:
    """Transport bridging protocol messages to a host-managed process.

    Attributes:
        command: Executable to start
        args: Arguments passed to the executable
        process_id: Host handle, set once ``start()`` succeeded
    """

    def __init__(self, host: ProcessHost, command: str, args: list[str] | None = None):
        self.host = host
        self.command = command
        self.args = list(args or [])
        self.process_id: str | None = None

        self.onmessage: MessageCallback | None = None
        self.onerror: ErrorCallback | None = None
        self.onclose: CloseCallback | None = None

        self._unlisteners: list[Unlisten] = []
        self._closed = False
        self._close_requested = False

    async def start(self) -> None:
        if self.process_id is not None:
            raise TransportError("Transport already started.")
        if self._closed or self._close_requested:
            raise TransportClosedError("Transport has been closed.")

        logger.info(f"Requesting host to start process: {self.command} {' '.join(self.args)}")

        try:
            handle = await self.host.start(self.command, self.args)
        except Exception as e:
            logger.error(f"Failed to start external process {self.command}: {e}")
            error = TransportError(
                f"Failed to start process: {e}", details={"command": self.command}
            )
            self._emit_error(error)
            raise error from e

        try:
            self._subscribe(handle)
        except Exception as e:
            logger.error(f"Failed to listen to events of process {handle}: {e}")
            self._release_listeners()
            try:
                await self.host.stop(handle)
            except Exception as stop_error:
                logger.error(f"Failed to stop process {handle} after setup failure: {stop_error}")
            error = TransportError(f"Failed to listen to host events: {e}")
            self._emit_error(error)
            raise error from e

        self.process_id = handle
        logger.info(f"Host started process with ID: {handle}")

    def _subscribe(self, handle: str) -> None:
        self._unlisteners.append(
            self.host.listen(handle, ProcessEvent.MESSAGE, self._on_host_message)
        )
        self._unlisteners.append(
            self.host.listen(handle, ProcessEvent.ERROR, self._on_host_error)
        )
        self._unlisteners.append(
            self.host.listen(handle, ProcessEvent.DIAGNOSTIC, self._on_host_diagnostic)
        )
        self._unlisteners.append(
            self.host.listen(handle, ProcessEvent.CLOSED, self._on_host_closed)
        )

    def _on_host_message(self, payload: str) -> None:
        try:
            message = JSONRPCMessage.model_validate_json(payload)
        except ValidationError:
            logger.error(f"Failed to parse message from process {self.process_id}: {payload}")
            self._emit_error(TransportError(f"Received non-JSON message: {payload}"))
            return

        if self.onmessage is not None:
            self.onmessage(message)

    def _on_host_error(self, payload: str) -> None:
        logger.error(f"Received error event from process {self.process_id}: {payload}")
        self._emit_error(TransportError(f"Process error: {payload}"))

    def _on_host_diagnostic(self, payload: str) -> None:
        logger.warning(f"[Process {self.process_id} stderr]: {payload}")

    def _on_host_closed(self, payload: str) -> None:
        logger.info(f"Process {self.process_id} closed: {payload}")
        self._release_listeners()
        self._mark_closed()

    async def send(self, message: JSONRPCMessage) -> None:
        if self.process_id is None or self._closed:
            raise TransportClosedError()

        serialized = message.model_dump_json(by_alias=True, exclude_none=True)
        logger.debug(f"Sending message to process {self.process_id}: {serialized}")

        try:
            await self.host.send(self.process_id, serialized)
        except Exception as e:
            logger.error(f"Failed to send message to process {self.process_id}: {e}")
            error = TransportError(f"Failed to send message: {e}")
            self._emit_error(error)
            raise error from e

    async def close(self) -> None:
        if self._close_requested:
            return
        self._close_requested = True

        handle = self.process_id
        self._release_listeners()

        if handle is not None:
            try:
                await self.host.stop(handle)
                logger.info(f"Stop command sent for process {handle}")
            except Exception as e:
                # The host may already have cleaned up the process
                logger.error(f"Failed to stop process {handle}: {e}")

        self._mark_closed()

    def _release_listeners(self) -> None:
        unlisteners, self._unlisteners = self._unlisteners, []
        for unlisten in unlisteners:
            try:
                unlisten()
            except Exception as e:
                logger.warning(f"Failed to remove host listener: {e}")

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"Transport closed for process {self.process_id}")
        if self.process_id is not None and self.onclose is not None:
            self.onclose()

    def _emit_error(self, error: Exception) -> None:
        if self.onerror is not None:
            self.onerror(error)
