"""Duplex message channel contract shared by all transport adapters.

A transport moves JSON-RPC protocol messages between the client and one tool
server. The three adapters (remote stream, external process, in-process)
implement this contract independently; the protocol client only ever talks to
a transport through it.
"""

from typing import Callable, Protocol

from mcp.types import JSONRPCMessage

MessageCallback = Callable[[JSONRPCMessage], None]
ErrorCallback = Callable[[Exception], None]
CloseCallback = Callable[[], None]


class Transport(Protocol):
    """Duplex channel for protocol messages.

    Callbacks are plain attributes assigned by the owner before ``start()``.
    They only fire between a successful ``start()`` and ``close()``.
    """

    onmessage: MessageCallback | None
    onerror: ErrorCallback | None
    onclose: CloseCallback | None

    async def start(self) -> None:
        """Establish the channel.

        Raises on failure, leaving the transport in a not-started state with
        any partially acquired resources released.
        """
        ...

    async def send(self, message: JSONRPCMessage) -> None:
        """Deliver one protocol message.

        Raises:
            TransportClosedError: If the transport is not started or already closed.
        """
        ...

    async def close(self) -> None:
        """Release the channel. Idempotent and safe after a failed start."""
        ...
