"""Exceptions raised by the MCP client layer."""


class McpClientError(RuntimeError):
    """Base exception for MCP client failures.

    Transport and protocol failures are normalized into a small set of stable
    error types so callers can turn them into runtime state and notifications.
    """

    def __init__(
        self,
        error_type: str,
        message: str,
        *,
        details: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details or {}


class TransportError(McpClientError):
    """A send or receive failure on a transport channel."""

    def __init__(self, message: str, *, details: dict[str, str] | None = None):
        super().__init__("transport_error", message, details=details)


class TransportClosedError(TransportError):
    """Raised when sending on a transport that is not started or already closed."""

    def __init__(self, message: str = "Transport not started or already closed."):
        super().__init__(message)


class McpConnectionError(McpClientError):
    """The protocol handshake with a tool server failed."""

    def __init__(self, server_id: str, message: str):
        super().__init__(
            "connection_error",
            message,
            details={"server_id": server_id},
        )
