"""MCP client layer: transports, host process bridge and protocol client.

This package provides the three transport adapters (remote stream, external
process, in-process) and the protocol client handle built on top of them.
"""

from toolchat_server.mcp_client.client import McpClient
from toolchat_server.mcp_client.errors import (
    McpClientError,
    McpConnectionError,
    TransportClosedError,
    TransportError,
)
from toolchat_server.mcp_client.host import (
    AsyncioProcessHost,
    ProcessEvent,
    ProcessHost,
)
from toolchat_server.mcp_client.in_process import InProcessTransport
from toolchat_server.mcp_client.process import ExternalProcessTransport
from toolchat_server.mcp_client.remote import RemoteStreamTransport
from toolchat_server.mcp_client.transport import Transport

__all__ = [
    # Client
    "McpClient",
    # Transports
    "Transport",
    "RemoteStreamTransport",
    "ExternalProcessTransport",
    "InProcessTransport",
    # Host bridge
    "ProcessHost",
    "ProcessEvent",
    "AsyncioProcessHost",
    # Errors
    "McpClientError",
    "McpConnectionError",
    "TransportError",
    "TransportClosedError",
]
