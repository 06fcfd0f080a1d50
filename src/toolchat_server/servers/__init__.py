"""Tool server configuration, connection management and capability registry."""

from toolchat_server.servers.config import (
    ExternalProcessServerConfig,
    InProcessServerConfig,
    RemoteStreamServerConfig,
    ServerConfig,
    ServerConfigError,
)
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.servers.registry import build_tool_prompt
from toolchat_server.servers.runtime import (
    DiscoveredCapabilities,
    ServerPhase,
    ServerRuntimeState,
)
from toolchat_server.servers.store import ServerConfigStore

__all__ = [
    "ConnectionManager",
    "ServerConfigStore",
    "build_tool_prompt",
    "ServerConfig",
    "RemoteStreamServerConfig",
    "ExternalProcessServerConfig",
    "InProcessServerConfig",
    "ServerConfigError",
    "ServerRuntimeState",
    "ServerPhase",
    "DiscoveredCapabilities",
]
