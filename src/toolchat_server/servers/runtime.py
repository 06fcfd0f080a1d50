"""Transient runtime state of configured tool servers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp.types import Prompt, Resource, Tool


class ServerPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class DiscoveredCapabilities:
    """Tools, resources and prompts listed by a server right after connecting."""

    tools: list[Tool] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    prompts: list[Prompt] = field(default_factory=list)

    def find_tool(self, name: str) -> Tool | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


@dataclass(frozen=True)
class ServerRuntimeState:
    """Runtime record for one configured server id.

    ``client`` and ``transport`` are set only while ``connecting`` or
    ``connected``; ``capabilities`` only while ``connected``. Records are
    replaced as a whole, never mutated.
    """

    config_id: str
    phase: ServerPhase = ServerPhase.DISCONNECTED
    client: Any = None
    transport: Any = None
    capabilities: DiscoveredCapabilities | None = None
    error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.phase == ServerPhase.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self.phase == ServerPhase.CONNECTING
