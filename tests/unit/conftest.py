"""Fakes and fixtures for unit tests.

The fakes stand in for the process host, transports and protocol clients so
the connection manager, workflow and chat service can be tested without
spawning processes or speaking the wire protocol.
"""

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Any

import pytest
from mcp.types import CallToolResult, TextContent, Tool

from toolchat_server.mcp_client.host import ProcessEvent
from toolchat_server.servers.config import ServerConfig
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.servers.store import ServerConfigStore
from toolchat_server.services.notifications import NotificationHub
from toolchat_server.sessions import SessionManager


class FakeProcessHost:
    """In-memory ProcessHost recording every call."""

    def __init__(self) -> None:
        self.started: list[tuple[str, list[str]]] = []
        self.sent: list[tuple[str, str]] = []
        self.stopped: list[str] = []
        # Order of stop and unlisten calls, shared with callers that append to it
        self.calls: list[str] = []
        self.listeners: dict[ProcessEvent, list] = defaultdict(list)
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None

    async def start(self, command: str, args: list[str]) -> str:
        if self.start_error is not None:
            raise self.start_error
        self.started.append((command, list(args)))
        return f"proc-{len(self.started)}"

    async def send(self, handle: str, message: str) -> None:
        self.sent.append((handle, message))

    async def stop(self, handle: str) -> None:
        self.stopped.append(handle)
        self.calls.append("stop")
        if self.stop_error is not None:
            raise self.stop_error

    def listen(self, handle: str, event: ProcessEvent, callback):
        self.listeners[event].append(callback)

        def unlisten() -> None:
            self.calls.append(f"unlisten:{event.value}")
            if callback in self.listeners[event]:
                self.listeners[event].remove(callback)

        return unlisten

    def emit(self, event: ProcessEvent, payload: str) -> None:
        for callback in list(self.listeners[event]):
            callback(payload)


class FakeTransport:
    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config
        self.onmessage = None
        self.onerror = None
        self.onclose = None
        self.started = 0
        self.closed = 0

    async def start(self) -> None:
        self.started += 1

    async def send(self, message: Any) -> None:
        pass

    async def close(self) -> None:
        self.closed += 1


class FakeMcpClient:
    """Protocol client double driven by the attributes of its factory."""

    def __init__(self, factory: "FakeClientFactory") -> None:
        self.factory = factory
        self.transport: FakeTransport | None = None
        self.connect_calls = 0
        self.close_calls = 0
        self.calls: list[tuple[str, Any]] = []
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, transport: FakeTransport) -> None:
        self.connect_calls += 1
        self.transport = transport
        await transport.start()
        if self.factory.connect_gate is not None:
            await self.factory.connect_gate.wait()
        if self.factory.connect_error is not None:
            raise self.factory.connect_error
        self._connected = True

    async def list_tools(self) -> list[Tool]:
        if self.factory.tools_error is not None:
            raise self.factory.tools_error
        return list(self.factory.tools)

    async def list_resources(self) -> list:
        return []

    async def list_prompts(self) -> list:
        if self.factory.prompts_error is not None:
            raise self.factory.prompts_error
        return []

    async def call_tool(self, name: str, arguments: Any = None) -> CallToolResult:
        self.calls.append((name, arguments))
        if self.factory.call_gate is not None:
            await self.factory.call_gate.wait()
        if self.factory.call_error is not None:
            raise self.factory.call_error
        return self.factory.call_result

    async def close(self) -> None:
        self.close_calls += 1
        self._connected = False
        if self.transport is not None:
            await self.transport.close()
        if self.factory.close_error is not None:
            raise self.factory.close_error


class FakeClientFactory:
    """Creates FakeMcpClients and keeps every one it created."""

    def __init__(self) -> None:
        self.clients: list[FakeMcpClient] = []
        self.tools: list[Tool] = [
            Tool(
                name="expr_evaluator",
                description="Evaluate an arithmetic expression",
                inputSchema={
                    "type": "object",
                    "properties": {"expression": {"type": "string"}},
                    "required": ["expression"],
                },
            )
        ]
        self.call_result = CallToolResult(content=[TextContent(type="text", text="4")])
        self.connect_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.call_gate: asyncio.Event | None = None
        self.tools_error: Exception | None = None
        self.prompts_error: Exception | None = None
        self.call_error: Exception | None = None
        self.close_error: Exception | None = None

    def __call__(self) -> FakeMcpClient:
        client = FakeMcpClient(self)
        self.clients.append(client)
        return client


@pytest.fixture
def notifications() -> NotificationHub:
    return NotificationHub()


@pytest.fixture
def config_store(tmp_path: Path) -> ServerConfigStore:
    return ServerConfigStore(tmp_path / "mcp_servers.json")


@pytest.fixture
def process_host() -> FakeProcessHost:
    return FakeProcessHost()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def manager(config_store, notifications, process_host, client_factory) -> ConnectionManager:
    return ConnectionManager(
        config_store=config_store,
        notifications=notifications,
        process_host=process_host,
        builtin_registry={},
        client_factory=client_factory,
        transport_factory=FakeTransport,
    )


@pytest.fixture
def session_manager(tmp_path: Path) -> SessionManager:
    return SessionManager(tmp_path / "sessions")
