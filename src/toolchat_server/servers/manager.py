"""ConnectionManager: lifecycle of tool server connections.

This module provides the ConnectionManager class which handles:
- Connecting to a configured server and discovering its capabilities
- Disconnecting and resetting runtime state
- Bulk connect/disconnect across all servers
- Reacting to configuration changes (add, update, enable, remove)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import Any

from toolchat_server.mcp_client import (
    AsyncioProcessHost,
    ExternalProcessTransport,
    InProcessTransport,
    McpClient,
    ProcessHost,
    RemoteStreamTransport,
    Transport,
)
from toolchat_server.servers.builtin import create_builtin_registry
from toolchat_server.servers.config import (
    ExternalProcessServerConfig,
    RemoteStreamServerConfig,
    ServerConfig,
    ServerConfigError,
    connection_params,
)
from toolchat_server.servers.runtime import (
    DiscoveredCapabilities,
    ServerPhase,
    ServerRuntimeState,
)
from toolchat_server.servers.store import ServerConfigStore
from toolchat_server.services.notifications import NotificationHub

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], McpClient]
TransportFactory = Callable[[ServerConfig], Transport]

_LIVE_PHASES = (ServerPhase.CONNECTING, ServerPhase.CONNECTED)


class ConnectionManager:
    """Owns the runtime state map of all configured tool servers.

    The state map is replaced copy-on-write on every mutation, so a reference
    obtained from ``states`` is a stable snapshot.
    """

    def __init__(
        self,
        config_store: ServerConfigStore,
        notifications: NotificationHub,
        process_host: ProcessHost | None = None,
        builtin_registry: Mapping[str, Any] | None = None,
        client_factory: ClientFactory | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        """Initialize the ConnectionManager.

        Args:
            config_store: Store holding the server configurations
            notifications: Hub receiving user-facing notifications
            process_host: Host bridge for external-process servers
            builtin_registry: In-process server objects keyed by config id
            client_factory: Creates a fresh protocol client per connection
            transport_factory: Creates the transport for a config
        """
        self.config_store = config_store
        self.notifications = notifications
        self.process_host = process_host or AsyncioProcessHost()
        self.builtin_registry = (
            builtin_registry if builtin_registry is not None else create_builtin_registry()
        )
        self.client_factory = client_factory or (
            lambda: McpClient(name="toolchat-server", version="0.1.0")
        )
        self.transport_factory = transport_factory or self.create_transport

        self._states: dict[str, ServerRuntimeState] = {}
        self._tasks: set[asyncio.Task] = set()

    # --- Runtime state ---

    @property
    def states(self) -> Mapping[str, ServerRuntimeState]:
        return MappingProxyType(self._states)

    def get_state(self, server_id: str) -> ServerRuntimeState:
        """Runtime record for ``server_id``; a disconnected record if none exists."""
        return self._states.get(server_id) or ServerRuntimeState(config_id=server_id)

    def connected_count(self) -> int:
        return sum(1 for state in self._states.values() if state.is_connected)

    def _set_state(self, state: ServerRuntimeState) -> None:
        self._states = {**self._states, state.config_id: state}

    def _drop_state(self, server_id: str) -> None:
        self._states = {k: v for k, v in self._states.items() if k != server_id}

    def _holds_client(self, server_id: str, client: McpClient) -> bool:
        return self.get_state(server_id).client is client

    # --- Connection lifecycle ---

    def create_transport(self, config: ServerConfig) -> Transport:
        if isinstance(config, RemoteStreamServerConfig):
            return RemoteStreamTransport(config.url)
        if isinstance(config, ExternalProcessServerConfig):
            return ExternalProcessTransport(self.process_host, config.command, config.args)
        return InProcessTransport(config.id, self.builtin_registry)

    async def connect(self, server_id: str) -> ServerRuntimeState:
        """Connect to a server and discover its capabilities.

        Does nothing if the config is missing or disabled, or if the server is
        already connecting or connected. Failures are recorded as the ``error``
        phase and never raised.

        Args:
            server_id: Configured server id

        Returns:
            ServerRuntimeState: The record after the attempt
        """
        config = self.config_store.get(server_id)
        if config is None:
            logger.warning(f"Connect requested for unknown server {server_id}")
            self.notifications.error(f'Configuration for server ID "{server_id}" not found.')
            return self.get_state(server_id)
        if not config.enabled:
            logger.info(f"Server {server_id} is disabled, not connecting")
            return self.get_state(server_id)

        current = self.get_state(server_id)
        if current.phase in _LIVE_PHASES:
            logger.debug(f"Server {server_id} already {current.phase.value}")
            return current

        try:
            transport = self.transport_factory(config)
            client = self.client_factory()
        except Exception as e:
            logger.error(f"Failed to set up connection to {server_id}: {e}")
            state = ServerRuntimeState(config_id=server_id, phase=ServerPhase.ERROR, error=str(e))
            self._set_state(state)
            self.notifications.error(f'Failed to connect to "{config.name}": {e}')
            return state

        self._set_state(
            ServerRuntimeState(
                config_id=server_id,
                phase=ServerPhase.CONNECTING,
                client=client,
                transport=transport,
            )
        )
        self.notifications.info(f'Connecting to MCP server "{config.name}"...')
        logger.info(f"Connecting to server {server_id} ({config.kind})")

        try:
            await client.connect(transport)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.error(f"Failed to connect to server {server_id}: {message}")
            await self._close_quietly(server_id, client, transport)
            if not self._holds_client(server_id, client):
                return self.get_state(server_id)
            state = ServerRuntimeState(
                config_id=server_id, phase=ServerPhase.ERROR, error=message
            )
            self._set_state(state)
            self.notifications.error(f'Failed to connect to "{config.name}": {message}')
            return state

        capabilities = DiscoveredCapabilities(
            tools=await self._discover(server_id, "tools", client.list_tools),
            resources=await self._discover(server_id, "resources", client.list_resources),
            prompts=await self._discover(server_id, "prompts", client.list_prompts),
        )

        if not self._holds_client(server_id, client):
            logger.info(f"Server {server_id} was disconnected during discovery")
            return self.get_state(server_id)

        state = ServerRuntimeState(
            config_id=server_id,
            phase=ServerPhase.CONNECTED,
            client=client,
            transport=transport,
            capabilities=capabilities,
        )
        self._set_state(state)
        logger.info(
            f"Connected to server {server_id}: {len(capabilities.tools)} tools, "
            f"{len(capabilities.resources)} resources, {len(capabilities.prompts)} prompts"
        )
        self.notifications.success(f'MCP Server "{config.name}" connected.')
        return state

    async def _discover(
        self,
        server_id: str,
        what: str,
        list_fn: Callable[[], Awaitable[list]],
    ) -> list:
        try:
            return list(await list_fn())
        except Exception as e:
            logger.warning(f"Failed to list {what} for server {server_id}: {e}")
            return []

    async def _close_quietly(
        self, server_id: str, client: McpClient | None, transport: Transport | None
    ) -> None:
        try:
            if client is not None:
                await client.close()
            elif transport is not None:
                await transport.close()
        except Exception as e:
            logger.warning(f"Cleanup after failed connect to {server_id} failed: {e}")

    async def disconnect(self, server_id: str) -> None:
        """Close a server's connection and reset it to ``disconnected``.

        Close failures are logged and notified; the reset always happens.
        """
        current = self._states.get(server_id)
        if current is None or current.phase == ServerPhase.DISCONNECTED:
            logger.debug(f"Server {server_id} already disconnected")
            return

        if current.client is None and current.transport is None:
            self._set_state(ServerRuntimeState(config_id=server_id))
            return

        config = self.config_store.get(server_id)
        name = config.name if config else server_id
        logger.info(f"Disconnecting from server {server_id}")

        try:
            if current.client is not None:
                await current.client.close()
            else:
                await current.transport.close()
            self.notifications.info(f'MCP Server "{name}" disconnected.')
        except Exception as e:
            logger.error(f"Error disconnecting from server {server_id}: {e}")
            self.notifications.error(f'Error disconnecting from "{name}": {e}')
        finally:
            self._set_state(ServerRuntimeState(config_id=server_id))

    def _schedule(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def connect_all(self) -> list[asyncio.Task]:
        """Schedule ``connect`` for every enabled server that is not live."""
        tasks = [
            self._schedule(self.connect(config.id))
            for config in self.config_store.list()
            if config.enabled and self.get_state(config.id).phase not in _LIVE_PHASES
        ]
        logger.info(f"Scheduled connect for {len(tasks)} servers")
        return tasks

    def disconnect_all(self) -> list[asyncio.Task]:
        """Schedule ``disconnect`` for every server with a non-disconnected record."""
        tasks = [
            self._schedule(self.disconnect(server_id))
            for server_id, state in self._states.items()
            if state.phase != ServerPhase.DISCONNECTED
        ]
        logger.info(f"Scheduled disconnect for {len(tasks)} servers")
        return tasks

    # --- Configuration changes ---

    def add_server(self, data: dict[str, Any]) -> ServerConfig:
        config = self.config_store.add(data)
        self.notifications.success(f'MCP Server "{config.name}" added.')
        return config

    async def update_server(self, server_id: str, changes: dict[str, Any]) -> ServerConfig:
        """Update a config, disconnecting a live connection whose parameters changed.

        Raises:
            ServerConfigError: If the server is unknown or the change is not allowed
        """
        before = self.config_store.require(server_id)
        try:
            after = self.config_store.update(server_id, changes)
        except ServerConfigError as e:
            self.notifications.error(e.message)
            raise

        if connection_params(before) != connection_params(after):
            if self.get_state(server_id).phase in _LIVE_PHASES:
                logger.info(f"Disconnecting server {server_id} due to config update")
                await self.disconnect(server_id)

        if after.enabled and not before.enabled:
            await self.connect(server_id)
        elif before.enabled and not after.enabled:
            await self.disconnect(server_id)

        self.notifications.success(f'MCP Server "{after.name}" updated.')
        return after

    async def set_enabled(self, server_id: str, enabled: bool) -> ServerConfig:
        """Enable (and connect) or disable (and disconnect) a server."""
        config = self.config_store.update(server_id, {"enabled": enabled})
        self.notifications.info(
            f'MCP Server "{config.name}" {"enabled" if enabled else "disabled"}.'
        )
        if enabled:
            await self.connect(server_id)
        else:
            await self.disconnect(server_id)
        return config

    async def toggle(self, server_id: str) -> ServerConfig:
        config = self.config_store.require(server_id)
        return await self.set_enabled(server_id, not config.enabled)

    async def remove_server(self, server_id: str) -> ServerConfig:
        """Delete a custom server, closing its connection first.

        Raises:
            ServerConfigError: If the server is unknown or built-in
        """
        try:
            config = self.config_store.remove(server_id)
        except ServerConfigError as e:
            self.notifications.error(e.message)
            raise

        await self.disconnect(server_id)
        self._drop_state(server_id)
        self.notifications.success(f'MCP Server "{config.name}" deleted.')
        return config
