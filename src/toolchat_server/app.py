"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolchat_server import __version__
from toolchat_server.config import ToolchatServerSettings
from toolchat_server.mcp_client import AsyncioProcessHost, McpClient
from toolchat_server.ollama import OllamaClient
from toolchat_server.routers import (
    chat,
    health,
    notifications,
    servers,
    sessions,
    tool_calls,
)
from toolchat_server.servers import ConnectionManager, ServerConfigStore
from toolchat_server.services import NotificationHub, TurnRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    Expensive objects (the Ollama client, the server configuration store and
    the connection manager) are created once at startup and stored in
    app.state for reuse across all requests. Enabled tool servers are
    connected in the background; all connections are closed on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: ToolchatServerSettings = app.state.settings

    app.state.ollama_client = OllamaClient(host=settings.ollama_host)
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    connected = await app.state.ollama_client.check_connection()
    if connected:
        logger.info("Successfully connected to Ollama")
    else:
        logger.warning("Could not connect to Ollama - check if server is running")

    app.state.notifications = NotificationHub()
    app.state.turns = TurnRegistry()
    app.state.server_store = ServerConfigStore(settings.resolved_servers_file)
    app.state.connection_manager = ConnectionManager(
        config_store=app.state.server_store,
        notifications=app.state.notifications,
        process_host=AsyncioProcessHost(),
        client_factory=lambda: McpClient(
            name=settings.mcp_client_name,
            version=settings.mcp_client_version,
            request_timeout_s=settings.mcp_request_timeout_s,
        ),
    )

    if settings.connect_on_startup:
        app.state.connection_manager.connect_all()

    yield

    manager: ConnectionManager = app.state.connection_manager
    results = await asyncio.gather(*manager.disconnect_all(), return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning(f"Error while disconnecting on shutdown: {result}")
    logger.info("Tool server connections closed")

    await app.state.ollama_client.close()
    logger.info("Ollama client closed")


def create_app(settings: ToolchatServerSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional ToolchatServerSettings instance. If not provided,
                  settings will be loaded from environment variables.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from toolchat_server.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="toolchat-server",
        description="Chat server for Ollama models with MCP tool calling",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)
    app.include_router(tool_calls.router)
    app.include_router(servers.router)
    app.include_router(notifications.router)

    return app
