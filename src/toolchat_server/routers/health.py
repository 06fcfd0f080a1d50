"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from toolchat_server import __version__
from toolchat_server.models.health import HealthResponse
from toolchat_server.ollama import OllamaClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Reports the version, Ollama connectivity (if the client is initialized)
    and the number of connected tool servers.
    """
    ollama_connected = None
    ollama_host = None

    if hasattr(request.app.state, "ollama_client"):
        ollama_client: OllamaClient = request.app.state.ollama_client
        ollama_host = ollama_client.host

        try:
            ollama_connected = await ollama_client.check_connection()
            logger.debug(f"Ollama connectivity check: {ollama_connected}")
        except Exception as e:
            logger.warning(f"Ollama connectivity check failed: {e}")
            ollama_connected = False

    mcp_servers_connected = 0
    if hasattr(request.app.state, "connection_manager"):
        mcp_servers_connected = request.app.state.connection_manager.connected_count()

    return HealthResponse(
        status="ok",
        version=__version__,
        ollama_connected=ollama_connected,
        ollama_host=ollama_host,
        mcp_servers_connected=mcp_servers_connected,
    )
