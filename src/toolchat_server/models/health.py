"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of toolchat-server.
        ollama_connected: Whether Ollama answered the connectivity check.
        ollama_host: The Ollama host URL.
        mcp_servers_connected: Number of tool servers currently connected.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of toolchat-server")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether Ollama is connected",
    )
    ollama_host: str | None = Field(
        default=None,
        description="Ollama host URL",
    )
    mcp_servers_connected: int = Field(
        default=0,
        description="Number of connected MCP servers",
    )
