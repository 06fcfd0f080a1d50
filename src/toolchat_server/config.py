"""Configuration module for toolchat-server using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ToolchatServerSettings(BaseSettings):
    """Main configuration settings for toolchat-server.

    All settings can be overridden via environment variables with the TOOLCHAT_ prefix.
    For example, TOOLCHAT_OLLAMA_HOST will override the ollama_host setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Ollama
    ollama_host: str = "http://localhost:11434"

    # Data locations (relative to data_dir)
    data_dir: str = "."
    sessions_dir: str = "chat_sessions"
    servers_file: str = "mcp_servers.json"

    # Conversation
    default_max_history: int = 20
    max_tool_rounds: int = 8

    # MCP
    mcp_client_name: str = "toolchat-server"
    mcp_client_version: str = "0.1.0"
    mcp_request_timeout_s: float = 30.0
    connect_on_startup: bool = True

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="TOOLCHAT_")

    # --- Resolved paths (computed from data_dir + relative paths) ---

    @property
    def resolved_sessions_dir(self) -> Path:
        """Get the full path to the sessions directory."""
        return Path(self.data_dir) / self.sessions_dir

    @property
    def resolved_servers_file(self) -> Path:
        """Get the full path to the persisted MCP server configuration list."""
        return Path(self.data_dir) / self.servers_file
