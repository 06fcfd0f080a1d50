"""FastAPI routers for API endpoints.

Each router module defines endpoints for one resource: health, sessions,
chat, tool call approval, tool servers and notifications.
"""

from toolchat_server.routers import (
    chat,
    health,
    notifications,
    servers,
    sessions,
    tool_calls,
)

__all__ = [
    "chat",
    "health",
    "notifications",
    "servers",
    "sessions",
    "tool_calls",
]
