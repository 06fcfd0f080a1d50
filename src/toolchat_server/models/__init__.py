"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests, responses and SSE events across all endpoints.
"""

from toolchat_server.models.chat import (
    ChatRequest,
    ChatResponse,
    MessageResponse,
    StreamEvent,
)
from toolchat_server.models.servers import (
    CreateServerRequest,
    ServerStateResponse,
    UpdateServerRequest,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "MessageResponse",
    "StreamEvent",
    "CreateServerRequest",
    "UpdateServerRequest",
    "ServerStateResponse",
]
