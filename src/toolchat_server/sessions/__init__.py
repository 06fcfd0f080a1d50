"""Session management for toolchat-server.

This package provides session persistence, message history and tool call
records, and CRUD operations for chat sessions.
"""

from toolchat_server.sessions.manager import SessionManager
from toolchat_server.sessions.session import ChatSession
from toolchat_server.sessions.types import (
    AssistantMessage,
    DeniedToolCall,
    Message,
    PendingToolCall,
    RunningToolCall,
    SessionCreationOptions,
    SessionMetadata,
    SystemMessage,
    ToolCallFailure,
    ToolCallRecord,
    ToolCallResult,
    UserMessage,
)

__all__ = [
    # Core classes
    "ChatSession",
    "SessionManager",
    # Message types
    "Message",
    "UserMessage",
    "SystemMessage",
    "AssistantMessage",
    # Tool call records
    "ToolCallRecord",
    "PendingToolCall",
    "RunningToolCall",
    "ToolCallResult",
    "ToolCallFailure",
    "DeniedToolCall",
    # Configuration types
    "SessionMetadata",
    "SessionCreationOptions",
]
