"""Tool call detection, state transitions, approval workflow and feedback.

``ToolCallWorkflow`` lives in ``toolchat_server.tool_calls.workflow`` and is
imported from there, since it depends on the server layer.
"""

from toolchat_server.tool_calls.detector import (
    MalformedToolCall,
    ToolCallDetector,
    ToolCallRequest,
    detect_tool_call,
)
from toolchat_server.tool_calls.records import (
    ToolCallNotFoundError,
    ToolCallStateError,
    is_terminal,
)

__all__ = [
    "ToolCallDetector",
    "ToolCallRequest",
    "MalformedToolCall",
    "detect_tool_call",
    "ToolCallStateError",
    "ToolCallNotFoundError",
    "is_terminal",
]
