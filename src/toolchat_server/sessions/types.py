"""Data types for session management.

This module defines the core data structures for chat sessions, messages,
tool call records and session configuration.
"""

from dataclasses import dataclass, field
from typing import Any


# --- Tool call records ---
# One record is embedded in the assistant message that displays a tool call.
# The ``type`` tag is fixed per class and drives (de)serialization.


@dataclass(frozen=True)
class PendingToolCall:
    """Detected call waiting for approval."""

    call_id: str
    server_id: str
    tool_name: str
    server_name: str = ""
    args: Any = None
    type: str = field(default="pending", init=False)


@dataclass(frozen=True)
class RunningToolCall:
    """Approved call being executed."""

    call_id: str
    server_id: str
    tool_name: str
    server_name: str = ""
    args: Any = None
    type: str = field(default="running", init=False)


@dataclass(frozen=True)
class ToolCallResult:
    """Call that completed; terminal."""

    call_id: str
    server_id: str
    tool_name: str
    server_name: str = ""
    args: Any = None
    is_error: bool = False
    type: str = field(default="result", init=False)


@dataclass(frozen=True)
class ToolCallFailure:
    """Call that failed, or could not run at approval time; terminal."""

    call_id: str
    server_id: str
    tool_name: str
    error_message: str = ""
    is_error: bool = True
    type: str = field(default="error", init=False)


@dataclass(frozen=True)
class DeniedToolCall:
    """Call rejected by the user; terminal."""

    call_id: str
    server_id: str
    tool_name: str
    type: str = field(default="denied", init=False)


ToolCallRecord = (
    PendingToolCall | RunningToolCall | ToolCallResult | ToolCallFailure | DeniedToolCall
)

_RECORD_TYPES: dict[str, type] = {
    "pending": PendingToolCall,
    "running": RunningToolCall,
    "result": ToolCallResult,
    "error": ToolCallFailure,
    "denied": DeniedToolCall,
}


def tool_call_from_dict(data: dict[str, Any]) -> ToolCallRecord:
    """Convert a dictionary to the tool call record class named by its ``type``.

    Raises:
        ValueError: If the type is unknown
    """
    fields = dict(data)
    record_type = fields.pop("type", None)
    cls = _RECORD_TYPES.get(record_type)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"Unknown tool call record type: {record_type}")
    return cls(**fields)


# --- Messages ---


@dataclass
class UserMessage:
    """A message from the user."""

    role: str = "user"
    content: str = ""
    message_id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        """Validate role is always 'user'."""
        self.role = "user"


@dataclass
class SystemMessage:
    """A visible notice in the transcript (e.g. a tool call that could not start).

    Notices are never sent to the model.
    """

    role: str = "system"
    content: str = ""
    message_id: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        """Validate role is always 'system'."""
        self.role = "system"


@dataclass
class AssistantMessage:
    """A response from the LLM assistant, or the display of a tool call."""

    role: str = "assistant"
    content: str = ""
    model: str = ""
    message_id: str = ""
    timestamp: str = ""
    eval_count: int | None = None
    prompt_eval_count: int | None = None
    tool_call_info: ToolCallRecord | None = None

    def __post_init__(self) -> None:
        """Validate role is always 'assistant'."""
        self.role = "assistant"


# Union type for all message types
Message = UserMessage | SystemMessage | AssistantMessage


@dataclass
class SessionMetadata:
    """Metadata for a chat session."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int = 0
    system_prompt: str = ""
    selected_server_ids: list[str] = field(default_factory=list)
    max_history: int = 20
    format_version: str = "1.0"


@dataclass
class SessionCreationOptions:
    """Options for creating a new session."""

    model: str
    system_prompt: str | None = None
    selected_server_ids: list[str] | None = None
    max_history: int | None = None
