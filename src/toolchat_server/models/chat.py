"""Pydantic models for chat API requests, responses and SSE events.

This module defines the request and response schemas for the chat endpoints,
including both streaming and non-streaming chat interactions and the tool
call approval endpoints.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for chat endpoints.

    Used by both POST /api/v1/chat/{session_id} (non-streaming)
    and POST /api/v1/chat/{session_id}/stream (streaming).
    """

    message: str | None = Field(
        default=None,
        description="The user message to send. If null, re-generates from the current session history.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "What time is it in Tokyo?"},
                {"message": None},
            ]
        }
    )


class ToolCallInfoResponse(BaseModel):
    """Tool call record attached to an assistant message."""

    type: str = Field(description="pending, running, result, error or denied")
    call_id: str
    server_id: str
    tool_name: str
    server_name: str | None = None
    args: Any = None
    is_error: bool | None = None
    error_message: str | None = None


class MessageResponse(BaseModel):
    """Response schema for a single message."""

    role: str = Field(description="Message role")
    content: str = Field(description="Message content")
    message_id: str = Field(description="Unique message identifier")
    timestamp: str = Field(description="ISO 8601 timestamp")
    model: str | None = Field(default=None, description="Model that generated this message")
    eval_count: int | None = Field(default=None, description="Number of tokens generated")
    prompt_eval_count: int | None = Field(
        default=None, description="Number of tokens in the prompt"
    )
    tool_call_info: ToolCallInfoResponse | None = Field(
        default=None, description="Tool call displayed by this message (if any)"
    )


class ChatResponse(BaseModel):
    """Response body for the non-streaming chat and tool call endpoints.

    Holds every message the turn added to the session, in order. A turn that
    ends with a tool call waiting for approval ends with a pending message.
    """

    session_id: str = Field(description="Session identifier")
    messages: list[MessageResponse] = Field(
        default_factory=list, description="Messages added during this turn"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": "a1b2c3d4e5",
                "messages": [
                    {
                        "role": "assistant",
                        "content": "The capital of France is Paris.",
                        "model": "llama3.2:latest",
                        "message_id": "f1e2d3c4b5",
                        "timestamp": "2025-01-15T10:35:00.000000Z",
                        "eval_count": 45,
                        "prompt_eval_count": 120,
                        "tool_call_info": None,
                    }
                ],
            }
        }
    )


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


# --- SSE events ---


class StreamEvent(BaseModel):
    """Base class for SSE payloads; ``event_name`` is the SSE event field."""

    event_name: ClassVar[str] = "message"


class ContentDeltaEvent(StreamEvent):
    event_name: ClassVar[str] = "content_delta"

    content: str
    role: str = "assistant"


class MessageCompleteEvent(StreamEvent):
    event_name: ClassVar[str] = "message_complete"

    message_id: str
    model: str
    content: str
    eval_count: int | None = None
    prompt_eval_count: int | None = None
    cancelled: bool = False


class ToolCallEvent(StreamEvent):
    """Emitted whenever the tool call message is created or rewritten."""

    event_name: ClassVar[str] = "tool_call"

    message_id: str
    call_id: str
    server_id: str
    tool_name: str
    status: str
    content: str


class NoticeEvent(StreamEvent):
    """A system notice added to the transcript (e.g. an unusable tool call)."""

    event_name: ClassVar[str] = "notice"

    message_id: str
    content: str


class ErrorEvent(StreamEvent):
    event_name: ClassVar[str] = "error"

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class DoneEvent(StreamEvent):
    event_name: ClassVar[str] = "done"

    session_id: str
