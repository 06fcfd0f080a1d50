"""Pydantic models for session API requests and responses."""

from pydantic import BaseModel, Field

from toolchat_server.models.chat import MessageResponse


class CreateSessionRequest(BaseModel):
    """Request body for creating a new session."""

    model: str = Field(..., description="The LLM model to use for this session")
    system_prompt: str | None = Field(
        None, description="Optional system prompt content"
    )
    selected_server_ids: list[str] = Field(
        default_factory=list,
        description="Tool servers whose tools are offered to the model",
    )
    max_history: int | None = Field(
        None, ge=1, description="Number of recent messages sent to the model"
    )


class UpdateSessionRequest(BaseModel):
    """Request body for updating a session. Omitted fields are left unchanged."""

    model: str | None = Field(None, description="New model to use for this session")
    system_prompt: str | None = None
    selected_server_ids: list[str] | None = None
    max_history: int | None = Field(None, ge=1)


class SessionResponse(BaseModel):
    """Response model for a single session (metadata only)."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    system_prompt: str = ""
    selected_server_ids: list[str] = Field(default_factory=list)
    max_history: int


class SessionListItem(BaseModel):
    """A session item in the list response."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    preview: str = Field("", description="Preview of first user message")


class SessionListResponse(BaseModel):
    sessions: list[SessionListItem]


class SessionDetailResponse(SessionResponse):
    """Response model for a session with full message history."""

    messages: list[MessageResponse]


class MessagesResponse(BaseModel):
    messages: list[MessageResponse]
