"""Chat API endpoints.

This module provides endpoints for chat interactions with sessions,
including non-streaming and streaming responses via SSE, and cancellation
of the turn in flight.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from toolchat_server.dependencies import get_chat_service, get_turn_registry
from toolchat_server.models.chat import (
    CancelResponse,
    ChatRequest,
    ChatResponse,
    DoneEvent,
    ErrorEvent,
    MessageResponse,
    StreamEvent,
)
from toolchat_server.routers.errors import api_error, session_not_found
from toolchat_server.services.chat import ChatService
from toolchat_server.services.turns import Turn, TurnInProgressError, TurnRegistry
from toolchat_server.sessions.session import ChatSession, utc_timestamp
from toolchat_server.sessions.types import Message, UserMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


# --- Helpers shared with the tool call endpoints ---


def load_session(chat_service: ChatService, session_id: str) -> ChatSession:
    """Load a session or raise a 404/500 API error."""
    try:
        return chat_service.session_manager.get_session(session_id)
    except FileNotFoundError:
        raise session_not_found(session_id)
    except Exception as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        raise api_error(500, "session_load_error", f"Failed to load session: {str(e)}")


def begin_turn(turns: TurnRegistry, session_id: str) -> Turn:
    """Register a turn for the session or raise 409 if one is in flight."""
    try:
        return turns.begin(session_id)
    except TurnInProgressError as e:
        raise api_error(409, "turn_in_progress", str(e), {"session_id": session_id})


def message_response(message: Message) -> MessageResponse:
    return MessageResponse(**asdict(message))


def sse_response(
    session_id: str,
    turns: TurnRegistry,
    turn: Turn,
    events: AsyncIterator[StreamEvent],
) -> EventSourceResponse:
    """Stream turn events as SSE, finishing with ``done`` and releasing the turn."""

    async def event_generator():
        try:
            async for event in events:
                yield {"event": event.event_name, "data": event.model_dump_json()}
            done_event = DoneEvent(session_id=session_id)
            yield {"event": done_event.event_name, "data": done_event.model_dump_json()}
        except Exception as e:
            logger.error(f"Error during streaming for session {session_id}: {e}", exc_info=True)
            error_event = ErrorEvent(
                code="internal_error",
                message=f"Failed to complete turn: {str(e)}",
                details={"session_id": session_id},
            )
            yield {"event": error_event.event_name, "data": error_event.model_dump_json()}
        finally:
            turns.end(turn)

    return EventSourceResponse(event_generator())


async def collect_response(
    session: ChatSession,
    turns: TurnRegistry,
    turn: Turn,
    events: AsyncIterator[StreamEvent],
    start_index: int,
) -> ChatResponse:
    """Drain turn events and return the messages the turn added or rewrote.

    Raises:
        HTTPException: 502 if the model call failed
    """
    try:
        async for event in events:
            if isinstance(event, ErrorEvent) and event.code == "ollama_error":
                raise api_error(502, event.code, event.message, event.details)
    finally:
        turns.end(turn)

    return ChatResponse(
        session_id=session.session_id,
        messages=[message_response(m) for m in session.messages[start_index:]],
    )


def _prepare_turn(
    chat_service: ChatService, session_id: str, request_body: ChatRequest
) -> ChatSession:
    session = load_session(chat_service, session_id)

    if request_body.message is not None:
        session.add_message(
            UserMessage(
                content=request_body.message,
                message_id=uuid.uuid4().hex[:10],
                timestamp=utc_timestamp(),
            )
        )
        chat_service.session_manager.save(session)
        logger.info(f"Added user message to session {session_id}")

    history = chat_service.build_history(session)
    if not any(message["role"] != "system" for message in history):
        raise api_error(400, "empty_history", "Session has no messages to process")
    return session


# --- Endpoints ---


@router.post("/{session_id}", response_model=ChatResponse)
async def chat_non_streaming(
    session_id: str,
    request_body: ChatRequest,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> ChatResponse:
    """Send a message to a session and receive the complete turn.

    The model is streamed internally and collected. If the model requests a
    tool call, the response ends with the tool call message: pending when it
    waits for approval, otherwise followed by the resumed answer.

    Raises:
        HTTPException: 404 if session not found, 409 if a turn is in flight,
            502 if Ollama fails
    """
    turn = begin_turn(turns, session_id)
    try:
        session = _prepare_turn(chat_service, session_id, request_body)
    except Exception:
        turns.end(turn)
        raise

    start_index = len(session.messages)
    return await collect_response(
        session, turns, turn, chat_service.run_turn(session, turn), start_index
    )


@router.post("/{session_id}/stream")
async def chat_streaming(
    session_id: str,
    request_body: ChatRequest,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> EventSourceResponse:
    """Stream a chat turn via Server-Sent Events (SSE).

    SSE Events:
        - content_delta: Each text chunk from the LLM
        - message_complete: A finalized assistant message
        - tool_call: A tool call message was created or changed state
        - notice: A tool call could not be started
        - error: An error occurred
        - done: Stream is complete

    Raises:
        HTTPException: 404 if session not found, 409 if a turn is in flight
    """
    turn = begin_turn(turns, session_id)
    try:
        session = _prepare_turn(chat_service, session_id, request_body)
    except Exception:
        turns.end(turn)
        raise

    logger.info(f"Starting streaming chat for session {session_id}")
    return sse_response(session_id, turns, turn, chat_service.run_turn(session, turn))


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_turn(
    session_id: str,
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
    message_id: str | None = None,
) -> CancelResponse:
    """Stop the in-flight turn of a session.

    Streaming stops at the next chunk; a tool call that is already running
    still completes and is recorded.
    """
    cancelled = turns.cancel(session_id, message_id)
    return CancelResponse(session_id=session_id, cancelled=cancelled)
