"""Tool call approval endpoints.

A tool call that needs approval ends its turn with a pending tool call
message. The user then approves or denies it here, referring to that
message. Both decisions continue the conversation: an approved call runs
and, if it succeeds, the model is resumed with the result; a denied call
resumes the model with the denial.
"""

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from toolchat_server.dependencies import get_chat_service, get_turn_registry
from toolchat_server.models.chat import ChatResponse, StreamEvent
from toolchat_server.routers.chat import (
    begin_turn,
    collect_response,
    load_session,
    sse_response,
)
from toolchat_server.routers.errors import api_error
from toolchat_server.services.chat import ChatService
from toolchat_server.services.turns import Turn, TurnRegistry
from toolchat_server.sessions.session import ChatSession
from toolchat_server.tool_calls.records import ToolCallNotFoundError, ToolCallStateError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["tool-calls"])


def _decide(
    chat_service: ChatService,
    turns: TurnRegistry,
    session_id: str,
    message_id: str,
    approve: bool,
) -> tuple[ChatSession, Turn, int, AsyncIterator[StreamEvent]]:
    """Apply the user's decision and return the events that continue the turn.

    The decision is applied before anything is streamed, so an unknown
    message or a call that is no longer pending is reported as an HTTP error.
    """
    turn = begin_turn(turns, session_id)
    try:
        session = load_session(chat_service, session_id)
        index = next(
            (i for i, m in enumerate(session.messages) if m.message_id == message_id),
            len(session.messages),
        )
        workflow = chat_service.workflow
        if approve:
            message = workflow.approve(session, message_id)
            events = chat_service.continue_tool_call(session, turn, message)
        else:
            outcome = workflow.deny(session, message_id)
            events = chat_service.deny_and_resume(session, turn, outcome)
    except ToolCallNotFoundError as e:
        turns.end(turn)
        raise api_error(404, "tool_call_not_found", str(e), {"message_id": message_id})
    except ToolCallStateError as e:
        turns.end(turn)
        raise api_error(
            409,
            "invalid_tool_call_state",
            str(e),
            {"message_id": message_id, "state": e.current},
        )
    except Exception:
        turns.end(turn)
        raise

    return session, turn, index, events


@router.post(
    "/{session_id}/tool-calls/{message_id}/approve",
    response_model=ChatResponse,
)
async def approve_tool_call(
    session_id: str,
    message_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> ChatResponse:
    """Approve a pending tool call, run it and resume the conversation.

    Returns the tool call message and every message added after it.

    Raises:
        HTTPException: 404 if the session or tool call message is unknown,
            409 if the call is not pending or a turn is in flight
    """
    session, turn, index, events = _decide(chat_service, turns, session_id, message_id, True)
    return await collect_response(session, turns, turn, events, index)


@router.post("/{session_id}/tool-calls/{message_id}/approve/stream")
async def approve_tool_call_streaming(
    session_id: str,
    message_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> EventSourceResponse:
    """Approve a pending tool call and stream its execution and the resumed turn."""
    session, turn, _, events = _decide(chat_service, turns, session_id, message_id, True)
    return sse_response(session_id, turns, turn, events)


@router.post(
    "/{session_id}/tool-calls/{message_id}/deny",
    response_model=ChatResponse,
)
async def deny_tool_call(
    session_id: str,
    message_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> ChatResponse:
    """Deny a pending tool call and resume the conversation with the denial."""
    session, turn, index, events = _decide(chat_service, turns, session_id, message_id, False)
    return await collect_response(session, turns, turn, events, index)


@router.post("/{session_id}/tool-calls/{message_id}/deny/stream")
async def deny_tool_call_streaming(
    session_id: str,
    message_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    turns: Annotated[TurnRegistry, Depends(get_turn_registry)],
) -> EventSourceResponse:
    session, turn, _, events = _decide(chat_service, turns, session_id, message_id, False)
    return sse_response(session_id, turns, turn, events)
