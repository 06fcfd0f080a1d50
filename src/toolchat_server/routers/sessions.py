"""Sessions router for chat session CRUD operations.

This module provides REST API endpoints for:
- Creating new sessions
- Listing all sessions
- Retrieving session details
- Updating session settings (model, system prompt, selected servers, history)
- Deleting sessions
- Getting session messages
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from toolchat_server.dependencies import get_connection_manager, get_session_manager
from toolchat_server.models.sessions import (
    CreateSessionRequest,
    MessagesResponse,
    SessionDetailResponse,
    SessionListItem,
    SessionListResponse,
    SessionResponse,
    UpdateSessionRequest,
)
from toolchat_server.routers.chat import message_response
from toolchat_server.routers.errors import api_error, session_not_found
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.sessions import ChatSession, SessionCreationOptions, SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def _session_response(session: ChatSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        model=session.model,
        created_at=session.metadata.created_at,
        updated_at=session.metadata.updated_at,
        message_count=session.metadata.message_count,
        system_prompt=session.metadata.system_prompt,
        selected_server_ids=session.metadata.selected_server_ids,
        max_history=session.metadata.max_history,
    )


def _check_server_ids(manager: ConnectionManager, server_ids: list[str] | None) -> None:
    if not server_ids:
        return
    unknown = [sid for sid in server_ids if manager.config_store.get(sid) is None]
    if unknown:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "unknown_server",
            f"Unknown server IDs: {', '.join(unknown)}",
            {"server_ids": unknown},
        )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new session",
)
async def create_session(
    request: CreateSessionRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> SessionResponse:
    """Create a new chat session.

    Raises:
        HTTPException: 400 if a selected server ID is unknown
    """
    _check_server_ids(manager, request.selected_server_ids)
    try:
        session = session_manager.create_session(
            SessionCreationOptions(
                model=request.model,
                system_prompt=request.system_prompt,
                selected_server_ids=request.selected_server_ids,
                max_history=request.max_history,
            )
        )
    except Exception as e:
        logger.error(f"Failed to create session: {e}", exc_info=True)
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "session_create_error",
            f"Failed to create session: {str(e)}",
        )
    return _session_response(session)


@router.get("", response_model=SessionListResponse, summary="List all sessions")
async def list_sessions(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionListResponse:
    """List all chat sessions, sorted by most recently updated."""
    return SessionListResponse(
        sessions=[
            SessionListItem(
                session_id=session.session_id,
                model=session.model,
                created_at=session.metadata.created_at,
                updated_at=session.metadata.updated_at,
                message_count=session.metadata.message_count,
                preview=session.get_preview(),
            )
            for session in session_manager.list_sessions()
        ]
    )


@router.get(
    "/{session_id}",
    response_model=SessionDetailResponse,
    summary="Get session details",
)
async def get_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionDetailResponse:
    """Get full details of a specific session including message history.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        session = session_manager.get_session(session_id)
    except FileNotFoundError:
        logger.warning(f"Session {session_id} not found")
        raise session_not_found(session_id)

    return SessionDetailResponse(
        **_session_response(session).model_dump(),
        messages=[message_response(m) for m in session.messages],
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a session",
)
async def delete_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> None:
    try:
        session_manager.delete_session(session_id)
    except FileNotFoundError:
        logger.warning(f"Session {session_id} not found")
        raise session_not_found(session_id)


@router.patch(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Update session settings",
)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> SessionResponse:
    """Update the model, system prompt, selected servers or history window.

    Raises:
        HTTPException: 404 if session not found, 400 if a server ID is unknown
    """
    _check_server_ids(manager, request.selected_server_ids)
    try:
        session = session_manager.update_session(
            session_id=session_id,
            model=request.model,
            system_prompt=request.system_prompt,
            selected_server_ids=request.selected_server_ids,
            max_history=request.max_history,
        )
    except FileNotFoundError:
        logger.warning(f"Session {session_id} not found")
        raise session_not_found(session_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update session {session_id}: {e}", exc_info=True)
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "session_update_error",
            f"Failed to update session: {str(e)}",
        )
    return _session_response(session)


@router.get(
    "/{session_id}/messages",
    response_model=MessagesResponse,
    summary="Get session messages",
)
async def get_messages(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> MessagesResponse:
    try:
        messages = session_manager.get_messages(session_id)
    except FileNotFoundError:
        logger.warning(f"Session {session_id} not found")
        raise session_not_found(session_id)
    return MessagesResponse(messages=[message_response(m) for m in messages])
