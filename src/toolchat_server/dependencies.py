"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings and services.
Long-lived objects are created in the app lifespan and read from app.state.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from toolchat_server.config import ToolchatServerSettings
from toolchat_server.ollama import OllamaClient
from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.services.chat import ChatService
from toolchat_server.services.notifications import NotificationHub
from toolchat_server.services.turns import TurnRegistry
from toolchat_server.sessions import SessionManager
from toolchat_server.tool_calls.workflow import ToolCallWorkflow


@lru_cache
def get_settings() -> ToolchatServerSettings:
    """Get the application settings instance.

    Cached so that the same settings instance is reused across all requests.
    Settings are loaded from environment variables with the TOOLCHAT_ prefix.
    """
    return ToolchatServerSettings()


def _from_state(request: Request, name: str, label: str):
    if not hasattr(request.app.state, name):
        raise HTTPException(
            status_code=503,
            detail=f"{label} not initialized",
        )
    return getattr(request.app.state, name)


def get_ollama_client(request: Request) -> OllamaClient:
    """Get the Ollama client from app state.

    Raises:
        HTTPException: If the Ollama client is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "ollama_client", "Ollama client")


def get_connection_manager(request: Request) -> ConnectionManager:
    return _from_state(request, "connection_manager", "Connection manager")


def get_notifications(request: Request) -> NotificationHub:
    return _from_state(request, "notifications", "Notification hub")


def get_turn_registry(request: Request) -> TurnRegistry:
    return _from_state(request, "turns", "Turn registry")


def get_session_manager(request: Request) -> SessionManager:
    """Get a SessionManager for the configured sessions directory.

    Uses settings from app.state rather than the cached get_settings(),
    so tests can run against their own isolated settings.
    """
    settings = request.app.state.settings
    return SessionManager(
        sessions_dir=settings.resolved_sessions_dir,
        default_max_history=settings.default_max_history,
    )


def get_chat_service(request: Request) -> ChatService:
    """Get a ChatService wired to the shared clients and a fresh workflow."""
    session_manager = get_session_manager(request)
    manager = get_connection_manager(request)
    notifications = get_notifications(request)
    return ChatService(
        ollama_client=get_ollama_client(request),
        session_manager=session_manager,
        manager=manager,
        workflow=ToolCallWorkflow(
            manager=manager,
            session_manager=session_manager,
            notifications=notifications,
        ),
        notifications=notifications,
        max_tool_rounds=request.app.state.settings.max_tool_rounds,
    )
