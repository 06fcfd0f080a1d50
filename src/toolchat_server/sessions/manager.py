"""SessionManager for CRUD operations on chat sessions.

This module provides the SessionManager class which handles:
- Creating new sessions
- Listing sessions sorted by last update
- Retrieving, updating and deleting sessions
"""

import logging
from pathlib import Path

from toolchat_server.sessions.session import ChatSession
from toolchat_server.sessions.types import Message, SessionCreationOptions

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages chat sessions with CRUD operations.

    The SessionManager operates on a directory of JSON session files
    and provides high-level operations for session management.
    """

    def __init__(self, sessions_dir: Path, default_max_history: int = 20):
        """Initialize the SessionManager.

        Args:
            sessions_dir: Directory where session JSON files are stored
            default_max_history: History window for sessions created without one
        """
        self.sessions_dir = sessions_dir
        self.default_max_history = default_max_history
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def create_session(self, options: SessionCreationOptions) -> ChatSession:
        """Create and persist a new chat session."""
        session = ChatSession(
            session_id=ChatSession.generate_session_id(),
            model=options.model,
        )
        session.update_settings(
            system_prompt=options.system_prompt or "",
            selected_server_ids=options.selected_server_ids or [],
            max_history=options.max_history or self.default_max_history,
        )
        self.save(session)

        logger.info(f"Created new session {session.session_id} with model {options.model}")
        return session

    def save(self, session: ChatSession) -> None:
        session.save(self.sessions_dir)

    def list_sessions(self) -> list[ChatSession]:
        """List all sessions, sorted by updated_at descending."""
        sessions: list[ChatSession] = []

        for file_path in self.sessions_dir.glob("*.json"):
            session_id = file_path.stem
            try:
                sessions.append(ChatSession.load(session_id, self.sessions_dir))
            except Exception as e:
                logger.warning(f"Failed to load session {session_id}: {e}")
                continue

        sessions.sort(key=lambda s: s.metadata.updated_at, reverse=True)

        logger.debug(f"Listed {len(sessions)} sessions")
        return sessions

    def get_session(self, session_id: str) -> ChatSession:
        """Get a specific session by ID.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        session = ChatSession.load(session_id, self.sessions_dir)
        logger.debug(f"Retrieved session {session_id}")
        return session

    def delete_session(self, session_id: str) -> None:
        """Delete a session.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        file_path = self.sessions_dir / f"{session_id}.json"

        if not file_path.exists():
            raise FileNotFoundError(f"Session {session_id} not found")

        file_path.unlink()
        logger.info(f"Deleted session {session_id}")

    def update_session(
        self,
        session_id: str,
        model: str | None = None,
        system_prompt: str | None = None,
        selected_server_ids: list[str] | None = None,
        max_history: int | None = None,
    ) -> ChatSession:
        """Update session metadata and persist it.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        session = self.get_session(session_id)

        if model is not None:
            session.update_model(model)
        session.update_settings(
            system_prompt=system_prompt,
            selected_server_ids=selected_server_ids,
            max_history=max_history,
        )
        self.save(session)

        logger.info(f"Updated session {session_id}")
        return session

    def get_messages(self, session_id: str) -> list[Message]:
        return self.get_session(session_id).messages
