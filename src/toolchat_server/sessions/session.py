"""ChatSession class for managing individual chat sessions.

This module provides the ChatSession class which handles:
- Loading and saving session data to JSON files
- Adding and rewriting messages in the conversation history
- Managing session metadata (model, system prompt, selected servers)
"""

import json
import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from toolchat_server.sessions.types import (
    AssistantMessage,
    Message,
    SessionMetadata,
    SystemMessage,
    UserMessage,
    tool_call_from_dict,
)

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _message_from_dict(data: dict[str, Any]) -> Message:
    """Convert a dictionary to the appropriate Message type.

    Args:
        data: Message data as a dictionary

    Returns:
        Appropriate Message dataclass instance

    Raises:
        ValueError: If role is unknown
    """
    role = data.get("role")

    if role == "user":
        return UserMessage(**data)
    elif role == "system":
        return SystemMessage(**data)
    elif role == "assistant":
        fields = dict(data)
        info = fields.pop("tool_call_info", None)
        return AssistantMessage(
            **fields,
            tool_call_info=tool_call_from_dict(info) if info else None,
        )
    else:
        raise ValueError(f"Unknown message role: {role}")


class ChatSession:
    """Represents a single chat session with message history and metadata.

    A session is persisted as a JSON file with the following structure:
    {
        "metadata": {...},
        "messages": [...]
    }
    """

    def __init__(
        self,
        session_id: str,
        model: str,
        messages: list[Message] | None = None,
        metadata: SessionMetadata | None = None,
    ):
        """Initialize a ChatSession.

        Args:
            session_id: Unique session identifier (10-char hex)
            model: The LLM model name for this session
            messages: Initial message history (default: empty)
            metadata: Session metadata (default: auto-generated)
        """
        self.session_id = session_id
        self.model = model
        self.messages: list[Message] = messages or []

        if metadata is None:
            now = utc_timestamp()
            self.metadata = SessionMetadata(
                session_id=session_id,
                model=model,
                created_at=now,
                updated_at=now,
                message_count=len(self.messages),
            )
        else:
            self.metadata = metadata

    def _touch(self) -> None:
        self.metadata.message_count = len(self.messages)
        self.metadata.updated_at = utc_timestamp()

    def add_message(self, message: Message) -> None:
        """Add a message to the session history.

        Updates the message_count in metadata and the updated_at timestamp.
        """
        self.messages.append(message)
        self._touch()

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def replace_message(self, message_id: str, message: Message) -> None:
        """Swap the message with ``message_id`` in place, keeping its position.

        Raises:
            KeyError: If no message has that id
        """
        for index, existing in enumerate(self.messages):
            if existing.message_id == message_id:
                self.messages[index] = message
                self._touch()
                return
        raise KeyError(f"Message {message_id} not found in session {self.session_id}")

    def update_model(self, model: str) -> None:
        self.model = model
        self.metadata.model = model
        self._touch()

    def update_settings(
        self,
        system_prompt: str | None = None,
        selected_server_ids: list[str] | None = None,
        max_history: int | None = None,
    ) -> None:
        """Update the per-session conversation settings that are given."""
        if system_prompt is not None:
            self.metadata.system_prompt = system_prompt
        if selected_server_ids is not None:
            self.metadata.selected_server_ids = list(dict.fromkeys(selected_server_ids))
        if max_history is not None:
            self.metadata.max_history = max_history
        self._touch()

    def to_dict(self) -> dict[str, Any]:
        """Convert session to a dictionary for JSON serialization."""
        return {
            "metadata": asdict(self.metadata),
            "messages": [asdict(msg) for msg in self.messages],
        }

    def save(self, sessions_dir: Path) -> None:
        """Save the session to a JSON file.

        Args:
            sessions_dir: Directory where session files are stored
        """
        sessions_dir.mkdir(parents=True, exist_ok=True)
        file_path = sessions_dir / f"{self.session_id}.json"

        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.debug(f"Saved session {self.session_id} to {file_path}")

    @classmethod
    def load(cls, session_id: str, sessions_dir: Path) -> "ChatSession":
        """Load a session from a JSON file.

        Args:
            session_id: The session ID to load
            sessions_dir: Directory where session files are stored

        Returns:
            Loaded ChatSession instance

        Raises:
            FileNotFoundError: If session file doesn't exist
            ValueError: If session data is invalid
        """
        file_path = sessions_dir / f"{session_id}.json"

        if not file_path.exists():
            raise FileNotFoundError(f"Session {session_id} not found")

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        metadata_dict = data["metadata"]
        metadata = SessionMetadata(
            session_id=metadata_dict["session_id"],
            model=metadata_dict["model"],
            created_at=metadata_dict["created_at"],
            updated_at=metadata_dict["updated_at"],
            message_count=metadata_dict.get("message_count", 0),
            system_prompt=metadata_dict.get("system_prompt", ""),
            selected_server_ids=metadata_dict.get("selected_server_ids", []),
            max_history=metadata_dict.get("max_history", 20),
            format_version=metadata_dict.get("format_version", "1.0"),
        )

        messages = [
            _message_from_dict(msg_dict) for msg_dict in data.get("messages", [])
        ]

        return cls(
            session_id=session_id,
            model=metadata.model,
            messages=messages,
            metadata=metadata,
        )

    @staticmethod
    def generate_session_id() -> str:
        """Generate a new unique session ID.

        Returns:
            10-character hexadecimal string
        """
        return uuid.uuid4().hex[:10]

    def get_preview(self, max_length: int = 100) -> str:
        """Get a preview of the session (first user message)."""
        for message in self.messages:
            if isinstance(message, UserMessage):
                content = message.content
                if len(content) > max_length:
                    return content[: max_length - 3] + "..."
                return content
        return ""
