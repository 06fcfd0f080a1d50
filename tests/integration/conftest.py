"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures that ensure
proper test isolation and mocking for API endpoint tests.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from toolchat_server.ollama import ChatChunk


@pytest.fixture(autouse=True)
def mock_ollama_client():
    """Mock OllamaClient for all integration tests.

    This fixture patches the OllamaClient class before the app is created,
    ensuring the lifespan uses our mock instead of creating a real client.
    Tests replace ``chat_stream`` with a scripted async generator.
    """
    with patch("toolchat_server.app.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.host = "http://localhost:11434"
        mock_instance.check_connection.return_value = True

        mock_client_class.return_value = mock_instance

        yield mock_instance


@pytest.fixture(autouse=True)
def clean_session_dir(test_settings):
    """Ensure the sessions directory is clean before and after each test."""
    sessions_dir = test_settings.resolved_sessions_dir

    if sessions_dir.exists():
        for session_file in sessions_dir.glob("*.json"):
            session_file.unlink()

    yield

    if sessions_dir.exists():
        for session_file in sessions_dir.glob("*.json"):
            session_file.unlink()


def scripted_stream(*responses):
    """Build a ``chat_stream`` replacement replaying one response per call.

    Each response is a list of content pieces; the last response repeats.
    """
    remaining = list(responses)

    async def chat_stream(*args, **kwargs):
        pieces = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        for piece in pieces:
            yield ChatChunk(content=piece)
        yield ChatChunk(done=True, eval_count=5, prompt_eval_count=20)

    return chat_stream


def parse_sse(text: str) -> list[dict]:
    """Split an SSE response body into ``{"event": ..., "data": ...}`` dicts."""
    events = []
    normalized_text = text.replace("\r\n", "\n")
    for block in normalized_text.strip().split("\n\n"):
        if not block.strip():
            continue
        event_type = None
        event_data = None
        for part in block.split("\n"):
            if part.startswith("event:"):
                event_type = part.split(":", 1)[1].strip()
            elif part.startswith("data:"):
                event_data = part.split(":", 1)[1].strip()
        if event_type and event_data:
            events.append({"event": event_type, "data": json.loads(event_data)})
    return events


@pytest.fixture
def script():
    return scripted_stream


@pytest.fixture
def sse():
    return parse_sse
