"""Pytest configuration and shared fixtures for toolchat-server tests.

This module provides common fixtures used across all test modules,
including test app creation and async client setup.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolchat_server import create_app
from toolchat_server.config import ToolchatServerSettings


@pytest.fixture
def test_settings(tmp_path):
    """Create test settings with isolated temporary directories.

    Tool servers are not connected on startup; tests connect them explicitly.
    """
    return ToolchatServerSettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        data_dir=str(tmp_path),
        sessions_dir="chat_sessions",
        servers_file="mcp_servers.json",
        log_level="DEBUG",
        cors_origins=["*"],
        connect_on_startup=False,
    )


@pytest.fixture
def test_app(test_settings):
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
