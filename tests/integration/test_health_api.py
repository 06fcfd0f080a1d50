"""Integration tests for the health endpoint."""

import pytest
from httpx import AsyncClient

from toolchat_server import __version__


@pytest.mark.asyncio
async def test_health_reports_ollama_and_servers(async_client: AsyncClient):
    response = await async_client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == __version__
    assert data["ollama_connected"] is True
    assert data["ollama_host"] == "http://localhost:11434"
    assert data["mcp_servers_connected"] == 0


@pytest.mark.asyncio
async def test_health_counts_connected_servers(async_client: AsyncClient):
    await async_client.post("/api/v1/mcp/servers/builtin::expr_evaluator/connect")

    response = await async_client.get("/api/v1/health")

    assert response.json()["mcp_servers_connected"] == 1


@pytest.mark.asyncio
async def test_health_when_ollama_is_down(async_client: AsyncClient, mock_ollama_client):
    mock_ollama_client.check_connection.return_value = False

    response = await async_client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["ollama_connected"] is False
