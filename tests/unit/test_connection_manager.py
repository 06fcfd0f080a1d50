"""Unit tests for ConnectionManager lifecycle and configuration changes."""

import asyncio

import pytest

from toolchat_server.mcp_client import McpClient, McpClientError
from toolchat_server.servers import ServerConfigError, ServerPhase
from toolchat_server.servers.builtin import EXPR_EVALUATOR_ID, TIME_SERVER_ID


def _add_remote(manager, name: str = "Weather") -> str:
    config = manager.add_server(
        {"kind": "remote-stream", "name": name, "url": "http://localhost:9000/sse"}
    )
    return config.id


@pytest.mark.asyncio
async def test_connect_discovers_capabilities(manager, client_factory, notifications):
    state = await manager.connect(EXPR_EVALUATOR_ID)

    assert state.phase == ServerPhase.CONNECTED
    assert state.client is client_factory.clients[0]
    assert [tool.name for tool in state.capabilities.tools] == ["expr_evaluator"]
    assert manager.connected_count() == 1
    assert any("connected" in n.message for n in notifications.recent())


@pytest.mark.asyncio
async def test_connect_skips_disabled_and_unknown_servers(manager, client_factory):
    disabled = await manager.connect(TIME_SERVER_ID)
    unknown = await manager.connect("custom::missing")

    assert disabled.phase == ServerPhase.DISCONNECTED
    assert unknown.phase == ServerPhase.DISCONNECTED
    assert client_factory.clients == []


@pytest.mark.asyncio
async def test_connect_twice_keeps_the_same_client(manager, client_factory):
    first = await manager.connect(EXPR_EVALUATOR_ID)
    second = await manager.connect(EXPR_EVALUATOR_ID)

    assert second.client is first.client
    assert len(client_factory.clients) == 1


@pytest.mark.asyncio
async def test_concurrent_connects_create_one_client(manager, client_factory):
    client_factory.connect_gate = asyncio.Event()

    first = asyncio.create_task(manager.connect(EXPR_EVALUATOR_ID))
    await asyncio.sleep(0)
    assert manager.get_state(EXPR_EVALUATOR_ID).is_connecting

    second = await manager.connect(EXPR_EVALUATOR_ID)
    client_factory.connect_gate.set()
    await first

    assert second.phase == ServerPhase.CONNECTING
    assert len(client_factory.clients) == 1
    assert manager.get_state(EXPR_EVALUATOR_ID).is_connected


@pytest.mark.asyncio
async def test_discovery_failure_is_isolated(manager, client_factory):
    client_factory.prompts_error = McpClientError("method_not_found", "prompts/list unsupported")

    state = await manager.connect(EXPR_EVALUATOR_ID)

    assert state.phase == ServerPhase.CONNECTED
    assert len(state.capabilities.tools) == 1
    assert state.capabilities.prompts == []


@pytest.mark.asyncio
async def test_handshake_failure_records_error_and_cleans_up(
    manager, client_factory, notifications
):
    client_factory.connect_error = McpClientError("handshake_error", "Handshake failed: boom")

    state = await manager.connect(EXPR_EVALUATOR_ID)

    client = client_factory.clients[0]
    assert state.phase == ServerPhase.ERROR
    assert state.error == "Handshake failed: boom"
    assert state.client is None
    assert client.close_calls == 1
    assert client.transport.closed == 1
    assert notifications.recent()[-1].level.value == "error"


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(manager, client_factory):
    await manager.connect(EXPR_EVALUATOR_ID)
    client = client_factory.clients[0]

    await manager.disconnect(EXPR_EVALUATOR_ID)
    await manager.disconnect(EXPR_EVALUATOR_ID)
    await manager.disconnect("custom::never-connected")

    assert client.close_calls == 1
    assert manager.get_state(EXPR_EVALUATOR_ID).phase == ServerPhase.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_resets_even_if_close_fails(manager, client_factory, notifications):
    await manager.connect(EXPR_EVALUATOR_ID)
    client_factory.close_error = RuntimeError("socket already closed")

    await manager.disconnect(EXPR_EVALUATOR_ID)

    state = manager.get_state(EXPR_EVALUATOR_ID)
    assert state.phase == ServerPhase.DISCONNECTED
    assert state.client is None
    assert "Error disconnecting" in notifications.recent()[-1].message


@pytest.mark.asyncio
async def test_disconnect_during_connect_wins(manager, client_factory):
    client_factory.connect_gate = asyncio.Event()

    connecting = asyncio.create_task(manager.connect(EXPR_EVALUATOR_ID))
    await asyncio.sleep(0)
    await manager.disconnect(EXPR_EVALUATOR_ID)
    client_factory.connect_gate.set()
    await connecting

    assert manager.get_state(EXPR_EVALUATOR_ID).phase == ServerPhase.DISCONNECTED


@pytest.mark.asyncio
async def test_state_map_is_copy_on_write(manager):
    before = manager.states

    await manager.connect(EXPR_EVALUATOR_ID)

    assert EXPR_EVALUATOR_ID not in before
    assert EXPR_EVALUATOR_ID in manager.states


@pytest.mark.asyncio
async def test_connect_all_and_disconnect_all(manager, client_factory):
    server_id = _add_remote(manager)
    await manager.set_enabled(server_id, True)
    await manager.disconnect(server_id)

    await asyncio.gather(*manager.connect_all())
    assert manager.connected_count() == 2

    await asyncio.gather(*manager.disconnect_all())
    assert manager.connected_count() == 0


@pytest.mark.asyncio
async def test_added_servers_start_disabled(manager, config_store):
    server_id = _add_remote(manager)

    assert server_id.startswith("custom::")
    assert config_store.require(server_id).enabled is False


@pytest.mark.asyncio
async def test_toggle_connects_and_disconnects(manager):
    server_id = _add_remote(manager)

    enabled = await manager.toggle(server_id)
    assert enabled.enabled is True
    assert manager.get_state(server_id).is_connected

    disabled = await manager.toggle(server_id)
    assert disabled.enabled is False
    assert manager.get_state(server_id).phase == ServerPhase.DISCONNECTED


@pytest.mark.asyncio
async def test_update_of_connection_params_reconnects(manager, client_factory):
    server_id = _add_remote(manager)
    await manager.set_enabled(server_id, True)
    old_client = manager.get_state(server_id).client

    await manager.update_server(server_id, {"url": "http://localhost:9001/sse"})

    assert old_client.close_calls == 1
    assert manager.get_state(server_id).phase == ServerPhase.DISCONNECTED


@pytest.mark.asyncio
async def test_update_of_name_keeps_connection(manager):
    server_id = _add_remote(manager)
    await manager.set_enabled(server_id, True)
    client = manager.get_state(server_id).client

    updated = await manager.update_server(server_id, {"name": "Forecast"})

    assert updated.name == "Forecast"
    assert manager.get_state(server_id).client is client


@pytest.mark.asyncio
async def test_builtin_connection_params_are_immutable(manager):
    with pytest.raises(ServerConfigError) as exc_info:
        await manager.update_server(EXPR_EVALUATOR_ID, {"name": "Calculator"})

    assert exc_info.value.code == "immutable_config"


@pytest.mark.asyncio
async def test_remove_server_disconnects_and_drops_state(manager):
    server_id = _add_remote(manager)
    await manager.set_enabled(server_id, True)
    client = manager.get_state(server_id).client

    await manager.remove_server(server_id)

    assert client.close_calls == 1
    assert server_id not in manager.states
    assert manager.config_store.get(server_id) is None


@pytest.mark.asyncio
async def test_builtins_cannot_be_removed(manager):
    with pytest.raises(ServerConfigError) as exc_info:
        await manager.remove_server(EXPR_EVALUATOR_ID)

    assert exc_info.value.code == "builtin_not_deletable"


# --- Protocol client handshake ---


@pytest.mark.asyncio
async def test_disconnect_during_handshake_ends_the_connect(manager):
    manager.client_factory = lambda: McpClient("toolchat-test", "0.0.1", request_timeout_s=60)

    connecting = asyncio.create_task(manager.connect(EXPR_EVALUATOR_ID))
    await asyncio.sleep(0.05)
    pending = manager.get_state(EXPR_EVALUATOR_ID)
    assert pending.is_connecting

    await asyncio.wait_for(manager.disconnect(EXPR_EVALUATOR_ID), timeout=2)
    state = await asyncio.wait_for(connecting, timeout=2)

    assert state.phase == ServerPhase.DISCONNECTED
    assert manager.get_state(EXPR_EVALUATOR_ID).phase == ServerPhase.DISCONNECTED
    assert not pending.client.connected
    assert pending.transport.closed >= 1


@pytest.mark.asyncio
async def test_client_close_during_handshake_fails_connect(manager):
    client = McpClient("toolchat-test", "0.0.1", request_timeout_s=60)
    transport = manager.transport_factory(None)

    connecting = asyncio.create_task(client.connect(transport))
    await asyncio.sleep(0.05)
    await asyncio.wait_for(client.close(), timeout=2)

    with pytest.raises(McpClientError) as exc_info:
        await asyncio.wait_for(connecting, timeout=2)
    assert exc_info.value.error_type == "handshake_error"
    assert transport.closed == 1
