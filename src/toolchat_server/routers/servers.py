"""Tool server router: configuration CRUD and connection control.

This module provides REST API endpoints for:
- Listing configured servers with their runtime state
- Adding, updating and deleting custom servers
- Enabling/disabling servers (which connects/disconnects them)
- Connecting and disconnecting one or all servers
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from toolchat_server.dependencies import get_connection_manager
from toolchat_server.models.servers import (
    BulkActionResponse,
    CreateServerRequest,
    ServerListResponse,
    ServerStateResponse,
    ToolInfo,
    UpdateServerRequest,
)
from toolchat_server.routers.errors import server_config_error
from toolchat_server.servers.config import ServerConfig, ServerConfigError
from toolchat_server.servers.manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/mcp/servers", tags=["mcp-servers"])


def _state_response(manager: ConnectionManager, config: ServerConfig) -> ServerStateResponse:
    state = manager.get_state(config.id)
    capabilities = state.capabilities
    tools = []
    if capabilities is not None:
        tools = [
            ToolInfo(
                name=tool.name,
                description=tool.description,
                input_schema=tool.inputSchema or {},
            )
            for tool in capabilities.tools
        ]
    return ServerStateResponse(
        config=config.model_dump(mode="json", by_alias=True),
        phase=state.phase.value,
        error=state.error,
        tools=tools,
        resource_count=len(capabilities.resources) if capabilities else 0,
        prompt_count=len(capabilities.prompts) if capabilities else 0,
    )


def _require(manager: ConnectionManager, server_id: str) -> ServerConfig:
    try:
        return manager.config_store.require(server_id)
    except ServerConfigError as e:
        raise server_config_error(e)


@router.get("", response_model=ServerListResponse, summary="List tool servers")
async def list_servers(
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerListResponse:
    """List all configured servers, built-ins first, with their runtime state."""
    return ServerListResponse(
        servers=[_state_response(manager, config) for config in manager.config_store.list()]
    )


@router.post(
    "",
    response_model=ServerStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a custom tool server",
)
async def create_server(
    request: CreateServerRequest,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    """Add a custom server. It is stored disabled and must be enabled to connect.

    Raises:
        HTTPException: 400 if the configuration is invalid
    """
    try:
        config = manager.add_server(request.model_dump(exclude_none=True))
    except ServerConfigError as e:
        logger.warning(f"Server creation failed: {e.message}")
        raise server_config_error(e)
    return _state_response(manager, config)


@router.post(
    "/connect-all",
    response_model=BulkActionResponse,
    summary="Connect all enabled servers",
)
async def connect_all(
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> BulkActionResponse:
    """Start connecting every enabled server that is not connected yet.

    Connections proceed in the background; progress is reported through
    notifications and the server list.
    """
    return BulkActionResponse(scheduled=len(manager.connect_all()))


@router.post(
    "/disconnect-all",
    response_model=BulkActionResponse,
    summary="Disconnect all servers",
)
async def disconnect_all(
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> BulkActionResponse:
    return BulkActionResponse(scheduled=len(manager.disconnect_all()))


@router.get("/{server_id}", response_model=ServerStateResponse, summary="Get a tool server")
async def get_server(
    server_id: str,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    return _state_response(manager, _require(manager, server_id))


@router.patch("/{server_id}", response_model=ServerStateResponse, summary="Update a tool server")
async def update_server(
    server_id: str,
    request: UpdateServerRequest,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    """Update a server configuration.

    A live connection is closed when its connection parameters change.
    Changing ``enabled`` connects or disconnects the server.

    Raises:
        HTTPException: 404 if the server is unknown, 400 if the change is not allowed
    """
    changes = request.model_dump(exclude_unset=True)
    try:
        config = await manager.update_server(server_id, changes)
    except ServerConfigError as e:
        raise server_config_error(e)
    return _state_response(manager, config)


@router.delete(
    "/{server_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a custom tool server",
)
async def delete_server(
    server_id: str,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> None:
    """Delete a custom server, closing its connection first.

    Raises:
        HTTPException: 404 if the server is unknown, 400 for built-in servers
    """
    try:
        await manager.remove_server(server_id)
    except ServerConfigError as e:
        raise server_config_error(e)


@router.post(
    "/{server_id}/toggle",
    response_model=ServerStateResponse,
    summary="Enable or disable a tool server",
)
async def toggle_server(
    server_id: str,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    try:
        config = await manager.toggle(server_id)
    except ServerConfigError as e:
        raise server_config_error(e)
    return _state_response(manager, config)


@router.post(
    "/{server_id}/connect",
    response_model=ServerStateResponse,
    summary="Connect a tool server",
)
async def connect_server(
    server_id: str,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    """Connect an enabled server and discover its tools.

    Connection failures are reported in the returned state, not as an HTTP error.
    """
    config = _require(manager, server_id)
    await manager.connect(server_id)
    return _state_response(manager, config)


@router.post(
    "/{server_id}/disconnect",
    response_model=ServerStateResponse,
    summary="Disconnect a tool server",
)
async def disconnect_server(
    server_id: str,
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> ServerStateResponse:
    config = _require(manager, server_id)
    await manager.disconnect(server_id)
    return _state_response(manager, config)
