"""Pydantic models for the tool server API.

Server configurations themselves are returned as the ``ServerConfig``
union from ``toolchat_server.servers.config``, serialized by alias.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CreateServerRequest(BaseModel):
    """Request body for adding a custom server.

    ``url`` is required for ``remote-stream`` servers, ``command`` for
    ``external-process`` servers. New servers are always added disabled.
    """

    kind: Literal["remote-stream", "external-process"]
    name: str = Field(min_length=1)
    description: str = ""
    url: str | None = None
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    auto_approve_tools: bool = Field(default=False, alias="autoApproveTools")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"kind": "remote-stream", "name": "Weather", "url": "http://localhost:9000/sse"},
                {"kind": "external-process", "name": "Files", "command": "uvx", "args": ["mcp-server-fetch"]},
            ]
        },
    )


class UpdateServerRequest(BaseModel):
    """Partial update of a server config. Built-ins accept only
    ``enabled`` and ``autoApproveTools``."""

    name: str | None = None
    description: str | None = None
    enabled: bool | None = None
    url: str | None = None
    command: str | None = None
    args: list[str] | None = None
    auto_approve_tools: bool | None = Field(default=None, alias="autoApproveTools")

    model_config = ConfigDict(populate_by_name=True)


class ToolInfo(BaseModel):
    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ServerStateResponse(BaseModel):
    """A server config together with its runtime state."""

    config: dict[str, Any]
    phase: str
    error: str | None = None
    tools: list[ToolInfo] = Field(default_factory=list)
    resource_count: int = 0
    prompt_count: int = 0


class ServerListResponse(BaseModel):
    servers: list[ServerStateResponse]


class BulkActionResponse(BaseModel):
    """Result of connect-all / disconnect-all."""

    scheduled: int
