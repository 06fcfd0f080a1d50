"""Tool server configuration models, a discriminated union on ``kind``."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

BUILTIN_PREFIX = "builtin::"
CUSTOM_PREFIX = "custom::"


class ServerConfigError(ValueError):
    """A server configuration is missing, invalid or may not be changed."""

    def __init__(self, code: str, message: str, server_id: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.server_id = server_id


class _BaseServerConfig(BaseModel):
    id: str
    name: str
    description: str = ""
    enabled: bool = False
    auto_approve_tools: bool = Field(default=False, alias="autoApproveTools")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_builtin(self) -> bool:
        return self.id.startswith(BUILTIN_PREFIX)


class RemoteStreamServerConfig(_BaseServerConfig):
    """Server reachable over an HTTP event stream."""

    kind: Literal["remote-stream"] = "remote-stream"
    url: str = Field(min_length=1)


class ExternalProcessServerConfig(_BaseServerConfig):
    """Server launched as a host-managed process."""

    kind: Literal["external-process"] = "external-process"
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)


class InProcessServerConfig(_BaseServerConfig):
    """Built-in server resolved by id; has no connection parameters."""

    kind: Literal["in-process"] = "in-process"


ServerConfig = Annotated[
    RemoteStreamServerConfig | ExternalProcessServerConfig | InProcessServerConfig,
    Field(discriminator="kind"),
]

server_config_adapter: TypeAdapter[ServerConfig] = TypeAdapter(ServerConfig)
server_config_list_adapter: TypeAdapter[list[ServerConfig]] = TypeAdapter(
    list[ServerConfig]
)

# Fields whose change invalidates a live connection
CONNECTION_FIELDS = ("kind", "url", "command", "args")


def connection_params(config: ServerConfig) -> dict:
    """Return the connection-relevant fields of a config for comparison."""
    return {key: getattr(config, key, None) for key in CONNECTION_FIELDS}
