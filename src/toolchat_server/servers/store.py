"""ServerConfigStore for the persisted, ordered list of tool server configs.

The list is kept in a single JSON file. Built-in servers are always present:
they are added on first load and cannot be removed.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from toolchat_server.servers.builtin import default_builtin_configs
from toolchat_server.servers.config import (
    BUILTIN_PREFIX,
    CUSTOM_PREFIX,
    InProcessServerConfig,
    ServerConfig,
    ServerConfigError,
    server_config_adapter,
    server_config_list_adapter,
)

logger = logging.getLogger(__name__)


class ServerConfigStore:
    """CRUD over the configured tool servers, persisted to ``servers_file``."""

    def __init__(self, servers_file: Path):
        self.servers_file = servers_file
        self._configs: list[ServerConfig] = self._load()

    def _load(self) -> list[ServerConfig]:
        configs: list[ServerConfig] = []
        if self.servers_file.exists():
            with open(self.servers_file, "r", encoding="utf-8") as f:
                configs = server_config_list_adapter.validate_python(json.load(f))
            logger.info(f"Loaded {len(configs)} server configs from {self.servers_file}")

        known_ids = {config.id for config in configs}
        missing = [c for c in default_builtin_configs() if c.id not in known_ids]
        if missing or not self.servers_file.exists():
            configs = [*missing, *configs]
            self._configs = configs
            self.save()
        return configs

    def save(self) -> None:
        self.servers_file.parent.mkdir(parents=True, exist_ok=True)
        data = server_config_list_adapter.dump_python(
            self._configs, mode="json", by_alias=True
        )
        with open(self.servers_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved {len(self._configs)} server configs to {self.servers_file}")

    def list(self) -> list[ServerConfig]:
        return list(self._configs)

    def get(self, server_id: str) -> ServerConfig | None:
        for config in self._configs:
            if config.id == server_id:
                return config
        return None

    def require(self, server_id: str) -> ServerConfig:
        """Get a config or raise ``ServerConfigError`` (code ``server_not_found``)."""
        config = self.get(server_id)
        if config is None:
            raise ServerConfigError(
                "server_not_found",
                f"Configuration for server ID {server_id} not found",
                server_id,
            )
        return config

    def add(self, data: dict[str, Any]) -> ServerConfig:
        """Add a custom server. It gets a fresh ``custom::`` id and starts disabled.

        Args:
            data: Config fields without ``id``/``enabled``; ``kind`` selects the variant

        Raises:
            ServerConfigError: If the data is invalid or describes an in-process server
        """
        if data.get("kind") == "in-process":
            raise ServerConfigError(
                "builtin_not_allowed", "Cannot add new in-process servers."
            )

        payload = {**data, "id": f"{CUSTOM_PREFIX}{uuid.uuid4()}", "enabled": False}
        try:
            config = server_config_adapter.validate_python(payload)
        except ValueError as e:
            raise ServerConfigError("invalid_config", str(e)) from e

        self._configs = [*self._configs, config]
        self.save()
        logger.info(f"Added server {config.id} ({config.name})")
        return config

    def replace(self, config: ServerConfig) -> ServerConfig:
        """Swap the stored config with the same id for ``config``."""
        self.require(config.id)
        self._configs = [config if c.id == config.id else c for c in self._configs]
        self.save()
        return config

    def update(self, server_id: str, changes: dict[str, Any]) -> ServerConfig:
        """Apply ``changes`` to a config and return the new version.

        Built-in servers only accept changes to ``auto_approve_tools`` and
        ``enabled``; their kind and connection parameters are fixed.

        Raises:
            ServerConfigError: If the server is unknown or the change is not allowed
        """
        current = self.require(server_id)
        changes = {key: value for key, value in changes.items() if key != "id"}
        if "autoApproveTools" in changes:
            changes["auto_approve_tools"] = changes.pop("autoApproveTools")

        if isinstance(current, InProcessServerConfig):
            forbidden = set(changes) - {"auto_approve_tools", "enabled"}
            if forbidden:
                raise ServerConfigError(
                    "immutable_config",
                    f"Cannot change {', '.join(sorted(forbidden))} of built-in server {server_id}",
                    server_id,
                )
        elif changes.get("kind") == "in-process":
            raise ServerConfigError(
                "immutable_config",
                f"Cannot turn custom server {server_id} into an in-process server",
                server_id,
            )

        merged = {**current.model_dump(by_alias=False), **changes}
        try:
            updated = server_config_adapter.validate_python(merged)
        except ValueError as e:
            raise ServerConfigError("invalid_config", str(e), server_id) from e

        logger.info(f"Updated server {server_id}")
        return self.replace(updated)

    def remove(self, server_id: str) -> ServerConfig:
        config = self.require(server_id)
        if server_id.startswith(BUILTIN_PREFIX):
            raise ServerConfigError(
                "builtin_not_deletable",
                f"Cannot delete the built-in server: {config.name}",
                server_id,
            )

        self._configs = [c for c in self._configs if c.id != server_id]
        self.save()
        logger.info(f"Removed server {server_id}")
        return config
