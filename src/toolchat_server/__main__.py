"""CLI entry point for toolchat-server.

Invoked as `toolchat-server` (via the script entry point) or
`python -m toolchat_server`. Every option overrides the matching
TOOLCHAT_* environment variable.
"""

import argparse
import sys
from collections.abc import Sequence
from typing import Any

import uvicorn

from toolchat_server import __version__, create_app
from toolchat_server.config import ToolchatServerSettings

# Options stored under the name of the settings field they override
_SETTING_OPTIONS = (
    "host",
    "port",
    "ollama_host",
    "data_dir",
    "servers_file",
    "max_tool_rounds",
    "connect_on_startup",
    "log_level",
)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolchat-server",
        description="Chat server for Ollama models with MCP tool calling",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"toolchat-server {__version__}",
    )

    server = parser.add_argument_group("server")
    server.add_argument(
        "--host",
        help="Host to bind to (default: 127.0.0.1, env TOOLCHAT_HOST)",
    )
    server.add_argument(
        "--port",
        type=int,
        help="Port to bind to (default: 8000, env TOOLCHAT_PORT)",
    )
    server.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, env TOOLCHAT_LOG_LEVEL)",
    )
    server.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development (uvicorn --reload)",
    )

    chat = parser.add_argument_group("chat")
    chat.add_argument(
        "--ollama-host",
        help="Ollama server URL (default: http://localhost:11434, env TOOLCHAT_OLLAMA_HOST)",
    )
    chat.add_argument(
        "--data-dir",
        help="Directory for sessions and the server list (default: ., env TOOLCHAT_DATA_DIR)",
    )
    chat.add_argument(
        "--max-tool-rounds",
        type=_positive_int,
        help="Tool call resumptions per turn (default: 8, env TOOLCHAT_MAX_TOOL_ROUNDS)",
    )

    tools = parser.add_argument_group("tool servers")
    tools.add_argument(
        "--servers-file",
        help=(
            "Tool server list, relative to the data directory "
            "(default: mcp_servers.json, env TOOLCHAT_SERVERS_FILE)"
        ),
    )
    tools.add_argument(
        "--no-connect-on-startup",
        dest="connect_on_startup",
        action="store_const",
        const=False,
        help="Leave enabled tool servers disconnected at startup",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> ToolchatServerSettings:
    """Build settings where given CLI options override environment variables."""
    overrides: dict[str, Any] = {
        name: getattr(args, name)
        for name in _SETTING_OPTIONS
        if getattr(args, name, None) is not None
    }
    return ToolchatServerSettings(**overrides)


def main(argv: Sequence[str] | None = None) -> None:
    """Parse the command line and serve the app with uvicorn."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    sys.exit(main())
