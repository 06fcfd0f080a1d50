"""toolchat-server: chat server for Ollama models with MCP tool calling.

This package provides a REST API and SSE streaming interface for chat
sessions whose models can call tools on MCP servers, with user approval.
"""

__version__ = "0.1.0"

from toolchat_server.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
