"""Ollama client wrapper and integration layer.

This package provides the async client used to stream completions from Ollama.
"""

from toolchat_server.ollama.client import ChatChunk, OllamaClient, OllamaError

__all__ = ["ChatChunk", "OllamaClient", "OllamaError"]
