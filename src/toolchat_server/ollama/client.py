"""Async Ollama client wrapper.

This module provides an async wrapper around the ollama.AsyncClient for
communicating with the Ollama API. The client is created once at startup
and reused by every conversation turn. Streamed responses are reduced to
``ChatChunk`` objects carrying only what a turn consumes.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
import ollama

logger = logging.getLogger(__name__)


@dataclass
class ChatChunk:
    """One streamed piece of a completion.

    Attributes:
        content: Text added by this chunk, empty if none
        done: True on the final chunk
        eval_count: Number of generated tokens, final chunk only
        prompt_eval_count: Number of prompt tokens, final chunk only
    """

    content: str = ""
    done: bool = False
    eval_count: int | None = None
    prompt_eval_count: int | None = None


class OllamaError(RuntimeError):
    """Ollama rejected the request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def to_chat_chunk(raw: Any) -> ChatChunk:
    """Convert a response chunk from the ollama library into a ``ChatChunk``."""
    data = raw.model_dump() if hasattr(raw, "model_dump") else dict(raw)
    message = data.get("message") or {}
    return ChatChunk(
        content=message.get("content") or "",
        done=bool(data.get("done")),
        eval_count=data.get("eval_count"),
        prompt_eval_count=data.get("prompt_eval_count"),
    )


class OllamaClient:
    """Async client for interacting with Ollama API.

    All chat operations use streaming, including the non-streaming HTTP
    endpoints, which collect the chunks before returning.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str) -> None:
        self.host = host
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def chat_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
    ) -> AsyncIterator[ChatChunk]:
        """Stream a chat completion from Ollama.

        Args:
            model: The model name to use for the chat
            messages: List of message dicts in Ollama format:
                      [{"role": "user", "content": "..."}, ...]

        Yields:
            ChatChunk: Content pieces; the last one has ``done`` set and
            carries the token counts

        Raises:
            OllamaError: If Ollama returns an error or cannot be reached
        """
        logger.debug(f"Starting chat stream with model: {model} ({len(messages)} messages)")
        try:
            async for raw in await self._client.chat(
                model=model,
                messages=messages,
                stream=True,
            ):
                chunk = to_chat_chunk(raw)
                yield chunk
                if chunk.done:
                    logger.debug(
                        f"Chat stream completed: eval_count={chunk.eval_count}, "
                        f"prompt_eval_count={chunk.prompt_eval_count}"
                    )
        except ollama.ResponseError as e:
            logger.error(f"Ollama rejected chat request for {model}: {e.error}")
            raise OllamaError(e.error, status_code=e.status_code) from e
        except (httpx.HTTPError, ConnectionError) as e:
            logger.error(f"Could not reach Ollama at {self.host}: {e}")
            raise OllamaError(f"Could not reach Ollama at {self.host}: {e}") from e

    async def close(self) -> None:
        """Close the client.

        ollama.AsyncClient wraps an httpx client that is released with it.
        """
        logger.debug("OllamaClient closed")
