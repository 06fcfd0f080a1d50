"""Detection of a tool invocation block at the end of a model turn.

A turn may end with one fenced block tagged ``json:mcp-tool-call`` (the
shorter ``json:tool-call`` tag is accepted as well) whose body is a JSON object
with ``serverId``, ``toolName`` and ``arguments``. A block followed by anything
other than whitespace is treated as ordinary text.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

TOOL_CALL_TAG = "json:mcp-tool-call"

_TRAILING_BLOCK = re.compile(
    r"```json:(?:mcp-)?tool-call[ \t]*\r?\n(?P<body>(?:(?!```).)*?)\r?\n?```\s*\Z",
    re.DOTALL,
)


@dataclass(frozen=True)
class ToolCallRequest:
    """A well-formed invocation block.

    Attributes:
        call_id: Fresh identifier for this call
        server_id: Target server id
        tool_name: Tool name on that server
        arguments: Tool arguments, any JSON value
        leading_text: Turn text before the block, stripped
    """

    call_id: str
    server_id: str
    tool_name: str
    arguments: Any
    leading_text: str


@dataclass(frozen=True)
class MalformedToolCall:
    """A trailing block that could not be parsed into a call."""

    reason: str
    text: str


DetectionResult = ToolCallRequest | MalformedToolCall | None


def _find_trailing_block(text: str) -> re.Match[str] | None:
    # The body is matched lazily, so start from the last opening fence
    start = max(text.rfind("```json:mcp-tool-call"), text.rfind("```json:tool-call"))
    if start < 0:
        return None
    return _TRAILING_BLOCK.match(text, start)


def detect_tool_call(text: str) -> DetectionResult:
    """Inspect the complete text of a turn for a trailing invocation block.

    Args:
        text: Accumulated assistant text of the turn

    Returns:
        ToolCallRequest if a valid block ends the text, MalformedToolCall if a
        block ends the text but is invalid, None otherwise
    """
    match = _find_trailing_block(text)
    if match is None:
        return None

    body = match.group("body").strip()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning(f"Tool call block is not valid JSON: {e}")
        return MalformedToolCall(reason=f"Invalid JSON: {e.msg}", text=text)

    if not isinstance(payload, dict):
        return MalformedToolCall(reason="Tool call block must contain a JSON object", text=text)

    server_id = payload.get("serverId")
    tool_name = payload.get("toolName")
    if not isinstance(server_id, str) or not server_id:
        return MalformedToolCall(reason='Missing or invalid "serverId"', text=text)
    if not isinstance(tool_name, str) or not tool_name:
        return MalformedToolCall(reason='Missing or invalid "toolName"', text=text)
    if "arguments" not in payload:
        return MalformedToolCall(reason='Missing "arguments"', text=text)

    request = ToolCallRequest(
        call_id=str(uuid.uuid4()),
        server_id=server_id,
        tool_name=tool_name,
        arguments=payload["arguments"],
        leading_text=text[: match.start()].strip(),
    )
    logger.info(f"Detected tool call {request.call_id}: {server_id}/{tool_name}")
    return request


class ToolCallDetector:
    """Accumulates streamed chunks of one turn and inspects them at the end."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def feed(self, chunk: str) -> None:
        if chunk:
            self._parts.append(chunk)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def finish(self) -> DetectionResult:
        return detect_tool_call(self.text)


def malformed_notice(result: MalformedToolCall) -> str:
    """Annotation appended to a turn whose trailing block could not be used."""
    return f"\n\n*(Tool call not executed: {result.reason})*"
