"""Message content shown for each tool call state, and tool result rendering."""

import json
from typing import Any

from mcp.types import CallToolResult

RESULT_TAG = "json:mcp-tool-resp"


def short_call_id(call_id: str) -> str:
    return call_id[:8]


def pending_content(tool_name: str, server_name: str, args: Any) -> str:
    rendered = json.dumps(args, indent=2, ensure_ascii=False)
    return (
        f"Wants to use tool: **{tool_name}** on **{server_name}** "
        f"with arguments: ```json\n{rendered}\n```"
    )


def running_content(tool_name: str, server_name: str, call_id: str) -> str:
    return (
        f"Running tool: **{tool_name}** on **{server_name}**... "
        f"(ID: {short_call_id(call_id)})"
    )


def result_content(call_id: str, rendered_result: str) -> str:
    return f"```{RESULT_TAG}[call-id={call_id}]\n{rendered_result}\n```"


def error_content(tool_name: str, server_name: str, error_message: str) -> str:
    return f"Tool **{tool_name}** on **{server_name}** failed: {error_message}"


def denied_content(tool_name: str, server_name: str) -> str:
    return f"User denied the request to use tool **{tool_name}** on **{server_name}**."


def _first_part(result: CallToolResult) -> Any:
    return result.content[0] if result.content else None


def format_tool_result(result: CallToolResult) -> str:
    """Render a tool result for display in the transcript.

    Only the first content part is shown. Text is used as-is, other part
    types are rendered as JSON.
    """
    part = _first_part(result)
    if part is None:
        return "[No Content Returned]"
    if result.isError:
        return f"Error: {getattr(part, 'text', None) or '[Unknown Error Structure]'}"
    if part.type == "text":
        return part.text or '""'
    return json.dumps(part.model_dump(mode="json", exclude_none=True), indent=2)


def format_result_for_model(result: CallToolResult) -> str:
    """Render a tool result for the feedback message sent back to the model."""
    part = _first_part(result)
    if part is None:
        return "[Tool returned no content]"
    if result.isError:
        return f"Error: {getattr(part, 'text', None) or '[Unknown Error Structure]'}"
    if part.type == "text":
        return part.text or ""
    return json.dumps(part.model_dump(mode="json", exclude_none=True))
