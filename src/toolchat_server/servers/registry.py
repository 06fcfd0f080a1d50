"""Capability registry: renders the tool instructions injected into the system prompt.

The block is recomputed from the manager's current runtime states on every
call, so it always reflects which selected servers are connected right now.
"""

import json
import logging
from collections.abc import Iterable

from mcp.types import Tool

from toolchat_server.servers.manager import ConnectionManager
from toolchat_server.tool_calls.detector import TOOL_CALL_TAG

logger = logging.getLogger(__name__)

_INSTRUCTIONS = """\
---------------- MCP Tools Available ----------------
You can call external tools provided by connected MCP servers.

To call a tool:
1. Write your normal response text first, if any.
2. End your response with exactly one fenced code block tagged `{tag}`. Nothing may follow it.
3. The block contains one JSON object:
   ```json
   {{
     "serverId": "SERVER_ID",
     "toolName": "TOOL_NAME",
     "arguments": {{}}
   }}
   ```
   - `serverId` is the exact ID of the server listed below (e.g. "builtin::time").
   - `toolName` is the exact name of the tool on that server.
   - `arguments` is a JSON object matching the tool's input schema; use {{}} when it takes none.

Example (calling `get_current_time` on `builtin::time`):

Let me look up the time for you.
```{tag}
{{
  "serverId": "builtin::time",
  "toolName": "get_current_time",
  "arguments": {{"timezone": "Europe/Berlin"}}
}}
```

Rules:
- At most one `{tag}` block per response, and it must be the last thing in it.
- The JSON inside the block must be valid.
- Tool names are only unique within one server; always give the right `serverId`.

Available Tools START
{sections}
Available Tools END
-----------------------------------------------------"""


def _render_tool(server_id: str, tool: Tool) -> str:
    try:
        schema = json.dumps(tool.inputSchema or {}, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to render schema of tool {tool.name} on {server_id}: {e}")
        schema = "{}"
    return (
        f"- Tool: `{tool.name}`\n"
        f"  Description: {tool.description or 'No description'}\n"
        f"  Input JSON Schema:\n```json\n{schema}\n```"
    )


def build_tool_prompt(manager: ConnectionManager, selected_ids: Iterable[str]) -> str:
    """Render the tool instructions for the selected, connected servers.

    Servers that are not connected, have no config or expose no tools are
    skipped.

    Args:
        manager: Connection manager holding the runtime states
        selected_ids: Server ids whose tools should be offered

    Returns:
        str: The instruction block, or "" when no server qualifies
    """
    sections: list[str] = []
    for server_id in selected_ids:
        state = manager.get_state(server_id)
        config = manager.config_store.get(server_id)
        if config is None or not state.is_connected or state.capabilities is None:
            continue
        if not state.capabilities.tools:
            continue

        tools = "\n".join(_render_tool(server_id, tool) for tool in state.capabilities.tools)
        sections.append(f"Server: `{config.name}` (ID: `{server_id}`)\n{tools}")

    if not sections:
        return ""
    return _INSTRUCTIONS.format(tag=TOOL_CALL_TAG, sections="\n\n".join(sections))
