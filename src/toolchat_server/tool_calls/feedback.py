"""Feedback messages that report a tool call outcome back to the model.

The feedback is a user-role message appended after the tool call message. The
model sees it on the resumed turn and continues from there.
"""

import uuid

from toolchat_server.sessions.session import utc_timestamp
from toolchat_server.sessions.types import (
    DeniedToolCall,
    ToolCallResult,
    UserMessage,
)
from toolchat_server.tool_calls.rendering import short_call_id


def _user_message(content: str) -> UserMessage:
    return UserMessage(
        content=content,
        message_id=uuid.uuid4().hex[:10],
        timestamp=utc_timestamp(),
    )


def result_feedback(record: ToolCallResult, result_text: str) -> UserMessage:
    return _user_message(
        f'(Instruction: The tool "{record.tool_name}" on server "{record.server_name}" '
        f"(Call ID: {short_call_id(record.call_id)}) finished execution. "
        f"Result: {result_text})"
    )


def denial_feedback(record: DeniedToolCall, server_name: str) -> UserMessage:
    return _user_message(
        f'(Instruction: The previous request to use the tool "{record.tool_name}" '
        f'on server "{server_name}" was denied by the user. '
        "Please proceed without using this tool.)"
    )
