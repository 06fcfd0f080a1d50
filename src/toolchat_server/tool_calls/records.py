"""Allowed transitions between tool call records.

pending -> running | denied | error
running -> result | error

``result``, ``error`` and ``denied`` are terminal.
"""

from toolchat_server.sessions.types import (
    DeniedToolCall,
    PendingToolCall,
    RunningToolCall,
    ToolCallFailure,
    ToolCallRecord,
    ToolCallResult,
)

TERMINAL_TYPES = frozenset({"result", "error", "denied"})

_ALLOWED: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "denied", "error"}),
    "running": frozenset({"result", "error"}),
}


class ToolCallStateError(RuntimeError):
    """A tool call record was asked to make a transition it does not allow."""

    def __init__(self, call_id: str, current: str, target: str):
        super().__init__(f"Tool call {call_id} cannot move from {current} to {target}")
        self.call_id = call_id
        self.current = current
        self.target = target


class ToolCallNotFoundError(LookupError):
    """No message carries a tool call with the requested id."""


def is_terminal(record: ToolCallRecord) -> bool:
    return record.type in TERMINAL_TYPES


def _check(record: ToolCallRecord, target: str) -> None:
    if target not in _ALLOWED.get(record.type, frozenset()):
        raise ToolCallStateError(record.call_id, record.type, target)


def to_running(record: ToolCallRecord) -> RunningToolCall:
    if not isinstance(record, PendingToolCall):
        raise ToolCallStateError(record.call_id, record.type, "running")
    return RunningToolCall(
        call_id=record.call_id,
        server_id=record.server_id,
        tool_name=record.tool_name,
        server_name=record.server_name,
        args=record.args,
    )


def to_result(record: ToolCallRecord) -> ToolCallResult:
    if not isinstance(record, RunningToolCall):
        raise ToolCallStateError(record.call_id, record.type, "result")
    return ToolCallResult(
        call_id=record.call_id,
        server_id=record.server_id,
        tool_name=record.tool_name,
        server_name=record.server_name,
        args=record.args,
    )


def to_error(record: ToolCallRecord, error_message: str) -> ToolCallFailure:
    _check(record, "error")
    return ToolCallFailure(
        call_id=record.call_id,
        server_id=record.server_id,
        tool_name=record.tool_name,
        error_message=error_message,
    )


def to_denied(record: ToolCallRecord) -> DeniedToolCall:
    _check(record, "denied")
    return DeniedToolCall(
        call_id=record.call_id,
        server_id=record.server_id,
        tool_name=record.tool_name,
    )
