"""Built-in in-process tool servers.

Built-ins are pre-registered in the server configuration list and resolved by
id when the in-process transport starts. They cannot be deleted.
"""

from mcp.server.fastmcp import FastMCP

from toolchat_server.servers.builtin.expr_evaluator import (
    create_expr_evaluator_server,
    evaluate_expression,
)
from toolchat_server.servers.builtin.time_server import (
    convert_time,
    create_time_server,
    get_current_time,
)
from toolchat_server.servers.config import InProcessServerConfig

EXPR_EVALUATOR_ID = "builtin::expr_evaluator"
TIME_SERVER_ID = "builtin::time"


def create_builtin_registry() -> dict[str, FastMCP]:
    """Create a fresh server object for every built-in, keyed by config id."""
    return {
        EXPR_EVALUATOR_ID: create_expr_evaluator_server(),
        TIME_SERVER_ID: create_time_server(),
    }


def default_builtin_configs() -> list[InProcessServerConfig]:
    return [
        InProcessServerConfig(
            id=EXPR_EVALUATOR_ID,
            name="Expression Evaluator",
            description="Evaluates arithmetic expressions.",
            enabled=True,
            auto_approve_tools=False,
        ),
        InProcessServerConfig(
            id=TIME_SERVER_ID,
            name="Time Server",
            description="Current time lookup and timezone conversion.",
            enabled=False,
            auto_approve_tools=True,
        ),
    ]


__all__ = [
    "EXPR_EVALUATOR_ID",
    "TIME_SERVER_ID",
    "create_builtin_registry",
    "default_builtin_configs",
    "evaluate_expression",
    "get_current_time",
    "convert_time",
]
