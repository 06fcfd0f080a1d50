"""Error responses shared by the routers.

Every API error carries the detail shape
``{"error": {"code": ..., "message": ..., "details": {...}}}``.
"""

from typing import Any

from fastapi import HTTPException

from toolchat_server.servers.config import ServerConfigError


def api_error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            }
        },
    )


def session_not_found(session_id: str) -> HTTPException:
    return api_error(
        404,
        "session_not_found",
        f"Session {session_id} not found",
        {"session_id": session_id},
    )


def server_config_error(e: ServerConfigError) -> HTTPException:
    """Map a ServerConfigError to 404 (unknown server) or 400 (anything else)."""
    status_code = 404 if e.code == "server_not_found" else 400
    details = {"server_id": e.server_id} if e.server_id else {}
    return api_error(status_code, e.code, e.message, details)
