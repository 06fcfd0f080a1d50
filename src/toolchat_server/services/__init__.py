"""Services for toolchat-server.

This package holds the conversation turn logic (``services.chat``), the
in-flight turn registry and the user notification hub. ``ChatService`` is
imported from its module directly since it depends on the server layer.
"""

from toolchat_server.services.notifications import (
    Notification,
    NotificationHub,
    NotificationLevel,
)
from toolchat_server.services.turns import Turn, TurnInProgressError, TurnRegistry

__all__ = [
    "Notification",
    "NotificationHub",
    "NotificationLevel",
    "Turn",
    "TurnInProgressError",
    "TurnRegistry",
]
