"""Notification endpoints: recent history and a live SSE stream."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from toolchat_server.dependencies import get_notifications
from toolchat_server.models.notifications import (
    NotificationListResponse,
    NotificationResponse,
)
from toolchat_server.services.notifications import Notification, NotificationHub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        notification_id=notification.notification_id,
        level=notification.level.value,
        message=notification.message,
        timestamp=notification.timestamp,
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    hub: Annotated[NotificationHub, Depends(get_notifications)],
) -> NotificationListResponse:
    """Most recent notifications, oldest first."""
    return NotificationListResponse(notifications=[_to_response(n) for n in hub.recent()])


@router.get("/stream")
async def stream_notifications(
    hub: Annotated[NotificationHub, Depends(get_notifications)],
) -> EventSourceResponse:
    """Stream notifications as they are published (``notification`` events)."""

    async def event_generator():
        async for notification in hub.stream():
            yield {
                "event": "notification",
                "data": _to_response(notification).model_dump_json(),
            }

    logger.debug("Notification stream subscriber connected")
    return EventSourceResponse(event_generator())
