"""In-memory hub for user-facing notifications.

Connection changes, tool call outcomes and configuration errors are published
here and fanned out to every subscriber of the notifications SSE stream.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    notification_id: str
    level: NotificationLevel
    message: str
    timestamp: str


class NotificationHub:
    """Publishes notifications to subscriber queues and keeps a short history.

    Attributes:
        history_size: Number of recent notifications kept for ``recent()``
    """

    def __init__(self, history_size: int = 100) -> None:
        self.history_size = history_size
        self._history: deque[Notification] = deque(maxlen=history_size)
        self._subscribers: set[asyncio.Queue[Notification]] = set()

    def publish(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(
            notification_id=uuid.uuid4().hex[:10],
            level=level,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        self._history.append(notification)
        for queue in list(self._subscribers):
            queue.put_nowait(notification)

        logger.debug(f"Notification [{level.value}]: {message}")
        return notification

    def info(self, message: str) -> Notification:
        return self.publish(NotificationLevel.INFO, message)

    def success(self, message: str) -> Notification:
        return self.publish(NotificationLevel.SUCCESS, message)

    def warning(self, message: str) -> Notification:
        return self.publish(NotificationLevel.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.publish(NotificationLevel.ERROR, message)

    def recent(self) -> list[Notification]:
        return list(self._history)

    def subscribe(self) -> asyncio.Queue[Notification]:
        queue: asyncio.Queue[Notification] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Notification]) -> None:
        self._subscribers.discard(queue)

    async def stream(self) -> AsyncIterator[Notification]:
        """Yield notifications published after the call, until the consumer stops."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)
