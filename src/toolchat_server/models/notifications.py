"""Pydantic models for user notifications."""

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    notification_id: str
    level: str
    message: str
    timestamp: str


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
