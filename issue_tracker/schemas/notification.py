from datetime import datetime

from .base import ApiModel


class NotificationOut(ApiModel):
    id: int
    user_id: int
    ticket_id: int | None = None
    ticket_title: str | None = None
    type: str
    message: str
    is_read: bool
    created_at: datetime


class UnreadCountOut(ApiModel):
    unread_count: int
