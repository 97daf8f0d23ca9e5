"""Notification schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class NotificationKind(str, Enum):
    JOB_COMPLETED = "job_completed"
    REVIEW_COMPLETED = "review_completed"
    JOB_FAILED = "job_failed"


class Notification(BaseModel):
    id: str
    user_id: str
    kind: NotificationKind
    message: str
    job_id: str
    read: bool
    created_at: datetime


class NotificationList(BaseModel):
    items: list[Notification]
    unread_count: int
