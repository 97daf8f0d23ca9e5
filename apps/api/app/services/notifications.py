"""Notification service layer."""

from dataclasses import replace
import logging
from uuid import uuid4

from app.core.logging_safety import safe_log_identifier
from app.repositories.memory import InMemoryStore
from app.repositories.records import NotificationRecord
from app.schemas.notification import Notification, NotificationKind

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def build(self, *, user_id: str, kind: NotificationKind, message: str, job_id: str) -> NotificationRecord:
        """Create an unsaved record so callers can commit it together with other changes."""
        return NotificationRecord(
            id=str(uuid4()),
            user_id=user_id,
            kind=kind,
            message=message,
            job_id=job_id,
            created_at=self._store.now(),
        )

    def notify(self, *, user_id: str, kind: NotificationKind, message: str, job_id: str) -> NotificationRecord:
        record = self.build(user_id=user_id, kind=kind, message=message, job_id=job_id)
        self._store.commit(notifications=[record])
        self.log_created(record)
        return record

    def mark_read(self, *, notification_id: str, user_id: str | None = None) -> bool:
        record = self._store.get_notification(notification_id)
        if record is None or (user_id is not None and record.user_id != user_id):
            return False
        if not record.read:
            self._store.commit(notifications=[replace(record, read=True)])
        return True

    def get(self, notification_id: str) -> NotificationRecord | None:
        return self._store.get_notification(notification_id)

    def list_for(self, *, user_id: str) -> list[NotificationRecord]:
        return self._store.list_notifications_for(user_id)

    def unread_count(self, *, user_id: str) -> int:
        return sum(1 for record in self._store.list_notifications_for(user_id) if not record.read)

    @staticmethod
    def log_created(record: NotificationRecord) -> None:
        logger.info(
            "notification.created user_id=%s job_id=%s kind=%s",
            safe_log_identifier(record.user_id, prefix="uid"),
            record.job_id,
            record.kind.value,
        )

    @staticmethod
    def to_notification(record: NotificationRecord) -> Notification:
        return Notification(
            id=record.id,
            user_id=record.user_id,
            kind=record.kind,
            message=record.message,
            job_id=record.job_id,
            read=record.read,
            created_at=record.created_at,
        )
