"""Stored record types shared by the store and its persistence backends.

Records are frozen: every write replaces the whole record, so a reader never
observes a half-applied update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from app.schemas.job import JobStatus, Transcript
from app.schemas.notification import NotificationKind


@dataclass(slots=True, frozen=True)
class JobRecord:
    id: str
    owner_id: str
    audio_url: str
    audio_file_name: str
    status: JobStatus
    request_human_review: bool
    created_at: datetime
    updated_at: datetime
    external_job_id: str | None = None
    transcript: Transcript | None = None
    edited_transcript: Transcript | None = None
    completed_at: datetime | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    failure_message: str | None = None
    processing_time: float | None = None


@dataclass(slots=True, frozen=True)
class LockRecord:
    job_id: str
    editor_id: str
    editor_name: str
    locked_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(slots=True, frozen=True)
class NotificationRecord:
    id: str
    user_id: str
    kind: NotificationKind
    message: str
    job_id: str
    created_at: datetime
    read: bool = False


@dataclass(slots=True)
class StateSnapshot:
    """Full state handed to the persistence substrate."""

    jobs: list[JobRecord] = field(default_factory=list)
    locks: list[LockRecord] = field(default_factory=list)
    notifications: list[NotificationRecord] = field(default_factory=list)
