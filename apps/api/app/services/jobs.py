"""Job registry service layer."""

from dataclasses import fields as record_fields, replace
import logging
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

from app.core.logging_safety import safe_log_identifier
from app.domain.job_fsm import REVIEWABLE_STATUSES, ensure_caller_transition, ensure_transition
from app.domain.transcripts import normalize_transcript
from app.repositories.memory import InMemoryStore
from app.repositories.records import JobRecord, NotificationRecord
from app.schemas.job import Job, JobStatus, Transcript
from app.schemas.notification import NotificationKind
from app.services.notifications import Notifier

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset(
    {"id", "owner_id", "created_at", "updated_at", "transcript", "completed_at", "verified_at", "verified_by"}
)
_RECORD_FIELDS = frozenset(field.name for field in record_fields(JobRecord))
_DEFAULT_AUDIO_FILE_NAME = "audio.mp3"


class JobRegistry:
    """Owns job records and every status transition that is not driven by a review lock."""

    def __init__(self, store: InMemoryStore, notifier: Notifier | None = None) -> None:
        self._store = store
        self._notifier = notifier or Notifier(store)

    def create(
        self,
        *,
        owner_id: str,
        audio_url: str,
        request_review: bool,
        audio_file_name: str | None = None,
    ) -> JobRecord:
        now = self._store.now()
        record = JobRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            audio_url=audio_url,
            audio_file_name=audio_file_name or self._file_name_from_url(audio_url),
            status=JobStatus.PENDING,
            request_human_review=request_review,
            created_at=now,
            updated_at=now,
        )
        self._store.commit(jobs=[record])
        logger.info(
            "job.created job_id=%s owner_id=%s request_human_review=%s",
            record.id,
            safe_log_identifier(owner_id, prefix="uid"),
            request_review,
        )
        return record

    def get(self, job_id: str) -> JobRecord | None:
        self._store.expire_lock_if_stale(job_id)
        return self._store.get_job(job_id)

    def update(self, job_id: str, **fields: Any) -> JobRecord | None:
        """Merge fields into the job record; ``None`` when the job does not exist."""
        forbidden = _IMMUTABLE_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"Job fields cannot be updated: {', '.join(sorted(forbidden))}")
        unknown = set(fields) - _RECORD_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        if fields.get("status") is not None:
            # Stored statuses are always JobStatus members.
            fields["status"] = JobStatus(fields["status"])

        with self._store.job_section(job_id):
            record = self._store.get_job(job_id)
            if record is None:
                return None

            new_status = fields.get("status")
            if new_status is not None and new_status != record.status:
                ensure_caller_transition(record.status, new_status)

            updated = replace(record, **fields, updated_at=self._store.stamp(record))
            self._store.commit(jobs=[updated])
            return updated

    def delete(self, job_id: str) -> bool:
        with self._store.job_section(job_id):
            if self._store.get_job(job_id) is None:
                return False
            had_lock = self._store.get_lock(job_id) is not None
            self._store.commit(deleted_job_ids=[job_id], dropped_lock_ids=[job_id])

        logger.info("job.deleted job_id=%s lock_dropped=%s", job_id, had_lock)
        return True

    def list_for_owner(self, owner_id: str) -> list[JobRecord]:
        return [record for record in self.list_all() if record.owner_id == owner_id]

    def list_all(self) -> list[JobRecord]:
        self.expire_stale_locks()
        return self._store.list_jobs()

    def review_queue(self) -> list[JobRecord]:
        return [record for record in self.list_all() if record.status in REVIEWABLE_STATUSES]

    def expire_stale_locks(self) -> None:
        for job_id in self._store.list_lock_job_ids():
            self._store.expire_lock_if_stale(job_id)

    def mark_processing(self, job_id: str, *, external_job_id: str | None) -> JobRecord | None:
        return self._transition(job_id, JobStatus.PROCESSING, external_job_id=external_job_id)

    def record_transcript(
        self,
        job_id: str,
        *,
        transcript: Transcript,
        processing_time: float | None = None,
    ) -> JobRecord | None:
        """Attach the machine transcript and route the job to review or completion."""
        with self._store.job_section(job_id):
            record = self._store.get_job(job_id)
            if record is None:
                return None

            if record.request_human_review:
                new_status = JobStatus.PENDING_REVIEW
                notification = None
            else:
                new_status = JobStatus.COMPLETED
                notification = self._notifier.build(
                    user_id=record.owner_id,
                    kind=NotificationKind.JOB_COMPLETED,
                    message=f'Your transcription for "{record.audio_file_name}" is ready.',
                    job_id=record.id,
                )
            return self._transition(
                job_id,
                new_status,
                notification=notification,
                transcript=normalize_transcript(transcript),
                processing_time=processing_time,
                completed_at=self._store.stamp(record),
            )

    def mark_failed(self, job_id: str, *, message: str | None) -> JobRecord | None:
        with self._store.job_section(job_id):
            record = self._store.get_job(job_id)
            if record is None:
                return None

            notification = self._notifier.build(
                user_id=record.owner_id,
                kind=NotificationKind.JOB_FAILED,
                message=f'Your transcription for "{record.audio_file_name}" failed.',
                job_id=record.id,
            )
            return self._transition(
                job_id,
                JobStatus.FAILED,
                notification=notification,
                failure_message=message,
            )

    def request_review(self, job_id: str) -> JobRecord | None:
        """Owner opts into human review after the fact."""
        with self._store.job_section(job_id):
            record = self.get(job_id)
            if record is None:
                return None
            if record.status in REVIEWABLE_STATUSES:
                return record
            if record.status is JobStatus.COMPLETED:
                return self._transition(job_id, JobStatus.PENDING_REVIEW, request_human_review=True)
            if record.status in (JobStatus.PENDING, JobStatus.PROCESSING):
                # Review will be routed when the transcript lands.
                return self.update(job_id, request_human_review=True)

            ensure_transition(record.status, JobStatus.PENDING_REVIEW)
            return record

    def _transition(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        notification: NotificationRecord | None = None,
        **fields: Any,
    ) -> JobRecord | None:
        with self._store.job_section(job_id):
            record = self._store.get_job(job_id)
            if record is None:
                return None

            ensure_caller_transition(record.status, new_status)
            updated = replace(record, status=new_status, updated_at=self._store.stamp(record), **fields)
            notifications = [notification] if notification is not None else []
            self._store.commit(jobs=[updated], notifications=notifications)

        logger.info(
            "job.transitioned job_id=%s prev_status=%s new_status=%s",
            job_id,
            record.status.value,
            new_status.value,
        )
        for created in notifications:
            self._notifier.log_created(created)
        return updated

    @staticmethod
    def _file_name_from_url(audio_url: str) -> str:
        path = urlparse(audio_url).path or audio_url
        name = path.rstrip("/").rsplit("/", 1)[-1]
        return name or _DEFAULT_AUDIO_FILE_NAME

    @staticmethod
    def to_job(record: JobRecord) -> Job:
        return Job(
            id=record.id,
            owner_id=record.owner_id,
            audio_url=record.audio_url,
            audio_file_name=record.audio_file_name,
            external_job_id=record.external_job_id,
            status=record.status,
            request_human_review=record.request_human_review,
            transcript=record.transcript,
            edited_transcript=record.edited_transcript,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
            verified_at=record.verified_at,
            verified_by=record.verified_by,
            failure_message=record.failure_message,
            processing_time=record.processing_time,
        )
