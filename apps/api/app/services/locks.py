"""Review lock service layer.

A job under human review is claimed by at most one editor at a time through a
time-bounded lock keyed by job id. Expired locks are swept lazily: every
operation first evicts a stale lock for its job, which also returns an
``in_review`` job to ``pending_review``. After every operation a job is
``in_review`` exactly when it holds a live lock.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
import logging
from typing import Literal

from app.core.logging_safety import safe_log_identifier
from app.domain.job_fsm import REVIEWABLE_STATUSES, ensure_transition
from app.domain.transcripts import merge_edited_segments, unknown_segment_ids
from app.repositories.memory import InMemoryStore
from app.repositories.records import JobRecord, LockRecord
from app.schemas.job import JobStatus, TranscriptSegment
from app.schemas.notification import NotificationKind
from app.schemas.review import ReviewLock, ReviewTask
from app.services.jobs import JobRegistry
from app.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LockDenied:
    """Expected outcome of an acquire that did not produce a lock."""

    job_id: str
    reason: Literal["held", "not_found", "not_reviewable"]
    holder: LockRecord | None = None
    current_status: JobStatus | None = None


class ReviewLockManager:
    def __init__(
        self,
        store: InMemoryStore,
        jobs: JobRegistry | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier or Notifier(store)
        self._jobs = jobs or JobRegistry(store, self._notifier)

    def acquire(self, *, job_id: str, editor_id: str, editor_name: str) -> LockRecord | LockDenied:
        safe_editor_id = safe_log_identifier(editor_id, prefix="eid")
        with self._store.job_section(job_id):
            self._store.expire_lock_if_stale(job_id)
            job = self._store.get_job(job_id)
            if job is None:
                return LockDenied(job_id=job_id, reason="not_found")

            existing = self._store.get_lock(job_id)
            if existing is not None:
                if existing.editor_id != editor_id:
                    logger.info(
                        "lock.denied job_id=%s editor_id=%s holder_id=%s expires_at=%s",
                        job_id,
                        safe_editor_id,
                        safe_log_identifier(existing.editor_id, prefix="eid"),
                        existing.expires_at.isoformat(),
                    )
                    return LockDenied(job_id=job_id, reason="held", holder=existing, current_status=job.status)
                logger.info("lock.reacquired job_id=%s editor_id=%s", job_id, safe_editor_id)
                return existing

            if job.status not in REVIEWABLE_STATUSES:
                logger.info(
                    "lock.rejected job_id=%s editor_id=%s current_status=%s",
                    job_id,
                    safe_editor_id,
                    job.status.value,
                )
                return LockDenied(job_id=job_id, reason="not_reviewable", current_status=job.status)

            now = self._store.now()
            lock = LockRecord(
                job_id=job_id,
                editor_id=editor_id,
                editor_name=editor_name,
                locked_at=now,
                expires_at=now + self._store.lock_ttl,
            )
            claimed: list[JobRecord] = []
            if job.status is JobStatus.PENDING_REVIEW:
                ensure_transition(job.status, JobStatus.IN_REVIEW)
                claimed.append(replace(job, status=JobStatus.IN_REVIEW, updated_at=self._store.stamp(job)))
            self._store.commit(jobs=claimed, locks=[lock])

        logger.info(
            "lock.acquired job_id=%s editor_id=%s expires_at=%s",
            job_id,
            safe_editor_id,
            lock.expires_at.isoformat(),
        )
        return lock

    def release(self, *, job_id: str, editor_id: str) -> bool:
        """Drop the caller's live lock; ``False`` when the caller holds none."""
        with self._store.job_section(job_id):
            self._store.expire_lock_if_stale(job_id)
            lock = self._store.get_lock(job_id)
            if lock is None or lock.editor_id != editor_id:
                return False

            job = self._store.get_job(job_id)
            reverted: list[JobRecord] = []
            if job is not None and job.status is JobStatus.IN_REVIEW:
                reverted.append(replace(job, status=JobStatus.PENDING_REVIEW, updated_at=self._store.stamp(job)))
            self._store.commit(jobs=reverted, dropped_lock_ids=[job_id])

        logger.info(
            "lock.released job_id=%s editor_id=%s",
            job_id,
            safe_log_identifier(editor_id, prefix="eid"),
        )
        return True

    def refresh(self, *, job_id: str, editor_id: str) -> LockRecord | None:
        """Extend the caller's live lock by a full TTL from now; ``None`` means the claim is gone."""
        with self._store.job_section(job_id):
            self._store.expire_lock_if_stale(job_id)
            lock = self._store.get_lock(job_id)
            if lock is None or lock.editor_id != editor_id:
                return None

            refreshed = replace(lock, expires_at=self._store.now() + self._store.lock_ttl)
            self._store.commit(locks=[refreshed])

        logger.info(
            "lock.refreshed job_id=%s editor_id=%s expires_at=%s",
            job_id,
            safe_log_identifier(editor_id, prefix="eid"),
            refreshed.expires_at.isoformat(),
        )
        return refreshed

    def verify(
        self,
        *,
        job_id: str,
        editor_id: str,
        edited_segments: Sequence[TranscriptSegment] | None = None,
    ) -> JobRecord | None:
        """Finalize a reviewed job.

        Allowed from ``in_review`` and from ``pending_review``; verifying does not
        require holding the lock, and removes whichever lock exists. Exactly one
        ``review_completed`` notification goes to the job owner.
        """
        safe_editor_id = safe_log_identifier(editor_id, prefix="eid")
        with self._store.job_section(job_id):
            self._store.expire_lock_if_stale(job_id)
            job = self._store.get_job(job_id)
            if job is None:
                return None
            if job.status not in REVIEWABLE_STATUSES:
                logger.info(
                    "verify.rejected job_id=%s editor_id=%s current_status=%s",
                    job_id,
                    safe_editor_id,
                    job.status.value,
                )
                return None

            ensure_transition(job.status, JobStatus.VERIFIED)
            edited_transcript = job.edited_transcript
            if edited_segments is not None and job.transcript is not None:
                ignored = unknown_segment_ids(job.transcript, edited_segments)
                if ignored:
                    logger.warning(
                        "verify.unknown_segments job_id=%s editor_id=%s segment_ids=%s",
                        job_id,
                        safe_editor_id,
                        ignored,
                    )
                edited_transcript = merge_edited_segments(job.transcript, edited_segments)

            previous_lock = self._store.get_lock(job_id)
            verified_at = self._store.stamp(job)
            verified = replace(
                job,
                status=JobStatus.VERIFIED,
                edited_transcript=edited_transcript,
                verified_by=editor_id,
                verified_at=verified_at,
                updated_at=verified_at,
            )
            notification = self._notifier.build(
                user_id=job.owner_id,
                kind=NotificationKind.REVIEW_COMPLETED,
                message=f'Your transcription for "{job.audio_file_name}" has been verified.',
                job_id=job_id,
            )
            self._store.commit(jobs=[verified], dropped_lock_ids=[job_id], notifications=[notification])

        logger.info(
            "verify.applied job_id=%s editor_id=%s prev_status=%s edited=%s lock_holder=%s",
            job_id,
            safe_editor_id,
            job.status.value,
            edited_transcript is not job.edited_transcript,
            safe_log_identifier(previous_lock.editor_id, prefix="eid") if previous_lock else None,
        )
        self._notifier.log_created(notification)
        return verified

    def get_lock(self, job_id: str) -> LockRecord | None:
        self._store.expire_lock_if_stale(job_id)
        return self._store.get_lock(job_id)

    def list_locks(self) -> list[LockRecord]:
        self._jobs.expire_stale_locks()
        locks = [self._store.get_lock(job_id) for job_id in self._store.list_lock_job_ids()]
        return sorted((lock for lock in locks if lock is not None), key=lambda lock: lock.locked_at)

    def review_task(self, job: JobRecord, *, viewer_id: str) -> ReviewTask:
        lock = self._store.get_lock(job.id)
        if lock is not None and not lock.is_live(self._store.now()):
            lock = None
        return ReviewTask(
            job=JobRegistry.to_job(job),
            lock=self.to_review_lock(lock) if lock is not None else None,
            is_locked=lock is not None,
            is_locked_by_current_user=lock is not None and lock.editor_id == viewer_id,
        )

    @staticmethod
    def to_review_lock(lock: LockRecord) -> ReviewLock:
        return ReviewLock(
            job_id=lock.job_id,
            editor_id=lock.editor_id,
            editor_name=lock.editor_name,
            locked_at=lock.locked_at,
            expires_at=lock.expires_at,
        )
