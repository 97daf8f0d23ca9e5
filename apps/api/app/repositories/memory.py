"""In-memory review store: the single owned state container of the service."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
import logging
import threading

from app.repositories.persistence import MemorySnapshotBackend, SnapshotBackend
from app.repositories.records import JobRecord, LockRecord, NotificationRecord, StateSnapshot
from app.schemas.job import JobStatus

logger = logging.getLogger(__name__)

LOCK_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _MutexEntry:
    lock: threading.RLock
    holders: int = 0


class KeyedMutex:
    """Per-key reentrant critical sections; entries are dropped once nobody holds or waits."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _MutexEntry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _MutexEntry(lock=threading.RLock())
                self._entries[key] = entry
            entry.holders += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


@dataclass(slots=True)
class InMemoryStore:
    """Jobs, review locks and notifications, persisted as a whole after every commit.

    Compound operations run inside ``job_section(job_id)`` and publish all of
    their effects through a single ``commit`` call. A commit whose snapshot
    cannot be saved is rolled back before the error propagates.
    """

    backend: SnapshotBackend = field(default_factory=MemorySnapshotBackend)
    lock_ttl: timedelta = LOCK_TTL
    clock: Callable[[], datetime] = utcnow
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    locks: dict[str, LockRecord] = field(default_factory=dict)
    notifications: dict[str, NotificationRecord] = field(default_factory=dict)
    write_count: int = 0
    _job_mutex: KeyedMutex = field(default_factory=KeyedMutex, repr=False)
    _state_guard: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def now(self) -> datetime:
        return self.clock()

    @contextmanager
    def job_section(self, job_id: str) -> Iterator[None]:
        with self._job_mutex.hold(job_id):
            yield

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def get_lock(self, job_id: str) -> LockRecord | None:
        """Raw lock row, live or not; callers decide about expiry."""
        return self.locks.get(job_id)

    def list_jobs(self) -> list[JobRecord]:
        with self._state_guard:
            records = list(self.jobs.values())
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def list_lock_job_ids(self) -> list[str]:
        with self._state_guard:
            return list(self.locks.keys())

    def get_notification(self, notification_id: str) -> NotificationRecord | None:
        return self.notifications.get(notification_id)

    def list_notifications_for(self, user_id: str) -> list[NotificationRecord]:
        with self._state_guard:
            records = [record for record in self.notifications.values() if record.user_id == user_id]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def commit(
        self,
        *,
        jobs: Iterable[JobRecord] = (),
        deleted_job_ids: Iterable[str] = (),
        locks: Iterable[LockRecord] = (),
        dropped_lock_ids: Iterable[str] = (),
        notifications: Iterable[NotificationRecord] = (),
    ) -> None:
        """Apply a unit of changes and save the resulting snapshot; rollback everything on failure."""
        jobs = list(jobs)
        deleted_job_ids = list(deleted_job_ids)
        locks = list(locks)
        dropped_lock_ids = list(dropped_lock_ids)
        notifications = list(notifications)

        with self._state_guard:
            job_keys = {record.id for record in jobs} | set(deleted_job_ids)
            lock_keys = {record.job_id for record in locks} | set(dropped_lock_ids)
            notification_keys = {record.id for record in notifications}
            previous_jobs = {key: self.jobs.get(key) for key in job_keys}
            previous_locks = {key: self.locks.get(key) for key in lock_keys}
            previous_notifications = {key: self.notifications.get(key) for key in notification_keys}
            previous_write_count = self.write_count

            try:
                for job_id in deleted_job_ids:
                    self.jobs.pop(job_id, None)
                for record in jobs:
                    self.jobs[record.id] = record
                for job_id in dropped_lock_ids:
                    self.locks.pop(job_id, None)
                for record in locks:
                    self.locks[record.job_id] = record
                for record in notifications:
                    self.notifications[record.id] = record
                self.write_count += 1
                self.backend.save(self.snapshot())
            except Exception:
                self._restore(self.jobs, previous_jobs)
                self._restore(self.locks, previous_locks)
                self._restore(self.notifications, previous_notifications)
                self.write_count = previous_write_count
                raise

    @staticmethod
    def _restore(target: dict, previous: dict) -> None:
        for key, value in previous.items():
            if value is None:
                target.pop(key, None)
            else:
                target[key] = value

    def expire_lock_if_stale(self, job_id: str) -> LockRecord | None:
        """Physically remove an expired lock and revert its job to ``pending_review``.

        Returns the evicted lock, or ``None`` when the lock is live or absent.
        """
        with self.job_section(job_id):
            lock = self.locks.get(job_id)
            if lock is None or lock.is_live(self.now()):
                return None

            job = self.jobs.get(job_id)
            reverted: list[JobRecord] = []
            if job is not None and job.status is JobStatus.IN_REVIEW:
                reverted.append(replace(job, status=JobStatus.PENDING_REVIEW, updated_at=self.stamp(job)))
            self.commit(jobs=reverted, dropped_lock_ids=[job_id])

        logger.info(
            "lock.expired job_id=%s expired_at=%s status_reverted=%s",
            job_id,
            lock.expires_at.isoformat(),
            bool(reverted),
        )
        return lock

    def stamp(self, job: JobRecord) -> datetime:
        """Next ``updated_at`` for a job; never moves backwards even if the clock does."""
        return max(self.now(), job.updated_at)

    def snapshot(self) -> StateSnapshot:
        with self._state_guard:
            return StateSnapshot(
                jobs=sorted(self.jobs.values(), key=lambda record: (record.created_at, record.id)),
                locks=sorted(self.locks.values(), key=lambda record: record.job_id),
                notifications=sorted(self.notifications.values(), key=lambda record: (record.created_at, record.id)),
            )

    def load(self) -> None:
        """Replace in-memory state with the backend's last snapshot, if any."""
        snapshot = self.backend.load()
        if snapshot is None:
            return

        with self._state_guard:
            self.jobs = {record.id: record for record in snapshot.jobs}
            # A lock without its job is dangling state and is never restored.
            self.locks = {record.job_id: record for record in snapshot.locks if record.job_id in self.jobs}
            self.notifications = {record.id: record for record in snapshot.notifications}
        dropped = len(snapshot.locks) - len(self.locks)
        logger.info(
            "store.loaded jobs=%s locks=%s notifications=%s dangling_locks_dropped=%s",
            len(self.jobs),
            len(self.locks),
            len(self.notifications),
            dropped,
        )
