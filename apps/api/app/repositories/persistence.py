"""Snapshot persistence backends for the review store.

The store hands a full ``StateSnapshot`` to ``save`` after every committed
mutation and reads one back with ``load`` at start-up. Backend failures are
raised as ``PersistenceError`` subclasses and are never swallowed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import os
from pathlib import Path
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from app.repositories.records import StateSnapshot

logger = logging.getLogger(__name__)

_SNAPSHOT_ADAPTER = TypeAdapter(StateSnapshot)


class PersistenceError(Exception):
    """Base exception for persistence operations."""


class LoadError(PersistenceError):
    """Failed to load state from storage."""


class SaveError(PersistenceError):
    """Failed to save state to storage."""


class SnapshotBackend(ABC):
    """Synchronous, assumed-durable key-value substrate holding one state snapshot."""

    @abstractmethod
    def load(self) -> StateSnapshot | None:
        """Return the last saved snapshot, or ``None`` when nothing was saved yet."""

    @abstractmethod
    def save(self, snapshot: StateSnapshot) -> None:
        """Persist the snapshot or raise ``SaveError``."""


class MemorySnapshotBackend(SnapshotBackend):
    """Keeps the last snapshot as serialized JSON; used by default and in tests."""

    def __init__(self) -> None:
        self._payload: bytes | None = None
        self.save_count = 0
        self.save_failure_message: str | None = None

    def load(self) -> StateSnapshot | None:
        if self._payload is None:
            return None
        return _SNAPSHOT_ADAPTER.validate_json(self._payload)

    def save(self, snapshot: StateSnapshot) -> None:
        if self.save_failure_message is not None:
            message = self.save_failure_message
            self.save_failure_message = None
            raise SaveError(message)

        self._payload = _SNAPSHOT_ADAPTER.dump_json(snapshot)
        self.save_count += 1


class JsonFileSnapshotBackend(SnapshotBackend):
    """Single JSON file, replaced atomically on every save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> StateSnapshot | None:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise LoadError(f"Failed to read state file {self.path}: {exc}") from exc

        try:
            return _SNAPSHOT_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            raise LoadError(f"State file {self.path} is not a valid snapshot") from exc

    def save(self, snapshot: StateSnapshot) -> None:
        payload = _SNAPSHOT_ADAPTER.dump_json(snapshot, indent=2)
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload)
            # Atomic replace so a crash never leaves a truncated snapshot behind.
            os.replace(tmp_path, self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            logger.error("persistence.save_failed path=%s reason=%s", self.path, type(exc).__name__)
            raise SaveError(f"Failed to write state file {self.path}: {exc}") from exc


__all__ = [
    "JsonFileSnapshotBackend",
    "LoadError",
    "MemorySnapshotBackend",
    "PersistenceError",
    "SaveError",
    "SnapshotBackend",
]
