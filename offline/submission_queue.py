"""Durable, ordered queue of answers that could not reach the server."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from offline.errors import StorageFailure
from offline.local_store import LocalStore

LOGGER = logging.getLogger("studysync.sync")

QUEUE_NAMESPACE = "offlineSubmissions"


class SubmissionState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


@dataclass
class QueuedSubmission:
    """One pending write. ``id`` is unique and independent of the payload."""

    id: str
    payload: Dict[str, Any]
    enqueued_at: str
    state: SubmissionState = field(default=SubmissionState.PENDING, compare=False)

    def to_record(self) -> Dict[str, Any]:
        return {"id": self.id, "payload": self.payload, "enqueued_at": self.enqueued_at}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueuedSubmission":
        entry_id = record.get("id")
        payload = record.get("payload")
        if not isinstance(entry_id, str) or not entry_id or not isinstance(payload, dict):
            raise ValueError("queued submission requires an id and an object payload")
        return cls(id=entry_id, payload=dict(payload), enqueued_at=str(record.get("enqueued_at") or ""))


class SubmissionQueue:
    """Offline submission queue for one device.

    Entries are kept in enqueue order and written through to ``store`` under
    a fixed namespace on every change, so a restart reloads them unchanged.
    ``enqueue`` may be called from any request handler; the remaining
    mutators are meant for the reconciler.
    """

    def __init__(self, store: LocalStore, *, namespace: str = QUEUE_NAMESPACE) -> None:
        self._store = store
        self.namespace = namespace
        self._lock = threading.RLock()
        self._entries: List[QueuedSubmission] = self._load()

    def _load(self) -> List[QueuedSubmission]:
        raw = self._store.read_json(self.namespace, default=[])
        if not isinstance(raw, list):
            LOGGER.error("Persisted queue %s is not a list; starting empty", self.namespace)
            return []
        entries = []
        for record in raw:
            try:
                entries.append(QueuedSubmission.from_record(record))
            except (ValueError, AttributeError) as exc:
                LOGGER.error("Skipping malformed queued submission %r: %s", record, exc)
        if entries:
            LOGGER.info("Loaded %s pending submission(s) from %s", len(entries), self.namespace)
        return entries

    def _persist(self) -> None:
        self._store.write_json(self.namespace, [entry.to_record() for entry in self._entries])

    def enqueue(self, payload: Mapping[str, Any], *, entry_id: Optional[str] = None) -> QueuedSubmission:
        """Append ``payload`` and persist immediately.

        ``entry_id`` lets a caller that already sent the payload live reuse its
        dedup key; enqueueing an id that is already queued returns that entry.

        When persisting fails the entry stays queued in memory and
        :class:`StorageFailure` is raised so the caller can warn that the
        submission may be lost on restart.
        """
        entry = QueuedSubmission(
            id=entry_id or uuid4().hex,
            payload=dict(payload),
            enqueued_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            existing = self._find(entry.id)
            if existing is not None:
                return existing
            self._entries.append(entry)
            try:
                self._persist()
            except StorageFailure:
                LOGGER.error("Submission %s queued in memory only; it may be lost on restart", entry.id)
                raise
        LOGGER.info("Queued offline submission %s (%s pending)", entry.id, len(self._entries))
        return entry

    def peek(self) -> List[QueuedSubmission]:
        """Snapshot of the queue in enqueue order."""
        with self._lock:
            return list(self._entries)

    def head(self) -> Optional[QueuedSubmission]:
        with self._lock:
            return self._entries[0] if self._entries else None

    def pending_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.pending_count()

    def _find(self, entry_id: str) -> Optional[QueuedSubmission]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def mark_in_flight(self, entry_id: str) -> None:
        with self._lock:
            entry = self._find(entry_id)
            if entry is None:
                raise KeyError(entry_id)
            entry.state = SubmissionState.IN_FLIGHT

    def mark_pending(self, entry_id: str) -> None:
        with self._lock:
            entry = self._find(entry_id)
            if entry is not None:
                entry.state = SubmissionState.PENDING

    def remove(self, entry_id: str) -> bool:
        """Remove the entry with ``entry_id`` only. Returns ``False`` if it is gone already."""
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    break
            else:
                return False
            del self._entries[index]
            self._persist()
            return True
