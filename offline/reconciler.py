"""Replay queued submissions against the study API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from offline.errors import (
    NetworkUnavailable,
    ServerRejected,
    StorageFailure,
    Unauthorized,
)
from offline.submission_queue import SubmissionQueue
from offline.transport import ClientRequest, HttpTransport, raise_for_status

LOGGER = logging.getLogger("studysync.sync")

ANSWER_ENDPOINT = "/api/study/answer"


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation run."""

    delivered: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    remaining: int = 0
    stopped_reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.stopped_reason is None

    def to_dict(self) -> dict:
        return {
            "delivered": list(self.delivered),
            "dropped": list(self.dropped),
            "remaining": self.remaining,
            "stopped_reason": self.stopped_reason,
        }


class Reconciler:
    """Drain a :class:`SubmissionQueue` in enqueue order.

    Each entry moves ``pending -> in_flight`` and is removed by id once the
    server acknowledges it. A network failure, timeout or 5xx puts the entry
    back to pending and ends the run, so a later entry never overtakes an
    earlier one. A 4xx rejection other than 401/403 is permanent: the entry is
    dropped and the run continues. 401/403 ends the run and blocks further
    runs until :meth:`credentials_updated` is called.
    """

    def __init__(
        self,
        queue: SubmissionQueue,
        transport: HttpTransport,
        *,
        endpoint: str = ANSWER_ENDPOINT,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self.endpoint = endpoint
        self.awaiting_credentials = False

    def credentials_updated(self, token: Optional[str] = None) -> None:
        if token is not None:
            self._transport.set_token(token)
        self.awaiting_credentials = False

    def reconcile(self) -> ReconcileReport:
        report = ReconcileReport()
        if self.awaiting_credentials:
            report.remaining = self._queue.pending_count()
            report.stopped_reason = "unauthorized"
            return report

        for entry in self._queue.peek():
            self._queue.mark_in_flight(entry.id)
            body = dict(entry.payload)
            body["submissionId"] = entry.id
            try:
                raise_for_status(self._transport.fetch(ClientRequest.post_json(self.endpoint, body)))
            except Unauthorized as exc:
                self._queue.mark_pending(entry.id)
                self.awaiting_credentials = True
                LOGGER.warning("Sync paused: credential rejected while replaying %s: %s", entry.id, exc)
                report.stopped_reason = "unauthorized"
                break
            except ServerRejected as exc:
                LOGGER.warning("Dropping submission %s rejected by server: %s", entry.id, exc)
                report.dropped.append(entry.id)
                if not self._remove(entry.id, report):
                    break
                continue
            except NetworkUnavailable as exc:
                self._queue.mark_pending(entry.id)
                LOGGER.info("Sync stopped at %s, will retry later: %s", entry.id, exc)
                report.stopped_reason = "unavailable"
                break

            report.delivered.append(entry.id)
            if not self._remove(entry.id, report):
                break

        report.remaining = self._queue.pending_count()
        if report.delivered or report.dropped:
            LOGGER.info(
                "Sync run delivered %s, dropped %s, %s remaining",
                len(report.delivered),
                len(report.dropped),
                report.remaining,
            )
        return report

    def _remove(self, entry_id: str, report: ReconcileReport) -> bool:
        try:
            self._queue.remove(entry_id)
        except StorageFailure as exc:
            # The in-memory queue is already updated; a restart may replay this
            # entry, which the server deduplicates by submissionId.
            LOGGER.error("Could not persist removal of %s: %s", entry_id, exc)
            report.stopped_reason = "storage"
            return False
        return True
