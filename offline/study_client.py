"""Caller-facing study client with an optimistic statistics snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from engines.aggregation import StudySnapshot, apply_answer
from env_validation import ClientSettings
from offline.cache_store import CacheStore
from offline.connectivity import ConnectivityMonitor
from offline.errors import NetworkUnavailable, ServerRejected, Unauthorized
from offline.gateway import OFFLINE_HEADER, RequestGateway
from offline.local_store import LocalStore
from offline.reconciler import ANSWER_ENDPOINT, Reconciler
from offline.submission_queue import SubmissionQueue
from offline.transport import ClientRequest, ClientResponse, HttpTransport

LOGGER = logging.getLogger("studysync.client")


@dataclass(frozen=True)
class AnswerResult:
    """What the caller learns after recording an answer."""

    queued: bool
    persisted: bool = True
    submission_id: Optional[str] = None


class StudyClient:
    """Record answers and read progress through the offline gateway.

    ``snapshot`` mirrors the server's aggregate statistics. After each
    recorded answer it is advanced locally with the same rules the server
    uses and flagged ``provisional`` until a statistics fetch that actually
    reached the server replaces it.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        queue: SubmissionQueue,
        *,
        monitor: Optional[ConnectivityMonitor] = None,
    ) -> None:
        self._gateway = gateway
        self._queue = queue
        self.monitor = monitor
        self.snapshot = StudySnapshot()
        self.provisional = False

    @property
    def pending_count(self) -> int:
        return self._queue.pending_count()

    async def start(self) -> None:
        if self.monitor is not None:
            await self.monitor.start()

    async def stop(self) -> None:
        if self.monitor is not None:
            await self.monitor.stop()

    def record_answer(self, word_id: int, is_correct: bool, at: Optional[datetime] = None) -> AnswerResult:
        """Submit one answer. Offline answers are queued and still count locally.

        The live attempt and any later replay share one ``submissionId`` so the
        server records the answer once even if a response is lost in transit.
        """
        payload = {
            "wordId": word_id,
            "isCorrect": bool(is_correct),
            "timestamp": (at or datetime.now(timezone.utc)).isoformat(),
            "submissionId": uuid4().hex,
        }
        response = self._gateway.handle(ClientRequest.post_json(ANSWER_ENDPOINT, payload))
        if response.status in (401, 403):
            raise Unauthorized("answer rejected: credential missing or invalid")
        if response.status not in (200, 202):
            raise ServerRejected(response.status, _message(response))

        self.snapshot = apply_answer(self.snapshot, bool(is_correct))
        self.provisional = True

        if response.status == 202:
            body = response.json() or {}
            return AnswerResult(
                queued=True,
                persisted=not response.header("x-offline-warning"),
                submission_id=body.get("submissionId"),
            )
        return AnswerResult(queued=False, submission_id=payload["submissionId"])

    def refresh_stats(self) -> StudySnapshot:
        """Fetch statistics. Cached or synthetic answers never replace the local snapshot."""
        response = self._gateway.handle(ClientRequest.get("/api/study/stats"))
        if response.status in (401, 403):
            raise Unauthorized("stats rejected: credential missing or invalid")
        if not response.ok:
            LOGGER.warning("Stats unavailable (%s); keeping local snapshot", response.status)
            return self.snapshot
        if response.header(OFFLINE_HEADER):
            return self.snapshot
        self.snapshot = StudySnapshot.from_payload(response.json() or {})
        self.provisional = False
        return self.snapshot

    def daily_stats(self, days: int = 7) -> List[Dict[str, Any]]:
        """Per-day counts, oldest day first."""
        return self._get_list(f"/api/study/stats/daily?days={int(days)}")

    def words(self) -> List[Dict[str, Any]]:
        return self._get_list("/api/words")

    def _get_list(self, url: str) -> List[Dict[str, Any]]:
        response = self._gateway.handle(ClientRequest.get(url))
        if response.status in (401, 403):
            raise Unauthorized(f"{url} rejected: credential missing or invalid")
        if not response.ok:
            return []
        data = response.json()
        return data if isinstance(data, list) else []


def _message(response: ClientResponse) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or "")
    return ""


def create_study_client(settings: ClientSettings, *, token: Optional[str] = None) -> StudyClient:
    """Wire store, cache, queue, transport, reconciler and monitor together."""
    store = LocalStore(settings.local_db_path)
    transport = HttpTransport(settings.api_url, timeout=settings.request_timeout, token=token)
    queue = SubmissionQueue(store)
    cache = CacheStore(store, version=settings.cache_version)
    reconciler = Reconciler(queue, transport)
    monitor = ConnectivityMonitor(
        reconciler,
        queue,
        interval=settings.sync_interval,
        probe=lambda: probe_api(transport),
    )
    gateway = RequestGateway(transport, cache, queue, on_queued=monitor.notify_write)
    return StudyClient(gateway, queue, monitor=monitor)


def probe_api(transport: HttpTransport) -> bool:
    """Connectivity probe: the API health endpoint answers without a server error."""
    try:
        response = transport.fetch(ClientRequest.get("/api/health"))
    except NetworkUnavailable:
        return False
    return response.status < 500
