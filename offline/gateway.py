"""Request gateway applying the offline handling policy per request kind."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from offline.cache_store import CacheStore
from offline.classifier import RequestKind, classify
from offline.errors import NetworkUnavailable, StorageFailure
from offline.reconciler import ANSWER_ENDPOINT
from offline.submission_queue import SubmissionQueue
from offline.transport import ClientRequest, ClientResponse, HttpTransport

LOGGER = logging.getLogger("studysync.gateway")

OFFLINE_HEADER = "x-offline"

_VARY = ("accept",)

QUEUEABLE_ENDPOINTS = frozenset({ANSWER_ENDPOINT})

SYNTHETIC_FALLBACKS: Dict[str, Any] = {
    "/api/study/stats": {
        "totalStudied": 0,
        "correctAnswers": 0,
        "incorrectAnswers": 0,
        "streak": 0,
        "bestStreak": 0,
    },
    "/api/words": [
        {"id": 1, "english": "offline", "japanese": "オフライン", "level": "basic"},
    ],
    "/api/study/stats/daily": [],
    "/api/study/history": [],
}


def offline_no_data(message: str = "offline, no data") -> ClientResponse:
    return ClientResponse.json_response(
        {"message": message, "offline": True},
        status=503,
        headers={OFFLINE_HEADER: "unavailable"},
    )


class RequestGateway:
    """Serve requests from network, cache or the offline queue.

    ``on_queued`` is called after a write is parked in the queue; the study
    client wires it to :meth:`ConnectivityMonitor.notify_write`.
    """

    def __init__(
        self,
        transport: HttpTransport,
        cache: CacheStore,
        queue: SubmissionQueue,
        *,
        on_queued: Optional[Callable[[], None]] = None,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._queue = queue
        self._on_queued = on_queued

    def install(self) -> int:
        """Seed the static partition and evict partitions of older versions."""
        stored = self._cache.install(self._transport.fetch, self._transport.base_url)
        self._cache.activate()
        return stored

    def handle(self, request: ClientRequest) -> ClientResponse:
        request = self._transport.resolve(request)
        kind = classify(request)
        LOGGER.debug("%s %s classified as %s", request.method, request.url, kind.value)
        if kind is RequestKind.NAVIGATION:
            return self._navigate(request)
        if kind is RequestKind.STATIC_ASSET:
            return self._static_asset(request)
        if kind is RequestKind.READ_API:
            return self._read_api(request)
        if kind is RequestKind.WRITE_API:
            return self._write_api(request)
        return self._passthrough(request)

    # ---------- policies ----------
    def _navigate(self, request: ClientRequest) -> ClientResponse:
        try:
            return self._transport.fetch(request)
        except NetworkUnavailable:
            shell = self._cache.shell(request)
            if shell is not None:
                return shell.with_headers(x_offline="cache")
            return offline_no_data()

    def _static_asset(self, request: ClientRequest) -> ClientResponse:
        cached = self._cache.match(request)
        if cached is not None:
            return cached
        try:
            response = self._transport.fetch(request)
        except NetworkUnavailable:
            return offline_no_data()
        if response.status == 200 and response.same_origin:
            self._store(request, response)
        return response

    def _read_api(self, request: ClientRequest) -> ClientResponse:
        response: Optional[ClientResponse] = None
        try:
            response = self._transport.fetch(request)
        except NetworkUnavailable:
            LOGGER.info("Network failed, trying cache for: %s", request.path)
        if response is not None and response.status < 500:
            if response.ok and request.method == "GET":
                self._store(request, response, vary=_VARY, scope=self._credential_scope())
            return response

        cached = self._cache.match(
            request,
            vary=_VARY,
            scope=self._credential_scope(),
            partitions=(self._cache.dynamic_name,),
        )
        if cached is not None:
            return cached.with_headers(x_offline="cache")
        fallback = SYNTHETIC_FALLBACKS.get(request.path)
        if fallback is not None and request.method == "GET":
            return ClientResponse.json_response(fallback, headers={OFFLINE_HEADER: "synthetic"})
        return response if response is not None else offline_no_data()

    def _write_api(self, request: ClientRequest) -> ClientResponse:
        response: Optional[ClientResponse] = None
        try:
            response = self._transport.fetch(request)
        except NetworkUnavailable:
            LOGGER.info("Network failed for write %s %s", request.method, request.path)
        if response is not None and response.status < 500:
            return response

        if request.path not in QUEUEABLE_ENDPOINTS or request.method != "POST":
            return response if response is not None else offline_no_data("offline; check your connection")
        return self._enqueue(request)

    def _passthrough(self, request: ClientRequest) -> ClientResponse:
        try:
            return self._transport.fetch(request)
        except NetworkUnavailable:
            return offline_no_data()

    # ---------- helpers ----------
    def _credential_scope(self) -> str:
        """Cache scope for the current bearer token so users on one device never share API reads."""
        token = self._transport.token
        if not token:
            return ""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]

    def _store(self, request: ClientRequest, response: ClientResponse, *, vary=(), scope: str = "") -> None:
        try:
            self._cache.put(request, response, vary=vary, scope=scope)
        except StorageFailure as exc:
            LOGGER.warning("Could not cache %s: %s", request.url, exc)

    def _enqueue(self, request: ClientRequest) -> ClientResponse:
        try:
            payload = request.json()
        except (ValueError, UnicodeDecodeError):
            return ClientResponse.json_response({"message": "malformed payload"}, status=400)
        if (
            not isinstance(payload, dict)
            or not payload.get("wordId")
            or not isinstance(payload.get("isCorrect"), bool)
        ):
            return ClientResponse.json_response({"message": "malformed payload"}, status=400)

        queued = {
            "wordId": payload["wordId"],
            "isCorrect": payload["isCorrect"],
            "timestamp": payload.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        }
        body: Dict[str, Any] = {
            "message": "recorded offline; it will be synced when online",
            "pending": True,
        }
        submission_id = payload.get("submissionId")
        if not isinstance(submission_id, str) or not submission_id or len(submission_id) > 64:
            submission_id = None
        headers = {OFFLINE_HEADER: "queued"}
        try:
            entry = self._queue.enqueue(queued, entry_id=submission_id)
            body["submissionId"] = entry.id
        except StorageFailure as exc:
            body["warning"] = "submission could not be saved and may be lost on restart"
            headers["x-offline-warning"] = "not-persisted"
            LOGGER.error("Offline submission not persisted: %s", exc)

        if self._on_queued is not None:
            try:
                self._on_queued()
            except RuntimeError as exc:
                # the entry is already queued; the next tick or start() picks it up
                LOGGER.warning("Could not signal sync for queued submission: %s", exc)
        return ClientResponse.json_response(body, status=202, headers=headers)

