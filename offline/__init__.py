"""Offline-capable study client.

Requests go through :class:`RequestGateway`, which serves them from the
network, the versioned response cache or, for answer submissions, parks them
in the durable :class:`SubmissionQueue`. :class:`ConnectivityMonitor` replays
the queue through :class:`Reconciler` when the API becomes reachable.
"""

from offline.cache_store import CacheStore
from offline.classifier import RequestKind, classify
from offline.connectivity import ConnectivityMonitor, ConnectivityState, ConnectivityStatus
from offline.errors import (
    NetworkUnavailable,
    ServerRejected,
    ServerUnavailable,
    StorageFailure,
    SyncError,
    Unauthorized,
)
from offline.gateway import RequestGateway
from offline.local_store import LocalStore
from offline.reconciler import Reconciler, ReconcileReport
from offline.study_client import AnswerResult, StudyClient, create_study_client
from offline.submission_queue import QueuedSubmission, SubmissionQueue
from offline.transport import ClientRequest, ClientResponse, HttpTransport

__all__ = [
    "AnswerResult",
    "CacheStore",
    "ClientRequest",
    "ClientResponse",
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConnectivityStatus",
    "HttpTransport",
    "LocalStore",
    "NetworkUnavailable",
    "QueuedSubmission",
    "ReconcileReport",
    "Reconciler",
    "RequestGateway",
    "RequestKind",
    "ServerRejected",
    "ServerUnavailable",
    "StorageFailure",
    "StudyClient",
    "SubmissionQueue",
    "SyncError",
    "Unauthorized",
    "classify",
    "create_study_client",
]
