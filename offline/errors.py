"""Failure taxonomy for the offline client."""


class SyncError(Exception):
    """Base class for failures raised by the offline client."""


class NetworkUnavailable(SyncError):
    """The server could not be reached (connection error or timeout)."""


class ServerUnavailable(NetworkUnavailable):
    """The server answered with a 5xx status. Retried like a network failure."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"server responded with status {status}")
        self.status = status


class Unauthorized(SyncError):
    """The bearer credential is missing, expired or rejected."""


class ServerRejected(SyncError):
    """The server refused the request permanently (4xx other than 401/403)."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"server rejected request with status {status}")
        self.status = status


class StorageFailure(SyncError):
    """Persisting to the client-local store failed; durability is not guaranteed."""
