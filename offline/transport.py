"""HTTP transport shared by live requests and replayed submissions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlsplit

import requests

from offline.errors import NetworkUnavailable, ServerRejected, ServerUnavailable, Unauthorized

LOGGER = logging.getLogger("studysync.transport")


def _lower_keys(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {str(key).lower(): str(value) for key, value in (headers or {}).items()}


@dataclass(frozen=True)
class ClientRequest:
    """An outbound request as seen by the gateway."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", str(self.method or "").upper())
        object.__setattr__(self, "headers", _lower_keys(self.headers))

    @classmethod
    def get(cls, url: str, *, accept: str = "application/json") -> "ClientRequest":
        return cls("GET", url, {"accept": accept})

    @classmethod
    def post_json(cls, url: str, payload: Any) -> "ClientRequest":
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        return cls("POST", url, {"content-type": "application/json", "accept": "application/json"}, body)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def json(self) -> Any:
        if not self.body:
            raise ValueError("request has no body")
        return json.loads(self.body.decode("utf-8"))


@dataclass(frozen=True)
class ClientResponse:
    """A response returned to callers, whether from network, cache or synthesised."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    same_origin: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _lower_keys(self.headers))

    @classmethod
    def json_response(
        cls,
        payload: Any,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "ClientResponse":
        merged = {"content-type": "application/json"}
        merged.update(_lower_keys(headers))
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return cls(status=status, headers=merged, body=body)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def with_headers(self, **extra: str) -> "ClientResponse":
        merged = dict(self.headers)
        merged.update({key.replace("_", "-").lower(): value for key, value in extra.items()})
        return replace(self, headers=merged)

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8") or "null")


def raise_for_status(response: ClientResponse) -> ClientResponse:
    """Map an HTTP status onto the client failure taxonomy."""
    if response.status in (401, 403):
        raise Unauthorized(f"server responded with status {response.status}")
    if response.status >= 500:
        raise ServerUnavailable(response.status)
    if response.status >= 400:
        raise ServerRejected(response.status)
    return response


class HttpTransport:
    """Issue requests against the study API with a bounded timeout.

    The bearer credential held here is attached to every request so that a
    replayed submission carries the same authentication context as a live one.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.token = token
        self._session = session or requests.Session()
        parts = urlsplit(self.base_url)
        self._origin = (parts.scheme, parts.netloc)

    def resolve(self, request: ClientRequest) -> ClientRequest:
        """Return ``request`` with its URL made absolute against the API origin."""
        absolute = urljoin(self.base_url, request.url)
        if absolute == request.url:
            return request
        return replace(request, url=absolute)

    def is_same_origin(self, url: str) -> bool:
        parts = urlsplit(url)
        return (parts.scheme, parts.netloc) == self._origin

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    def fetch(self, request: ClientRequest) -> ClientResponse:
        """Send ``request``. Connection failures and timeouts raise NetworkUnavailable."""
        request = self.resolve(request)
        headers = dict(request.headers)
        if self.token and "authorization" not in headers and self.is_same_origin(request.url):
            headers["authorization"] = f"Bearer {self.token}"

        try:
            raw = self._session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            LOGGER.info("Network request %s %s failed: %s", request.method, request.url, exc)
            raise NetworkUnavailable(str(exc)) from exc

        return ClientResponse(
            status=raw.status_code,
            headers=dict(raw.headers),
            body=raw.content,
            url=raw.url or request.url,
            same_origin=self.is_same_origin(raw.url or request.url),
        )

    def close(self) -> None:
        self._session.close()
