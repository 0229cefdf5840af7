"""Request classification into handling policies."""

from __future__ import annotations

import logging
from enum import Enum
from urllib.parse import urlsplit

from offline.transport import ClientRequest

LOGGER = logging.getLogger("studysync.gateway")

API_PREFIX = "/api/"

_READ_METHODS = frozenset({"GET", "HEAD"})
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RequestKind(str, Enum):
    NAVIGATION = "navigation"
    STATIC_ASSET = "static_asset"
    READ_API = "read_api"
    WRITE_API = "write_api"
    PASSTHROUGH = "passthrough"


def classify(request: ClientRequest) -> RequestKind:
    """Pick the handling policy for ``request``.

    Anything that does not fit one of the four policies, including requests
    whose URL cannot be parsed, is passed through without caching.
    """
    try:
        parts = urlsplit(request.url)
    except ValueError:
        LOGGER.debug("Unparseable request URL %r; passing through", request.url)
        return RequestKind.PASSTHROUGH
    if parts.scheme and parts.scheme not in ("http", "https"):
        return RequestKind.PASSTHROUGH

    path = parts.path or "/"
    method = request.method
    is_api = path.startswith(API_PREFIX)

    if method == "GET" and not is_api and "text/html" in request.header("accept"):
        return RequestKind.NAVIGATION
    if is_api and method in _READ_METHODS:
        return RequestKind.READ_API
    if is_api and method in _WRITE_METHODS:
        return RequestKind.WRITE_API
    if method in _READ_METHODS:
        return RequestKind.STATIC_ASSET
    return RequestKind.PASSTHROUGH
