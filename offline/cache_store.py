"""Versioned static and dynamic response caches."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Callable, Iterable, Optional, Sequence
from urllib.parse import urljoin

from offline.errors import NetworkUnavailable, StorageFailure
from offline.local_store import LocalStore
from offline.transport import ClientRequest, ClientResponse

LOGGER = logging.getLogger("studysync.cache")

APP_SHELL = "/"

STATIC_ASSETS: tuple[str, ...] = (
    APP_SHELL,
    "/static/js/bundle.js",
    "/static/css/main.css",
    "/manifest.json",
    "/pwa-192x192.png",
    "/pwa-512x512.png",
)

Fetch = Callable[[ClientRequest], ClientResponse]


class CacheStore:
    """Two named partitions of cached responses.

    ``static-<version>`` is seeded once by :meth:`install` and never written by
    traffic. ``dynamic-<version>`` grows from successful reads. Bumping the
    version and calling :meth:`activate` drops every partition of older
    versions wholesale.
    """

    def __init__(
        self,
        store: LocalStore,
        *,
        version: str = "v1",
        static_assets: Sequence[str] = STATIC_ASSETS,
    ) -> None:
        self._store = store
        self.version = version
        self.static_name = f"static-{version}"
        self.dynamic_name = f"dynamic-{version}"
        self.static_assets = tuple(static_assets)

    @staticmethod
    def key_for(request: ClientRequest, vary: Iterable[str] = (), scope: str = "") -> str:
        key = f"{request.method} {request.url}"
        for name in vary:
            key += f"|{name.lower()}={request.header(name)}"
        if scope:
            key += f"|scope={scope}"
        return key

    def match(
        self,
        request: ClientRequest,
        *,
        vary: Iterable[str] = (),
        scope: str = "",
        partitions: Optional[Sequence[str]] = None,
    ) -> Optional[ClientResponse]:
        """Return the cached response for ``request`` or ``None`` on a miss.

        An entry that cannot be decoded counts as a miss.
        """
        key = self.key_for(request, vary, scope)
        for name in partitions or (self.static_name, self.dynamic_name):
            try:
                row = self._store.cache_get(name, key)
                if row is None:
                    continue
                headers = json.loads(row["headers"])
                if not isinstance(headers, dict):
                    raise ValueError("headers are not an object")
                return ClientResponse(
                    status=int(row["status"]),
                    headers=headers,
                    body=bytes(row["body"]),
                    url=request.url,
                )
            except (sqlite3.Error, ValueError, TypeError) as exc:
                LOGGER.warning("Ignoring unreadable cache entry %s in %s: %s", key, name, exc)
        return None

    def put(
        self,
        request: ClientRequest,
        response: ClientResponse,
        *,
        vary: Iterable[str] = (),
        scope: str = "",
        partition: Optional[str] = None,
    ) -> None:
        """Store ``response`` under the request key; the latest write wins."""
        name = partition or self.dynamic_name
        self._store.cache_put(name, self.key_for(request, vary, scope), response.status, response.headers, response.body)

    def shell(self, origin_request: ClientRequest) -> Optional[ClientResponse]:
        """The cached application shell, resolved against the origin of ``origin_request``."""
        shell_request = ClientRequest.get(urljoin(origin_request.url, APP_SHELL), accept="")
        return self.match(shell_request, partitions=(self.static_name,))

    def install(self, fetch: Fetch, base_url: str) -> int:
        """Seed the static partition from ``base_url``. Returns the number of assets stored."""
        stored = 0
        for asset in self.static_assets:
            request = ClientRequest.get(urljoin(base_url, asset), accept="")
            try:
                response = fetch(request)
            except NetworkUnavailable as exc:
                LOGGER.error("Failed to cache static asset %s: %s", asset, exc)
                continue
            if response.status != 200:
                LOGGER.error("Failed to cache static asset %s: status %s", asset, response.status)
                continue
            self.put(request, response, partition=self.static_name)
            stored += 1
        LOGGER.info("Cached %s/%s static assets in %s", stored, len(self.static_assets), self.static_name)
        return stored

    def activate(self) -> list[str]:
        """Drop every partition that is not part of the current version."""
        current = {self.static_name, self.dynamic_name}
        removed = []
        for name in self._store.cache_names():
            if name not in current:
                LOGGER.info("Deleting old cache: %s", name)
                self.delete(name)
                removed.append(name)
        return removed

    def delete(self, name: str) -> bool:
        try:
            return self._store.cache_delete(name)
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot delete cache {name}: {exc}") from exc

    def names(self) -> list[str]:
        return self._store.cache_names()
