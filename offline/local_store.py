"""Client-local durable store backed by SQLite.

Holds two kinds of data: namespaced JSON values (the offline submission
queue lives under one fixed namespace) and named cache partitions of HTTP
responses.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from db_pool import SQLiteConnectionPool
from offline.errors import StorageFailure

LOGGER = logging.getLogger("studysync.store")


class LocalStore:
    def __init__(self, path: str, *, max_connections: int = 4) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._pool = SQLiteConnectionPool(path, max_connections=max_connections)
        self._init_tables()

    def _init_tables(self) -> None:
        try:
            with self._pool.get_connection() as con:
                con.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                      namespace   TEXT PRIMARY KEY,
                      value       TEXT NOT NULL,
                      updated_at  TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS cache_entries (
                      cache_name   TEXT NOT NULL,
                      request_key  TEXT NOT NULL,
                      status       INTEGER NOT NULL,
                      headers      TEXT NOT NULL,
                      body         BLOB NOT NULL,
                      stored_at    TEXT NOT NULL,
                      PRIMARY KEY (cache_name, request_key)
                    );
                    """
                )
                con.commit()
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot initialise local store at {self.path}: {exc}") from exc

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ---------- namespaced values ----------
    def read_json(self, namespace: str, default: Any = None) -> Any:
        with self._pool.get_connection() as con:
            row = con.execute("SELECT value FROM kv_store WHERE namespace = ?", (namespace,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            LOGGER.error("Stored value for %s is not valid JSON; ignoring it", namespace)
            return default

    def write_json(self, namespace: str, value: Any) -> None:
        try:
            encoded = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
            with self._pool.get_connection() as con:
                con.execute(
                    """
                    INSERT INTO kv_store(namespace, value, updated_at) VALUES (?,?,?)
                    ON CONFLICT(namespace) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (namespace, encoded, self._now()),
                )
                con.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageFailure(f"cannot persist {namespace}: {exc}") from exc

    # ---------- cache partitions ----------
    def cache_get(self, cache_name: str, request_key: str) -> Optional[Dict[str, Any]]:
        with self._pool.get_connection() as con:
            row = con.execute(
                """
                SELECT status, headers, body, stored_at FROM cache_entries
                WHERE cache_name = ? AND request_key = ?
                """,
                (cache_name, request_key),
            ).fetchone()
        return dict(row) if row is not None else None

    def cache_put(
        self,
        cache_name: str,
        request_key: str,
        status: int,
        headers: Dict[str, str],
        body: bytes,
    ) -> None:
        try:
            with self._pool.get_connection() as con:
                con.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries(cache_name, request_key, status, headers, body, stored_at)
                    VALUES (?,?,?,?,?,?)
                    """,
                    (cache_name, request_key, int(status), json.dumps(headers), sqlite3.Binary(body), self._now()),
                )
                con.commit()
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot write cache entry {request_key}: {exc}") from exc

    def cache_delete(self, cache_name: str) -> bool:
        with self._pool.get_connection() as con:
            cur = con.execute("DELETE FROM cache_entries WHERE cache_name = ?", (cache_name,))
            con.commit()
            return cur.rowcount > 0

    def cache_names(self) -> list[str]:
        with self._pool.get_connection() as con:
            rows = con.execute("SELECT DISTINCT cache_name FROM cache_entries ORDER BY cache_name").fetchall()
        return [row["cache_name"] for row in rows]

    def cache_count(self, cache_name: str) -> int:
        with self._pool.get_connection() as con:
            row = con.execute(
                "SELECT COUNT(*) AS n FROM cache_entries WHERE cache_name = ?", (cache_name,)
            ).fetchone()
        return int(row["n"])

    def close(self) -> None:
        self._pool.close_all()
