"""SQLite connection pool shared by the server log and the client-local store."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)

class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool.

    Connections are handed between worker threads (FastAPI runs sync routes
    in a threadpool, the sync agent uses ``asyncio.to_thread``), so they are
    opened with ``check_same_thread=False`` and only ever used by one borrower
    at a time.
    """

    def __init__(self, database: str, max_connections: int = 5, busy_timeout: float = 5.0):
        self.database = database
        self.max_connections = max_connections
        self.busy_timeout = busy_timeout
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._created_connections = 0
        self._all: List[sqlite3.Connection] = []

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.database,
            timeout=self.busy_timeout,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection, creating one while under ``max_connections``."""
        connection = None
        try:
            connection = self._pool.get(block=False)
        except Empty:
            with self._lock:
                if self._created_connections < self.max_connections:
                    connection = self._create_connection()
                    self._created_connections += 1
                    self._all.append(connection)
                    logger.debug("Created new connection to %s (total: %s)", self.database, self._created_connections)
            if connection is None:
                connection = self._pool.get(block=True)

        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._pool.put(connection)
            except sqlite3.Error as e:
                logger.error("Error returning connection to pool: %s", e)
                self._discard(connection)

    def _discard(self, connection: sqlite3.Connection) -> None:
        try:
            connection.close()
        except sqlite3.Error:
            logger.debug("Ignoring error while closing broken connection", exc_info=True)
        with self._lock:
            self._created_connections -= 1
            if connection in self._all:
                self._all.remove(connection)

    def close_all(self) -> None:
        """Close every connection the pool has opened."""
        with self._lock:
            connections, self._all = self._all, []
            self._created_connections = 0
            self._pool = Queue(maxsize=self.max_connections)
        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error:
                logger.debug("Ignoring error while closing connection", exc_info=True)
