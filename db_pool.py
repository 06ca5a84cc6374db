"""SQLite connection pool for the local session staging store."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Full, Queue
from typing import Generator

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool."""

    def __init__(self, database: str, max_connections: int = 5):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self.database = database
        self.max_connections = max_connections
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._created_connections = 0

    def _create_connection(self) -> sqlite3.Connection:
        # Connections move between request threads through the queue.
        conn = sqlite3.connect(self.database, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._pool.get(block=False)
        except Empty:
            pass
        with self._lock:
            if self._created_connections < self.max_connections:
                self._created_connections += 1
                logger.debug("Created new connection (total: %d)", self._created_connections)
                return self._create_connection()
        return self._pool.get(block=True)

    def _discard(self, connection: sqlite3.Connection) -> None:
        try:
            connection.close()
        except sqlite3.Error:
            logger.exception("Failed to close pooled connection")
        with self._lock:
            self._created_connections -= 1

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection; uncommitted work is rolled back on return."""
        connection = self._acquire()
        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._pool.put(connection, block=False)
            except (sqlite3.Error, Full) as exc:
                logger.error("Error returning connection to pool: %s", exc)
                self._discard(connection)

    def close_all(self) -> None:
        while True:
            try:
                connection = self._pool.get(block=False)
            except Empty:
                break
            self._discard(connection)
