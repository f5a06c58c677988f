"""
SQLite access for the durable memory tier, orders and shipping zones.

AI Assistant Notes:
- Repositories are synchronous; MemoryStore and the engine call them through
  asyncio.to_thread, so connections are per worker thread
- Every connection ever opened is tracked so shutdown can close them all,
  including those owned by pool threads
- WAL journal: request threads keep reading while a sweep deletes
- execute_* helpers commit on success and roll back on any error
"""

import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from contextlib import contextmanager
import logging

from commerce_agent.config import settings

logger = logging.getLogger(__name__)

PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
)


class DatabaseConnection:
    """Thread-local SQLite connections over one database file."""

    def __init__(self, database_path: Optional[str] = None, timeout: Optional[int] = None):
        """
        Args:
            database_path: SQLite file, created with its directory if missing
            timeout: Seconds to wait on a locked database
        """
        self.database_path = Path(database_path or settings.database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout or settings.database_timeout

        self._local = threading.local()
        self._opened: List[sqlite3.Connection] = []
        self._opened_lock = threading.Lock()

        logger.info(f"Database ready at {self.database_path}")

    def __enter__(self) -> "DatabaseConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all_connections()

    def get_connection(self) -> sqlite3.Connection:
        """Connection owned by the calling thread, opened on first use."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(self.database_path, timeout=self.timeout, check_same_thread=False)
            for pragma in PRAGMAS:
                conn.execute(pragma)
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
            with self._opened_lock:
                self._opened.append(conn)
            logger.debug(f"Opened connection for thread {threading.get_ident()}")
        return conn

    @contextmanager
    def get_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Cursor inside a transaction: commit on exit, rollback on error."""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database operation failed: {e}")
            raise
        finally:
            cursor.close()

    def execute_script(self, script: str) -> None:
        with self.get_cursor() as cursor:
            cursor.executescript(script)

    def execute_query(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Run a SELECT and return the rows as plain dicts."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run an UPDATE/DELETE and return the affected row count."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def execute_insert(self, query: str, params: tuple = ()) -> int:
        """Run an INSERT and return lastrowid."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.lastrowid

    def close_all_connections(self) -> None:
        """Close the connections of every thread; used at shutdown."""
        with self._opened_lock:
            opened, self._opened = self._opened, []
        for conn in opened:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing database connection: {e}")
        self._local.connection = None
        logger.info(f"Closed {len(opened)} database connections")
