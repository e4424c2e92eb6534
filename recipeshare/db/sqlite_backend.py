"""SQLite database backend."""
import functools
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .backend_base import DatabaseBackend, Transaction

logger = logging.getLogger(__name__)


def retry_on_db_locked(max_retries=3, initial_backoff=0.1):
    """Decorator to retry operations when database is locked."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_error = None
            backoff = initial_backoff
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if "database is locked" in str(e):
                        last_error = e
                        logger.warning(
                            f"Database locked on attempt {attempt + 1}/{max_retries}. "
                            f"Retrying in {backoff:.2f}s..."
                        )
                        time.sleep(backoff)
                        backoff *= 2  # Exponential backoff
                    else:
                        # Other SQLite operational error, don't retry
                        raise
            logger.error(
                f"Database still locked after {max_retries} attempts: {str(last_error)}"
            )
            raise last_error or sqlite3.OperationalError(
                "Database still locked after multiple attempts"
            )
        return wrapper
    return decorator


def _fetch(cursor: sqlite3.Cursor) -> List[Dict[str, Any]]:
    if cursor.description is not None:
        return [dict(row) for row in cursor.fetchall()]
    return [{"rowcount": cursor.rowcount}]


class SQLiteTransaction(Transaction):
    def __init__(self, connection: sqlite3.Connection):
        self._connection = connection

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        cursor = self._connection.execute(query, params)
        try:
            return _fetch(cursor)
        finally:
            cursor.close()

    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        cursor = self._connection.execute(query, params)
        row_id = cursor.lastrowid
        cursor.close()
        return row_id


class SQLiteBackend(DatabaseBackend):
    """SQLite database backend implementation.

    Each thread gets its own connection (sqlite3 connections are not
    shareable across threads), so the database must be a file rather than
    ``:memory:`` when more than one thread is involved.
    """

    schema_file = "sqlite.sql"

    def __init__(self, db_path: str, timeout: Optional[float] = None):
        self.db_path = db_path
        self.timeout = timeout if timeout is not None else 5.0
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        logger.info(f"SQLiteBackend initialized with path: {self.db_path}")

    @property
    def connection(self) -> sqlite3.Connection:
        connection = getattr(self._local, "connection", None)
        if connection is None:
            # Autocommit mode; transactions are opened explicitly. Only the
            # owning thread uses the connection, but close() may run elsewhere.
            connection = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return connection

    @property
    def placeholder(self) -> str:
        return "?"

    @property
    def integrity_errors(self):
        return (sqlite3.IntegrityError,)

    @retry_on_db_locked()
    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(query, params)
            return _fetch(cursor)
        finally:
            cursor.close()

    @retry_on_db_locked()
    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        cursor = self.connection.cursor()
        cursor.execute(query, params)
        row_id = cursor.lastrowid
        cursor.close()
        return row_id

    @retry_on_db_locked()
    def execute_many(self, query: str, params_list: List[tuple]) -> int:
        with self.transaction() as tx:
            count = 0
            for params in params_list:
                count += tx.execute(query, params)[0].get("rowcount", 0)
        return count

    def execute_script(self, script: str) -> None:
        self.connection.executescript(script)

    @retry_on_db_locked()
    def _begin(self, read_only: bool) -> None:
        # Writers take the reserved lock up front so two writers never
        # deadlock trying to upgrade shared locks.
        self.connection.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Transaction]:
        connection = self.connection
        self._begin(read_only)
        try:
            yield SQLiteTransaction(connection)
        except BaseException:
            connection.execute("ROLLBACK")
            raise
        try:
            connection.execute("COMMIT")
        except sqlite3.Error:
            if connection.in_transaction:
                connection.execute("ROLLBACK")
            raise

    def close(self):
        with self._connections_lock:
            for connection in self._connections:
                connection.close()
            self._connections = []
        self._local = threading.local()
