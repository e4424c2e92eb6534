"""PostgreSQL database backend."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from .backend_base import DatabaseBackend, Transaction

logger = logging.getLogger(__name__)


def _convert_placeholders(query: str) -> str:
    """Convert ? placeholders to %s for PostgreSQL."""
    return query.replace("?", "%s")


def _fetch(cursor) -> List[Dict[str, Any]]:
    if cursor.description is not None:
        return [dict(row) for row in cursor.fetchall()]
    return [{"rowcount": cursor.rowcount}]


class PostgresTransaction(Transaction):
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        self._cursor.execute(_convert_placeholders(query), params)
        return _fetch(self._cursor)

    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        query = _convert_placeholders(query)

        # Add RETURNING clause if not present
        if "RETURNING" not in query.upper():
            query = query.rstrip().rstrip(";") + " RETURNING id"

        self._cursor.execute(query, params)
        return self._cursor.fetchone()["id"]


class PostgresBackend(DatabaseBackend):
    """PostgreSQL database backend implementation."""

    schema_file = "postgres.sql"

    def __init__(
        self,
        conn_params: Dict[str, Any],
        min_connections: int = 1,
        max_connections: int = 10,
    ):
        self.conn_params = conn_params
        self._pool: Optional[ThreadedConnectionPool] = ThreadedConnectionPool(
            min_connections, max_connections, **conn_params
        )
        logger.info(
            f"PostgresBackend initialized for {conn_params.get('host')}:{conn_params.get('port')}"
        )

    @property
    def placeholder(self) -> str:
        return "%s"

    @property
    def integrity_errors(self):
        return (psycopg2.IntegrityError,)

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Transaction]:
        if self._pool is None:
            raise psycopg2.InterfaceError("connection pool is closed")
        connection = self._pool.getconn()
        cursor = connection.cursor(cursor_factory=RealDictCursor)
        try:
            if read_only:
                # Must be the first statement of the transaction
                cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
            yield PostgresTransaction(cursor)
            connection.commit()
        except BaseException:
            connection.rollback()
            raise
        finally:
            cursor.close()
            self._pool.putconn(connection)

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        with self.transaction() as tx:
            return tx.execute_returning_id(query, params)

    def execute_many(self, query: str, params_list: List[tuple]) -> int:
        count = 0
        with self.transaction() as tx:
            for params in params_list:
                count += tx.execute(query, params)[0].get("rowcount", 0)
        return count

    def execute_script(self, script: str) -> None:
        with self.transaction() as tx:
            tx.execute(script)

    def close(self):
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
