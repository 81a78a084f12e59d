"""
PostgreSQL client with an instance-owned connection pool.

Uses psycopg2 with ThreadedConnectionPool. The pool is created when the
client is constructed (once, at process start) and closed explicitly at
shutdown; repositories receive the client by injection.

All queries are parameterized. Driver errors are re-raised as DatabaseError
so callers never depend on psycopg2 directly.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Raised when a query or connection fails."""


class PostgresClient:
    """
    PostgreSQL client bound to one connection pool.

    Usage:
        db = PostgresClient(database_url)
        rows = db.execute("SELECT id, email FROM users WHERE email = %s", (email,))
        db.close()
    """

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        if not database_url:
            raise ValueError("database_url is required")

        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=min_connections,
                maxconn=max_connections,
                dsn=database_url,
                connect_timeout=30,
            )
        except psycopg2.Error as e:
            logger.error(f"Could not create connection pool: {e}")
            raise DatabaseError(f"Could not connect: {e}") from e

        psycopg2.extras.register_default_jsonb(globally=True)
        logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Borrow a connection from the pool; rolled back on error."""
        if self._pool is None:
            raise DatabaseError("Connection pool is closed")

        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
        except psycopg2.Error as e:
            if conn is not None:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise DatabaseError(str(e)) from e
        finally:
            if conn is not None:
                self._pool.putconn(conn)

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute and commit a statement, return row dicts (empty list if none)."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone() if cur.description else None
            conn.commit()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, return affected rows."""
        return self.execute(query, params)

    def close(self) -> None:
        """Close every connection in the pool. Safe to call twice."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
