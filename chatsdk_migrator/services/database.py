"""Bulk loader for the ChatSDK PostgreSQL store.

A thin layer over a psycopg2 connection pool offering parameterized
queries, transactions, and multi-row inserts with a caller-supplied
conflict clause. The loader is table-agnostic: it never interprets the
conflict clause, it only appends it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence, TypeVar

from psycopg2 import Error as PsycopgError
from psycopg2 import pool as psycopg2_pool
from psycopg2 import sql
from psycopg2.extras import RealDictCursor, execute_values

from chatsdk_migrator.core.config import DatabaseConfig
from chatsdk_migrator.exceptions import DatabaseError
from chatsdk_migrator.utils.logging import log_with_context

T = TypeVar("T")

# Rows sent per INSERT statement by execute_values
INSERT_PAGE_SIZE = 500


def build_insert(table: str, columns: Sequence[str], conflict_clause: str = "") -> sql.Composed:
    """Compose ``INSERT INTO table (cols) VALUES %s <conflict_clause>``."""
    statement = sql.SQL("INSERT INTO {} ({}) VALUES %s").format(
        sql.Identifier(table),
        sql.SQL(", ").join(sql.Identifier(col) for col in columns),
    )
    if conflict_clause:
        statement = sql.SQL("{} {}").format(statement, sql.SQL(conflict_clause))
    return statement


class Session:
    """Query and insert primitives bound to one connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def query(self, text: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Run a parameterized statement and return result rows as dicts."""
        with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(text, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def batch_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        conflict_clause: str = "",
    ) -> None:
        """Insert ``rows`` in one multi-row statement; no-op for zero rows."""
        if not rows:
            return
        for row in rows:
            if len(row) != len(columns):
                raise ValueError(
                    f"Row for {table} has {len(row)} values, expected {len(columns)}"
                )
        statement = build_insert(table, columns, conflict_clause)
        with self._conn.cursor() as cur:
            execute_values(cur, statement, rows, page_size=INSERT_PAGE_SIZE)
        log_with_context(logging.DEBUG, f"Inserted batch of {len(rows)} row(s) into {table}")


class Database:
    """Connection pool owner and bulk write gateway used by every importer."""

    def __init__(
        self,
        config: DatabaseConfig,
        min_connections: int = 1,
        max_connections: int = 4,
    ) -> None:
        self.config = config
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._pool: psycopg2_pool.ThreadedConnectionPool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    def connect(self) -> None:
        """Create the pool and validate it with ``SELECT 1``."""
        if self._pool is not None:
            return
        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._min_connections,
                self._max_connections,
                **self.config.connection_kwargs(),
            )
        except PsycopgError as exc:
            raise DatabaseError(
                f"Failed to connect to PostgreSQL at {self.config.host}:{self.config.port}: {exc}"
            ) from exc

        try:
            conn = pool.getconn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                conn.rollback()
            finally:
                pool.putconn(conn)
        except PsycopgError as exc:
            pool.closeall()
            raise DatabaseError(f"PostgreSQL validation query failed: {exc}") from exc

        self._pool = pool
        log_with_context(
            logging.INFO,
            f"Connected to database {self.config.database} at {self.config.host}:{self.config.port}",
        )

    def transaction(self, fn: Callable[[Session], T]) -> T:
        """Run ``fn(session)`` on one connection; commit on success, else roll back."""
        if self._pool is None:
            raise DatabaseError("Database is not connected")
        conn = self._pool.getconn()
        try:
            result = fn(Session(conn))
            conn.commit()
            return result
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def query(self, text: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        return self.transaction(lambda session: session.query(text, params))

    def batch_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        conflict_clause: str = "",
    ) -> None:
        if not rows:
            return
        self.transaction(
            lambda session: session.batch_insert(table, columns, rows, conflict_clause)
        )

    def close(self) -> None:
        """Close every pooled connection. Safe to call more than once."""
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        log_with_context(logging.DEBUG, "Database connections closed")
