# ==============================================================================
# SQLite Storage Adapter
# ==============================================================================
"""
Single-node, file-backed (or in-memory) implementation of the storage port.

Uses the JSON1 functions bundled with SQLite for property extraction and
the connection's transaction context manager for atomic batches.
"""

import logging
import sqlite3
from collections.abc import Sequence
from typing import Any

from siteanalytics.base.storage import Dialect, Statement, StoragePort

logger = logging.getLogger(__name__)


class SQLiteDialect(Dialect):
    """SQL fragments for SQLite."""

    name = "sqlite"

    def least(self, a: str, b: str) -> str:
        return f"MIN({a}, {b})"

    def greatest(self, a: str, b: str) -> str:
        return f"MAX({a}, {b})"

    def json_property(self, column: str, key: str) -> str:
        return f"json_extract({column}, '$.{key}')"

    def hour_bucket(self, ts_column: str) -> str:
        return f"strftime('%Y-%m-%dT%H:00', {ts_column} / 1000, 'unixepoch')"

    def week_bucket(self, date_column: str) -> str:
        return f"date({date_column}, '-6 days', 'weekday 0')"

    def day_of_week(self, date_column: str) -> str:
        return f"CAST(strftime('%w', {date_column}) AS INTEGER)"

    def hour_of_day(self, ts_column: str) -> str:
        return f"CAST(strftime('%H', {ts_column} / 1000, 'unixepoch') AS INTEGER)"

    def json_each(self, column: str) -> str:
        return f"json_each({column})"


class SQLiteStorage(StoragePort):
    """
    SQLite implementation of the storage port.

    Args:
        path: Database file path, or ":memory:" for a private in-memory store
    """

    dialect = SQLiteDialect()

    def __init__(self, path: str = ":memory:"):
        self._path = path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    def connect(self) -> None:
        """Open the database file."""
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        logger.info("SQLiteStorage connected (path=%s)", self._path)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SQLite connection not established. Call connect() first.")
        return self._conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self._connection()
        with conn:
            cursor = conn.execute(sql, tuple(params))
        return cursor.rowcount

    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        cursor = self._connection().execute(sql, tuple(params))
        return [dict(row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> dict | None:
        row = self._connection().execute(sql, tuple(params)).fetchone()
        return dict(row) if row is not None else None

    def execute_batch(self, statements: Sequence[Statement]) -> None:
        conn = self._connection()
        # Commits on success, rolls back on any exception
        with conn:
            for statement in statements:
                conn.execute(statement.sql, tuple(statement.params))
        logger.debug("Applied batch of %d statements", len(statements))

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.info("SQLiteStorage connection closed")
            finally:
                self._conn = None
