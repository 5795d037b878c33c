# ==============================================================================
# PostgreSQL Storage Adapter
# ==============================================================================
"""
PostgreSQL implementation of the storage port.

Statements arrive with `?` placeholders and are translated to psycopg2's
`%s` style. Every primitive runs in its own transaction: commit on success,
rollback and re-raise on failure. Rows come back as dicts; NUMERIC
aggregates (SUM/AVG) are normalised to int/float so callers see the same
types SQLite returns.
"""

import json
import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from siteanalytics.base.storage import Dialect, Statement, StoragePort
from siteanalytics.utils.config import Settings, get_settings
from siteanalytics.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def translate_placeholders(sql: str) -> str:
    """Rewrite `?` placeholders to `%s`, escaping literal percent signs."""
    return sql.replace("%", "%%").replace("?", "%s")


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _normalize_row(row: dict) -> dict:
    return {key: _normalize_value(value) for key, value in row.items()}


class PostgreSQLDialect(Dialect):
    """SQL fragments for PostgreSQL (properties stored as JSONB)."""

    name = "postgresql"

    def least(self, a: str, b: str) -> str:
        return f"LEAST({a}, {b})"

    def greatest(self, a: str, b: str) -> str:
        return f"GREATEST({a}, {b})"

    def json_property(self, column: str, key: str) -> str:
        # jsonb keeps numbers numeric; JSON null maps to SQL NULL as in SQLite
        return f"NULLIF({column} -> '{key}', 'null'::jsonb)"

    def hour_bucket(self, ts_column: str) -> str:
        return (
            f"to_char(to_timestamp({ts_column} / 1000) AT TIME ZONE 'UTC', "
            "'YYYY-MM-DD\"T\"HH24:00')"
        )

    def week_bucket(self, date_column: str) -> str:
        as_date = f"CAST({date_column} AS DATE)"
        return (
            f"to_char({as_date} - CAST(EXTRACT(DOW FROM {as_date}) AS INTEGER), 'YYYY-MM-DD')"
        )

    def day_of_week(self, date_column: str) -> str:
        return f"CAST(EXTRACT(DOW FROM CAST({date_column} AS DATE)) AS INTEGER)"

    def hour_of_day(self, ts_column: str) -> str:
        return (
            f"CAST(EXTRACT(HOUR FROM to_timestamp({ts_column} / 1000) AT TIME ZONE 'UTC') "
            "AS INTEGER)"
        )

    def json_each(self, column: str) -> str:
        return f"jsonb_each({column})"

    def property_placeholder(self) -> str:
        return "CAST(? AS jsonb)"

    def property_param(self, value: Any) -> Any:
        return json.dumps(value)


class PostgreSQLStorage(StoragePort):
    """
    PostgreSQL implementation of the storage port.

    Tables are resolved through the search_path, which is set to the
    configured schema on connect.
    """

    dialect = PostgreSQLDialect()

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the storage adapter.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def _open(self) -> psycopg2.extensions.connection:
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        conn = psycopg2.connect(conn_string, cursor_factory=RealDictCursor)
        with conn.cursor() as cur:
            cur.execute(f'SET search_path TO "{self._schema}", public')
        conn.commit()
        return conn

    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        self._conn = self._open()
        logger.info("PostgreSQLStorage connected (schema=%s)", self._schema)

    def _connection(self) -> psycopg2.extensions.connection:
        if self._conn is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")
        return self._conn

    def rollback(self) -> None:
        """Rollback current transaction."""
        if self._conn:
            try:
                self._conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback failed: %s", e)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute(translate_placeholders(sql), tuple(params))
                affected = cur.rowcount
            conn.commit()
        except Exception:
            self.rollback()
            raise
        return affected

    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute(translate_placeholders(sql), tuple(params))
                rows = cur.fetchall()
            conn.commit()
        except Exception:
            self.rollback()
            raise
        return [_normalize_row(dict(row)) for row in rows]

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> dict | None:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                cur.execute(translate_placeholders(sql), tuple(params))
                row = cur.fetchone()
            conn.commit()
        except Exception:
            self.rollback()
            raise
        return _normalize_row(dict(row)) if row is not None else None

    def execute_batch(self, statements: Sequence[Statement]) -> None:
        conn = self._connection()
        try:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(translate_placeholders(statement.sql), tuple(statement.params))
            conn.commit()
        except Exception:
            self.rollback()
            raise
        logger.debug("Applied batch of %d statements", len(statements))

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.info("PostgreSQLStorage connection closed")
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        True if connection successful, False otherwise
    """
    try:
        settings = settings or get_settings()
        conn_string = _add_connect_timeout(settings.postgres.connection_string)
        conn = psycopg2.connect(conn_string)
        conn.close()
        return True
    except psycopg2.Error:
        return False
