# ==============================================================================
# Tests for Storage Adapters
# ==============================================================================
"""
Tests for the storage port, the SQLite adapter and the PostgreSQL adapter.

PostgreSQL is exercised with a mocked psycopg2 connection, so these tests need
no running database.
"""

import sqlite3
from decimal import Decimal
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from siteanalytics.base.storage import Statement, StoragePort
from siteanalytics.infrastructure.storage import PostgreSQLStorage, SQLiteStorage
from siteanalytics.infrastructure.storage.postgresql import (
    _add_connect_timeout,
    check_postgresql_connection,
    translate_placeholders,
)
from siteanalytics.utils.config import PostgresSettings, Settings

# ==============================================================================
# Storage port
# ==============================================================================


class TestStoragePort:
    """Unimplemented primitives are development-time errors."""

    @pytest.mark.parametrize(
        "method,args",
        [
            ("execute", ("SELECT 1",)),
            ("query_all", ("SELECT 1",)),
            ("query_one", ("SELECT 1",)),
            ("execute_batch", ([],)),
        ],
    )
    def test_not_implemented(self, method, args):
        with pytest.raises(NotImplementedError, match=f"{method} not implemented"):
            getattr(StoragePort(), method)(*args)

    def test_connect_and_close_are_noops(self):
        with StoragePort() as port:
            assert isinstance(port, StoragePort)


# ==============================================================================
# SQLite
# ==============================================================================


class TestSQLiteStorage:
    """Tests for the SQLite adapter."""

    def test_requires_connect(self):
        with pytest.raises(RuntimeError, match="connect"):
            SQLiteStorage().query_all("SELECT 1")

    def test_execute_returns_rowcount(self, storage):
        for i in range(3):
            storage.execute(
                "INSERT INTO events (id, project_id, event, timestamp, date) VALUES (?, ?, ?, ?, ?)",
                (f"e{i}", "site-1", "view", i, "2024-03-13"),
            )
        assert storage.execute("DELETE FROM events WHERE project_id = ?", ("site-1",)) == 3

    def test_query_rows_are_dicts(self, storage):
        storage.execute(
            "INSERT INTO events (id, project_id, event, timestamp, date) VALUES (?, ?, ?, ?, ?)",
            ("e1", "site-1", "view", 1, "2024-03-13"),
        )
        rows = storage.query_all("SELECT id, event FROM events")
        assert rows == [{"id": "e1", "event": "view"}]
        assert storage.query_one("SELECT id FROM events WHERE id = ?", ("missing",)) is None

    def test_batch_is_atomic(self, storage):
        insert = "INSERT INTO events (id, project_id, event, timestamp, date) VALUES (?, ?, ?, ?, ?)"
        batch = [
            Statement(insert, ("e1", "site-1", "view", 1, "2024-03-13")),
            Statement(insert, ("e1", "site-1", "view", 2, "2024-03-13")),
        ]
        with pytest.raises(sqlite3.IntegrityError):
            storage.execute_batch(batch)
        assert storage.query_one("SELECT COUNT(*) AS n FROM events")["n"] == 0

    def test_context_manager_connects_and_closes(self):
        with SQLiteStorage() as store:
            assert store.query_one("SELECT 1 AS one") == {"one": 1}
        with pytest.raises(RuntimeError):
            store.query_one("SELECT 1")


class TestSQLiteDialect:
    """Calendar expressions evaluated by SQLite itself."""

    @pytest.mark.parametrize(
        "date,expected",
        [
            ("2024-03-13", "2024-03-10"),
            ("2024-03-10", "2024-03-10"),
            ("2024-03-09", "2024-03-03"),
            ("2024-03-16", "2024-03-10"),
        ],
    )
    def test_week_bucket_anchors_to_sunday(self, storage, date, expected):
        sql = f"SELECT {storage.dialect.week_bucket('?')} AS week"
        assert storage.query_one(sql, (date,))["week"] == expected

    def test_day_of_week_sunday_is_zero(self, storage):
        sql = f"SELECT {storage.dialect.day_of_week('?')} AS dow"
        assert storage.query_one(sql, ("2024-03-10",))["dow"] == 0
        assert storage.query_one(sql, ("2024-03-13",))["dow"] == 3

    def test_hour_expressions(self, storage):
        # 2024-03-13 09:30:00 UTC
        ts = 1_710_322_200_000
        bucket = storage.query_one(f"SELECT {storage.dialect.hour_bucket('?')} AS h", (ts,))
        hour = storage.query_one(f"SELECT {storage.dialect.hour_of_day('?')} AS h", (ts,))
        assert bucket["h"] == "2024-03-13T09:00"
        assert hour["h"] == 9


# ==============================================================================
# PostgreSQL
# ==============================================================================


@pytest.fixture()
def pg_settings():
    return Settings(postgres=PostgresSettings(schema_name="analytics_test"))


@pytest.fixture()
def pg_conn():
    """A mocked psycopg2 connection whose cursor is a context manager."""
    conn = MagicMock()
    cur = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


class TestPostgreSQLHelpers:
    """Tests for module-level helpers."""

    def test_translate_placeholders(self):
        assert translate_placeholders("a = ? AND b LIKE '10%'") == "a = %s AND b LIKE '10%%'"

    def test_connect_timeout_added(self):
        assert _add_connect_timeout("postgresql://h/db") == "postgresql://h/db?connect_timeout=10"
        assert (
            _add_connect_timeout("postgresql://h/db?sslmode=require")
            == "postgresql://h/db?sslmode=require&connect_timeout=10"
        )

    def test_connect_timeout_kept(self):
        conn_string = "postgresql://h/db?connect_timeout=3"
        assert _add_connect_timeout(conn_string) == conn_string


class TestPostgreSQLStorage:
    """Tests for the PostgreSQL adapter against a mocked driver."""

    def test_connect_sets_search_path(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        with patch(
            "siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn
        ) as connect:
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()

        assert "connect_timeout=10" in connect.call_args.args[0]
        cur.execute.assert_called_with('SET search_path TO "analytics_test", public')
        conn.commit.assert_called()

    def test_requires_connect(self, pg_settings):
        with pytest.raises(RuntimeError, match="connect"):
            PostgreSQLStorage(pg_settings).execute("SELECT 1")

    def test_execute_commits_and_returns_rowcount(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        cur.rowcount = 4
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()
        conn.commit.reset_mock()

        assert storage.execute("DELETE FROM sessions WHERE project_id = ?", ["site-1"]) == 4
        cur.execute.assert_called_with("DELETE FROM sessions WHERE project_id = %s", ("site-1",))
        conn.commit.assert_called_once()

    def test_error_rolls_back_and_propagates(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()
        cur.execute.side_effect = psycopg2.DatabaseError("boom")

        with pytest.raises(psycopg2.DatabaseError):
            storage.query_all("SELECT 1")
        conn.rollback.assert_called_once()

    def test_numeric_values_normalized(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        cur.fetchall.return_value = [{"total": Decimal("12"), "avg": Decimal("2.5"), "name": "x"}]
        cur.fetchone.return_value = {"total": Decimal("7")}
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()

        rows = storage.query_all("SELECT 1")
        assert rows == [{"total": 12, "avg": 2.5, "name": "x"}]
        assert isinstance(rows[0]["total"], int)
        assert storage.query_one("SELECT 1") == {"total": 7}

    def test_batch_single_transaction(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()
        conn.commit.reset_mock()
        cur.execute.reset_mock()

        storage.execute_batch([Statement("INSERT INTO t VALUES (?)", (1,)), Statement("DELETE FROM t", ())])

        assert cur.execute.call_count == 2
        cur.execute.assert_any_call("INSERT INTO t VALUES (%s)", (1,))
        conn.commit.assert_called_once()

    def test_batch_failure_rolls_back(self, pg_settings, pg_conn):
        conn, cur = pg_conn
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()
        conn.commit.reset_mock()
        cur.execute.side_effect = [None, psycopg2.IntegrityError("dup")]

        with pytest.raises(psycopg2.IntegrityError):
            storage.execute_batch([Statement("A", ()), Statement("B", ())])
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_connect_retries_operational_errors(self, pg_settings, pg_conn, monkeypatch):
        conn, _ = pg_conn
        monkeypatch.setattr("time.sleep", lambda seconds: None)
        with patch(
            "siteanalytics.infrastructure.storage.postgresql.psycopg2.connect",
            side_effect=[psycopg2.OperationalError("down"), conn],
        ) as connect:
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()

        assert connect.call_count == 2

    def test_connect_gives_up_after_three_attempts(self, pg_settings, monkeypatch):
        monkeypatch.setattr("time.sleep", lambda seconds: None)
        with patch(
            "siteanalytics.infrastructure.storage.postgresql.psycopg2.connect",
            side_effect=psycopg2.OperationalError("down"),
        ) as connect:
            with pytest.raises(psycopg2.OperationalError):
                PostgreSQLStorage(pg_settings).connect()

        assert connect.call_count == 3

    def test_close_releases_connection(self, pg_settings, pg_conn):
        conn, _ = pg_conn
        with patch("siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn):
            storage = PostgreSQLStorage(pg_settings)
            storage.connect()
        storage.close()

        conn.close.assert_called_once()
        with pytest.raises(RuntimeError):
            storage.query_one("SELECT 1")


class TestCheckPostgreSQLConnection:
    """Tests for the reachability check used before schema creation."""

    def test_reachable(self, pg_settings):
        conn = MagicMock()
        with patch(
            "siteanalytics.infrastructure.storage.postgresql.psycopg2.connect", return_value=conn
        ) as connect:
            assert check_postgresql_connection(pg_settings) is True

        assert "connect_timeout=10" in connect.call_args.args[0]
        conn.close.assert_called_once()

    def test_unreachable(self, pg_settings):
        with patch(
            "siteanalytics.infrastructure.storage.postgresql.psycopg2.connect",
            side_effect=psycopg2.OperationalError("down"),
        ):
            assert check_postgresql_connection(pg_settings) is False
