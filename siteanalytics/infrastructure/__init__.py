# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the storage port:
- storage/sqlite.py - single-node SQLite file or in-memory store
- storage/postgresql.py - PostgreSQL via psycopg2
"""

from siteanalytics.infrastructure.storage import (
    PostgreSQLStorage,
    SQLiteStorage,
    check_postgresql_connection,
    get_storage,
)

__all__ = [
    "PostgreSQLStorage",
    "SQLiteStorage",
    "check_postgresql_connection",
    "get_storage",
]
