# ==============================================================================
# Storage Adapters
# ==============================================================================
"""
Storage adapters implementing the port from base/storage.py.

Currently supported:
- SQLite (sqlite.py)
- PostgreSQL (postgresql.py)
"""

from siteanalytics.base.storage import StoragePort
from siteanalytics.infrastructure.storage.postgresql import (
    PostgreSQLDialect,
    PostgreSQLStorage,
    check_postgresql_connection,
)
from siteanalytics.infrastructure.storage.sqlite import SQLiteDialect, SQLiteStorage
from siteanalytics.utils.config import Settings, get_settings


def get_storage(settings: Settings | None = None) -> StoragePort:
    """
    Create the storage adapter selected by STORAGE_BACKEND.

    The adapter is returned unconnected; call connect() or use it as a
    context manager.
    """
    settings = settings or get_settings()
    if settings.storage.backend == "postgresql":
        return PostgreSQLStorage(settings)
    return SQLiteStorage(settings.sqlite.path)


__all__ = [
    "PostgreSQLDialect",
    "PostgreSQLStorage",
    "SQLiteDialect",
    "SQLiteStorage",
    "check_postgresql_connection",
    "get_storage",
]
