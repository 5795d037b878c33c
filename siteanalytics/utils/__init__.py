# ==============================================================================
# Site Analytics Utilities
# ==============================================================================
"""
Shared utilities: configuration, schema initialization and package paths.
"""

from siteanalytics.utils.config import (
    ExperimentSettings,
    IngestSettings,
    PostgresSettings,
    Settings,
    SQLiteSettings,
    StorageSettings,
    get_settings,
)
from siteanalytics.utils.db import (
    ensure_schema,
    render_schema_sql,
)

__all__ = [
    # Config
    "ExperimentSettings",
    "IngestSettings",
    "PostgresSettings",
    "SQLiteSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    # Database
    "ensure_schema",
    "render_schema_sql",
]
