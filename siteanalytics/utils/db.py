# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Schema initialization for the configured storage backend.

Schema DDL is kept as a Jinja2 template per dialect and applied through the
storage port, so the same helper initializes SQLite files, in-memory test
stores and PostgreSQL schemas.
"""

import logging

from jinja2 import Template

from siteanalytics.base.storage import Statement, StoragePort
from siteanalytics.utils.config import get_settings
from siteanalytics.utils.paths import get_schema_path

logger = logging.getLogger(__name__)


def render_schema_sql(dialect_name: str, schema_name: str | None = None) -> str:
    """Render the schema SQL template for a dialect."""
    schema_file = get_schema_path(dialect_name)
    if not schema_file.exists():
        raise RuntimeError(f"Schema file ({schema_file.name}) not found for dialect '{dialect_name}'")

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


def split_statements(sql: str) -> list[Statement]:
    """
    Split rendered DDL into individual statements.

    Comment-only lines are dropped. DDL templates never contain semicolons
    inside literals, so splitting on `;` is sufficient.
    """
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    chunks = "\n".join(lines).split(";")
    return [Statement(chunk.strip()) for chunk in chunks if chunk.strip()]


def ensure_schema(storage: StoragePort, schema_name: str | None = None) -> int:
    """
    Ensure tables and indexes exist, creating them if needed.

    This function is idempotent and safe to call multiple times.

    Args:
        storage: Connected storage adapter
        schema_name: PostgreSQL schema; defaults to the configured one

    Returns:
        Number of DDL statements applied

    Raises:
        RuntimeError: If the schema template is missing
    """
    dialect_name = storage.dialect.name
    if dialect_name == "postgresql":
        schema_name = schema_name or get_settings().postgres.schema_name

    statements = split_statements(render_schema_sql(dialect_name, schema_name))
    logger.info("Initializing %s schema (%d statements)...", dialect_name, len(statements))
    storage.execute_batch(statements)
    logger.info("Schema initialized.")
    return len(statements)
