# ==============================================================================
# Path Constants and Utilities
# ==============================================================================
"""
Centralized package paths.

Schema templates ship inside the package so they are available from an
installed wheel as well as from a source checkout.
"""

from pathlib import Path


def get_package_dir() -> Path:
    """
    Get the siteanalytics package directory.

    Returns:
        Path to the installed (or checked-out) package
    """
    return Path(__file__).resolve().parent.parent  # utils/paths.py -> siteanalytics


def get_schema_dir() -> Path:
    """
    Get the schema directory containing SQL templates.

    Returns:
        Path to the schema directory
    """
    return get_package_dir() / "schema"


def get_schema_path(dialect_name: str) -> Path:
    """
    Get the schema template for a storage dialect.

    Args:
        dialect_name: Dialect name ("sqlite" or "postgresql")

    Returns:
        Path to <dialect_name>.sql
    """
    return get_schema_dir() / f"{dialect_name}.sql"
