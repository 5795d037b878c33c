# ==============================================================================
# Database Commands
# ==============================================================================
"""
Schema and retention commands for the site analytics CLI.
"""

from typing import Annotated

import typer

from siteanalytics.cli.shared import C, I, open_service
from siteanalytics.infrastructure.storage import check_postgresql_connection
from siteanalytics.utils.config import get_settings
from siteanalytics.utils.db import ensure_schema


# ==============================================================================
# Commands
# ==============================================================================


def db_init() -> None:
    """Create tables and indexes for the configured backend (idempotent).

    Examples:
        siteanalytics db init
        STORAGE_BACKEND=postgresql siteanalytics db init
    """
    settings = get_settings()
    if settings.storage.backend == "postgresql" and not check_postgresql_connection(settings):
        print(
            f"{C.BRIGHT_RED}{I.CROSS} PostgreSQL unreachable at {settings.describe_backend()}{C.RESET}"
        )
        raise typer.Exit(1)
    with open_service() as service:
        count = ensure_schema(service.storage)
    print(
        f"{C.BRIGHT_GREEN}{I.CHECK} Schema ready on {settings.storage.backend} "
        f"({settings.describe_backend()}, {count} statements){C.RESET}"
    )


def db_cleanup_sessions(
    project: Annotated[str, typer.Option("--project", "-p", help="Project identifier")],
    before: Annotated[
        str, typer.Option("--before", "-b", help="Delete sessions dated before YYYY-MM-DD")
    ],
) -> None:
    """Delete sessions whose date precedes a cutoff.

    Events are left untouched.

    Examples:
        siteanalytics db cleanup-sessions -p site-1 -b 2024-01-01
    """
    with open_service() as service:
        removed = service.cleanup_sessions(project, before)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Removed {removed} sessions before {before}{C.RESET}")
