# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the site analytics CLI.
"""

from typing import Annotated

import typer

from siteanalytics.cli.shared import C, print_json
from siteanalytics.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    # JSON output mode
    if json_output:
        print_json(
            {
                "storage": {"backend": settings.storage.backend},
                "sqlite": {"path": settings.sqlite.path},
                "postgresql": {
                    "host": settings.postgres.host,
                    "port": settings.postgres.port,
                    "database": settings.postgres.database,
                    "schema": settings.postgres.schema_name,
                    "user": settings.postgres.user,
                    "password": settings.postgres.password,
                    "sslmode": settings.postgres.sslmode,
                },
                "experiment": {
                    "override_prefix": settings.experiment.override_prefix,
                    "exposure_event": settings.experiment.exposure_event,
                },
                "ingest": {"max_batch_size": settings.ingest.max_batch_size},
                "log_level": settings.log_level,
            }
        )
        return

    # Human-readable output
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}Storage{C.RESET}")
    print(f"  Backend:    {C.WHITE}{settings.storage.backend}{C.RESET}")
    print(f"  Location:   {C.WHITE}{settings.describe_backend()}{C.RESET}")
    print()

    if settings.storage.backend == "postgresql":
        print(f"{C.CYAN}PostgreSQL{C.RESET}")
        print(f"  Host:       {C.WHITE}{settings.postgres.host}{C.RESET}")
        print(f"  Port:       {C.WHITE}{settings.postgres.port}{C.RESET}")
        print(f"  Database:   {C.WHITE}{settings.postgres.database}{C.RESET}")
        print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
        print(f"  User:       {C.WHITE}{settings.postgres.user}{C.RESET}")
        print(f"  SSL:        {C.WHITE}{settings.postgres.sslmode}{C.RESET}")
        print()

    print(f"{C.CYAN}Experiments{C.RESET}")
    print(f"  Override:   {C.WHITE}?{settings.experiment.override_prefix}<name>=<variant>{C.RESET}")
    print(f"  Exposure:   {C.WHITE}{settings.experiment.exposure_event}{C.RESET}")
    print()

    print(f"{C.CYAN}Ingestion{C.RESET}")
    print(f"  Max batch:  {C.WHITE}{settings.ingest.max_batch_size}{C.RESET}")
    print()
