# ==============================================================================
# Site Analytics CLI
# ==============================================================================
"""
Command-line interface for site analytics.

Usage:
    siteanalytics --help
    siteanalytics config show
    siteanalytics db init
    siteanalytics db cleanup-sessions -p site-1 -b 2024-01-01
    siteanalytics track events.json
    siteanalytics stats -p site-1 --group-by week
    siteanalytics insights -p site-1 --period 30d
    siteanalytics query -p site-1 -m event_count,bounce_rate -g date
    siteanalytics experiment assign hero -u user-42 -v control,b
"""

import logging

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os

import typer

from siteanalytics.utils.config import get_settings

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="siteanalytics",
    help="Website event analytics and experiment bucketing CLI",
    no_args_is_help=True,
)


@app.callback()
def configure_logging() -> None:
    """Website event analytics and experiment bucketing CLI."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


db_app = typer.Typer(
    help="Schema and retention operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

# Register db commands from cli.db module
from siteanalytics.cli.db import db_cleanup_sessions, db_init

db_app.command("init")(db_init)
db_app.command("cleanup-sessions")(db_cleanup_sessions)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from siteanalytics.cli.config import config_show

config_app.command("show")(config_show)

experiment_app = typer.Typer(
    help="Experiment variant assignment",
    no_args_is_help=True,
)
app.add_typer(experiment_app, name="experiment")

from siteanalytics.cli.experiment import experiment_assign

experiment_app.command("assign")(experiment_assign)

# Ingestion command is imported from siteanalytics.cli.track
from siteanalytics.cli.track import track_file

app.command("track")(track_file)

# Report commands are imported from siteanalytics.cli.analytics
from siteanalytics.cli.analytics import (
    run_query,
    show_breakdown,
    show_distribution,
    show_events,
    show_heatmap,
    show_insights,
    show_pages,
    show_projects,
    show_properties,
    show_sessions,
    show_stats,
)

app.command("stats")(show_stats)
app.command("events")(show_events)
app.command("sessions")(show_sessions)
app.command("projects")(show_projects)
app.command("properties")(show_properties)
app.command("breakdown")(show_breakdown)
app.command("insights")(show_insights)
app.command("pages")(show_pages)
app.command("distribution")(show_distribution)
app.command("heatmap")(show_heatmap)
app.command("query")(run_query)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
