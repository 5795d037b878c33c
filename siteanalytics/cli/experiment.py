# ==============================================================================
# Experiment Commands
# ==============================================================================
"""
Resolve experiment variants the way a page load does.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from siteanalytics.cli.shared import C, open_service, parse_csv, print_json


def experiment_assign(
    name: Annotated[str, typer.Argument(help="Experiment name")],
    user: Annotated[str, typer.Option("--user", "-u", help="User identifier")],
    variants: Annotated[
        Optional[str], typer.Option("--variants", "-v", help="Inline variant keys, comma-separated")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help='Experiments config JSON ({"experiments": [...]})'),
    ] = None,
    url: Annotated[
        Optional[str], typer.Option("--url", help="Page URL or query string (for overrides)")
    ] = None,
    project: Annotated[
        Optional[str], typer.Option("--project", "-p", help="Record the exposure for this project")
    ] = None,
    session: Annotated[
        Optional[str], typer.Option("--session", "-s", help="Session identifier for the exposure")
    ] = None,
) -> None:
    """Assign a variant and, with --project, record the exposure event.

    Examples:
        siteanalytics experiment assign hero -u user-42 -v control,b
        siteanalytics experiment assign hero -u user-42 -v control,b --url "/?aa_variant_hero=b"
        siteanalytics experiment assign hero -u user-42 -c experiments.json -p site-1
    """
    experiments = []
    if config is not None:
        experiments = json.loads(config.read_text()).get("experiments") or []

    with open_service() as service:
        context = service.experiment_context(
            project or "",
            user,
            experiments=experiments,
            query=url,
            session_id=session,
            record_exposures=bool(project),
        )
        variant = context.assign(name, parse_csv(variants) or None)

    if variant is None:
        print(f"{C.BRIGHT_YELLOW}No configuration for experiment '{name}'{C.RESET}")
        raise typer.Exit(1)

    print_json(
        {
            "experiment": name,
            "variant": variant,
            "exposures": [e.to_properties() for e in context.exposures],
            "recorded": bool(project),
        }
    )
