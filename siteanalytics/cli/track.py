# ==============================================================================
# Track Command
# ==============================================================================
"""
Ingest events from a file, the way a batch of tracker requests would.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from siteanalytics.cli.shared import C, I, open_service, print_json
from siteanalytics.utils.config import get_settings


def load_events(path: Path) -> list[dict]:
    """
    Read events from a JSON array file or a JSON-lines file.

    Raises:
        ValueError: If the content is neither
    """
    text = path.read_text()
    stripped = text.lstrip()
    if stripped.startswith("["):
        events = json.loads(stripped)
    else:
        events = [json.loads(line) for line in text.splitlines() if line.strip()]
    if not isinstance(events, list):
        raise ValueError("expected a JSON array or JSON lines")
    return events


def track_file(
    file: Annotated[
        Path, typer.Argument(help="JSON array or JSON-lines file of events", exists=True)
    ],
    project: Annotated[
        Optional[str], typer.Option("--project", "-p", help="Project for events without one")
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Ingest events, in batches, with session merging.

    Examples:
        siteanalytics track events.json
        siteanalytics track events.jsonl --project site-1
    """
    try:
        events = load_events(file)
    except ValueError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} Could not read {file}: {e}{C.RESET}")
        raise typer.Exit(1) from e

    if project:
        for event in events:
            if isinstance(event, dict):
                event.setdefault("project", project)

    batch_size = get_settings().ingest.max_batch_size
    written = 0
    with open_service() as service:
        for start in range(0, len(events), batch_size):
            written += service.track_batch(events[start : start + batch_size])

    if json_output:
        print_json({"tracked": written})
    else:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Tracked {written} events{C.RESET}")
