# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for site analytics.

Commands are organized into separate modules for maintainability:
- shared.py: Box drawing, output helpers and service lifecycle
- db.py: Schema initialization and session retention
- track.py: File-based event ingestion
- analytics.py: Report and flexible query commands
- experiment.py: Variant assignment
- config.py: Configuration display
"""

from siteanalytics.cli.shared import (
    # Constants
    BOX_WIDTH,
    # Classes
    Box,
    Colors,
    Icons,
    # Aliases
    B,
    C,
    I,
    # Output helpers
    open_service,
    parse_csv,
    print_json,
)

__all__ = [
    # Constants
    "BOX_WIDTH",
    # Classes
    "Box",
    "Colors",
    "Icons",
    # Aliases
    "B",
    "C",
    "I",
    # Output helpers
    "open_service",
    "parse_csv",
    "print_json",
]
