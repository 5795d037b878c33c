# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and box-drawing characters
- Box drawing helpers for formatted output
- Service lifecycle (open storage, run, close) and error reporting
"""

import json
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer

from siteanalytics.core.errors import AnalyticsError
from siteanalytics.infrastructure.storage import get_storage
from siteanalytics.service import AnalyticsService
from siteanalytics.utils.config import get_settings

# ==============================================================================
# Constants
# ==============================================================================

# Box drawing width (unified for all commands)
BOX_WIDTH = 68


# ==============================================================================
# ANSI Colors and Box Drawing
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"

    # Colors
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Bright colors
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Box:
    """Unicode box-drawing characters."""

    H = "─"  # horizontal
    V = "│"  # vertical
    TL = "┌"  # top-left
    TR = "┐"  # top-right
    BL = "└"  # bottom-left
    BR = "┘"  # bottom-right
    LT = "├"  # left-tee
    RT = "┤"  # right-tee


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    UP = "▲"
    DOWN = "▼"
    FLAT = "■"
    ARROW = "→"


# Module-level aliases for convenience
C, B, I = Colors, Box, Icons

_ANSI_PATTERN = re.compile(r"\033\[[0-9;]*m")


def _visible_len(s: str) -> int:
    """Length of a string without ANSI escape sequences."""
    return len(_ANSI_PATTERN.sub("", s))


def _box_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a single-line box header."""
    inner_width = width - 2
    title_padded = f" {title} "
    left_bar = (inner_width - len(title_padded)) // 2
    right_bar = inner_width - left_bar - len(title_padded)
    return (
        f"{C.CYAN}{B.TL}{B.H * left_bar}{C.BOLD}{C.WHITE}{title_padded}"
        f"{C.RESET}{C.CYAN}{B.H * right_bar}{B.TR}{C.RESET}"
    )


def _section_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a section header."""
    inner_width = width - 2
    title_padded = f" {title} "
    bar_len = inner_width - len(title_padded) - 1  # -1 for the first H after LT
    return (
        f"{C.CYAN}{B.LT}{B.H}{C.BOLD}{title_padded}{C.RESET}{C.CYAN}{B.H * bar_len}{B.RT}{C.RESET}"
    )


def _box_line(content: str, width: int = BOX_WIDTH) -> str:
    """Create a line inside the box with proper padding to right border."""
    inner_width = width - 2
    padding = inner_width - _visible_len(content)
    return f"{C.CYAN}{B.V}{C.RESET}{content}{' ' * padding}{C.CYAN}{B.V}{C.RESET}"


def _empty_line(width: int = BOX_WIDTH) -> str:
    """Create an empty line inside the box."""
    return f"{C.CYAN}{B.V}{' ' * (width - 2)}{B.V}{C.RESET}"


def _box_bottom(width: int = BOX_WIDTH) -> str:
    """Create a box bottom border."""
    return f"{C.CYAN}{B.BL}{B.H * (width - 2)}{B.BR}{C.RESET}"


# ==============================================================================
# Output Helpers
# ==============================================================================


def print_json(data: Any) -> None:
    """Print a result as indented JSON."""
    print(json.dumps(data, indent=2, default=str))


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated option into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ==============================================================================
# Service Lifecycle
# ==============================================================================


@contextmanager
def open_service() -> Iterator[AnalyticsService]:
    """
    Open the configured storage and yield an AnalyticsService bound to it.

    AnalyticsError raised inside the block is printed as an error body and
    the command exits with status 1. Other errors propagate.
    """
    settings = get_settings()
    storage = get_storage(settings)
    storage.connect()
    try:
        yield AnalyticsService(storage, settings)
    except AnalyticsError as e:
        print_json(e.to_response())
        raise typer.Exit(1) from e
    finally:
        storage.close()
