# ==============================================================================
# Date Helpers
# ==============================================================================
"""
UTC calendar helpers for the denormalized `date` column (YYYY-MM-DD) and for
parsing caller-supplied `since` values.
"""

import time
from datetime import UTC, datetime, timedelta

from siteanalytics.core.constants import DEFAULT_DAYS, MS_PER_DAY


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_date(value: int | float | datetime) -> str:
    """Convert epoch milliseconds or a datetime to a UTC YYYY-MM-DD string."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).strftime("%Y-%m-%d")
    return datetime.fromtimestamp(value / 1000.0, tz=UTC).strftime("%Y-%m-%d")


def today(clock_ms: int | None = None) -> str:
    return format_date(now_ms() if clock_ms is None else clock_ms)


def days_ago(days: int, clock_ms: int | None = None) -> str:
    base = now_ms() if clock_ms is None else clock_ms
    return format_date(base - days * MS_PER_DAY)


def _parse_iso(since: str | None) -> datetime | None:
    if not since:
        return None
    try:
        parsed = datetime.fromisoformat(since)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_since(since: str | None, clock_ms: int | None = None) -> str:
    """
    Parse a `since` ISO timestamp into a date string.

    Falls back to 7 days ago when missing or unparseable.
    """
    parsed = _parse_iso(since)
    if parsed is None:
        return days_ago(DEFAULT_DAYS, clock_ms)
    return format_date(parsed)


def parse_since_ms(since: str | None, clock_ms: int | None = None) -> int:
    """Parse `since` into epoch milliseconds (for timestamp-based queries)."""
    parsed = _parse_iso(since)
    if parsed is None:
        base = now_ms() if clock_ms is None else clock_ms
        return base - DEFAULT_DAYS * MS_PER_DAY
    return int(parsed.timestamp() * 1000)


def shift_date(date_str: str, days: int) -> str:
    """Shift a YYYY-MM-DD string by a number of days."""
    shifted = datetime.strptime(date_str, "%Y-%m-%d") + timedelta(days=days)
    return shifted.strftime("%Y-%m-%d")
