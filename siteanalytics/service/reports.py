# ==============================================================================
# Report Post-Processing
# ==============================================================================
"""
Pure functions that turn raw aggregate rows into report payloads.

Queries return plain SUM/COUNT columns and all ratios, averages and rounding
happen here, so every backend produces identical numbers. Rounding is
half-up (ties go toward positive infinity), which is how browser clients
round the same figures.
"""

import math
import re

from siteanalytics.core.constants import (
    DAY_NAMES,
    DEFAULT_DAYS,
    DURATION_BUCKETS,
    ENGAGED_BUCKETS,
    TREND_THRESHOLD_PCT,
    Trend,
)

_PERIOD_PATTERN = re.compile(r"^\s*([+-]?\d+)")
_BUCKET_ORDER = {label: index for index, (label, _) in enumerate(DURATION_BUCKETS)}


def round_half_up(value: float, digits: int = 0) -> int | float:
    """Round with ties toward +infinity; returns an int when digits == 0."""
    factor = 10**digits
    rounded = math.floor(value * factor + 0.5)
    if digits == 0:
        return int(rounded)
    return rounded / factor


def ratio(numerator: float | None, denominator: float | None, digits: int | None = None) -> float:
    """numerator / denominator, 0 when the denominator is empty."""
    if not denominator:
        return 0
    value = (numerator or 0) / denominator
    return value if digits is None else round_half_up(value, digits)


def delta(current: int | float, previous: int | float) -> dict:
    """
    Period-over-period comparison of one metric.

    change_pct is the rounded percentage change when previous > 0. With no
    previous baseline it is None if anything happened in the current period,
    else 0.
    """
    change = current - previous
    if previous > 0:
        change_pct = round_half_up(change / previous * 100)
    else:
        change_pct = None if current > 0 else 0
    return {"current": current, "previous": previous, "change": change, "change_pct": change_pct}


def classify_trend(change_pct: int | None) -> str:
    """growing / declining / stable from a percentage change."""
    if change_pct is None or change_pct > TREND_THRESHOLD_PCT:
        return Trend.GROWING.value
    if change_pct < -TREND_THRESHOLD_PCT:
        return Trend.DECLINING.value
    return Trend.STABLE.value


def parse_period_days(period: str | int | None, default: int = DEFAULT_DAYS) -> int:
    """
    Number of days in a period string such as "7d" or "30".

    The leading integer is used; missing, unparseable or non-positive
    values fall back to the default.
    """
    if isinstance(period, int):
        days = period
    else:
        match = _PERIOD_PATTERN.match(period or "")
        days = int(match.group(1)) if match else 0
    return days if days > 0 else default


def session_stats_from_row(row: dict | None) -> dict:
    """Session statistics from a sessions aggregate row; zeroed when empty."""
    total = (row or {}).get("total_sessions") or 0
    if total == 0:
        return {
            "total_sessions": 0,
            "bounce_rate": 0,
            "avg_duration": 0,
            "pages_per_session": 0,
            "sessions_per_user": 0,
        }

    unique_users = row.get("unique_users") or 1
    return {
        "total_sessions": total,
        "bounce_rate": ratio(row.get("bounced_sessions"), total),
        "avg_duration": round_half_up((row.get("total_duration") or 0) / total),
        "pages_per_session": round_half_up((row.get("total_events") or 0) / total, 1),
        "sessions_per_user": round_half_up(total / unique_users, 1),
    }


def page_row(row: dict) -> dict:
    """One entry/exit page report row from its session aggregates."""
    sessions = row["sessions"]
    return {
        "page": row["page"],
        "sessions": sessions,
        "bounces": row.get("bounces") or 0,
        "bounce_rate": ratio(row.get("bounces"), sessions, 3),
        "avg_duration": ratio(row.get("total_duration"), sessions, 0),
        "avg_events": ratio(row.get("total_events"), sessions, 1),
    }


def summarize_distribution(rows: list[dict]) -> dict:
    """
    Session-duration distribution from per-bucket aggregates.

    Args:
        rows: [{bucket, sessions, bounces, total_events}, ...], one per
              non-empty bucket, in any order

    Returns:
        {"distribution": [...], "median_bucket": str | None, "engaged_pct": float}
    """
    if not rows:
        return {"distribution": [], "median_bucket": None, "engaged_pct": 0}

    ordered = sorted(rows, key=lambda r: _BUCKET_ORDER.get(r["bucket"], len(_BUCKET_ORDER)))
    total = sum(r["sessions"] for r in ordered)

    distribution = [
        {
            "bucket": r["bucket"],
            "sessions": r["sessions"],
            "bounces": r.get("bounces") or 0,
            "avg_events": ratio(r.get("total_events"), r["sessions"], 1),
            "pct": round_half_up(r["sessions"] / total * 100, 1),
        }
        for r in ordered
    ]

    median_bucket = None
    cumulative = 0
    for r in distribution:
        cumulative += r["sessions"]
        if cumulative >= total / 2:
            median_bucket = r["bucket"]
            break

    engaged = sum(r["sessions"] for r in distribution if r["bucket"] in ENGAGED_BUCKETS)
    return {
        "distribution": distribution,
        "median_bucket": median_bucket,
        "engaged_pct": round_half_up(engaged / total * 100, 1),
    }


def _busiest(totals: dict[int, int]) -> int:
    # Highest total; ties go to the smaller key
    return min(totals, key=lambda k: (-totals[k], k))


def summarize_heatmap(rows: list[dict]) -> dict:
    """
    Day-of-week x hour grid with peak cell, busiest day and busiest hour.

    Args:
        rows: [{day, hour, events, users}, ...] ordered by day, hour

    Returns:
        {"heatmap": [...], "peak": dict | None, "busiest_day": str | None,
         "busiest_hour": int | None}
    """
    if not rows:
        return {"heatmap": [], "peak": None, "busiest_day": None, "busiest_hour": None}

    heatmap = [
        {
            "day": r["day"],
            "hour": r["hour"],
            "events": r["events"],
            "users": r["users"],
            "day_name": DAY_NAMES[r["day"]],
        }
        for r in rows
    ]

    peak_cell = heatmap[0]
    for cell in heatmap[1:]:
        if cell["events"] > peak_cell["events"]:
            peak_cell = cell
    peak = {key: peak_cell[key] for key in ("day", "day_name", "hour", "events", "users")}

    day_totals: dict[int, int] = {}
    hour_totals: dict[int, int] = {}
    for cell in heatmap:
        day_totals[cell["day"]] = day_totals.get(cell["day"], 0) + cell["events"]
        hour_totals[cell["hour"]] = hour_totals.get(cell["hour"], 0) + cell["events"]

    return {
        "heatmap": heatmap,
        "peak": peak,
        "busiest_day": DAY_NAMES[_busiest(day_totals)],
        "busiest_hour": _busiest(hour_totals),
    }


def duration_bucket_case(column: str = "duration") -> str:
    """SQL CASE expression labelling a duration (ms) with its bucket."""
    branches = [f"WHEN {column} = 0 THEN '{DURATION_BUCKETS[0][0]}'"]
    # Each bucket is bounded above by the next bucket's lower bound
    for (label, _), (_, upper) in zip(DURATION_BUCKETS[1:-1], DURATION_BUCKETS[2:]):
        branches.append(f"WHEN {column} < {upper} THEN '{label}'")
    return f"CASE {' '.join(branches)} ELSE '{DURATION_BUCKETS[-1][0]}' END"
