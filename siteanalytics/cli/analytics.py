# ==============================================================================
# Analytics Commands
# ==============================================================================
"""
Report commands for the site analytics CLI.

Every command prints the report as JSON. `insights` renders a boxed summary
unless --json is given.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from siteanalytics.cli.shared import (
    BOX_WIDTH,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _section_header,
    open_service,
    parse_csv,
    print_json,
)
from siteanalytics.core.constants import DEFAULT_LIMIT, DEFAULT_REPORT_LIMIT

ProjectOption = Annotated[str, typer.Option("--project", "-p", help="Project identifier")]
SinceOption = Annotated[
    Optional[str], typer.Option("--since", help="ISO date/time lower bound (default: 7 days ago)")
]


# ==============================================================================
# Overview and Listings
# ==============================================================================


def show_stats(
    project: ProjectOption,
    since: SinceOption = None,
    group_by: Annotated[
        str, typer.Option("--group-by", "-g", help="Granularity: hour, day, week, month")
    ] = "day",
) -> None:
    """Time series, top events, totals and session stats."""
    with open_service() as service:
        print_json(service.get_stats(project, since=since, group_by=group_by))


def show_events(
    project: ProjectOption,
    since: SinceOption = None,
    event: Annotated[Optional[str], typer.Option("--event", "-e", help="Event name")] = None,
    session: Annotated[Optional[str], typer.Option("--session", "-s", help="Session id")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows (max 1000)")] = DEFAULT_LIMIT,
) -> None:
    """Most recent raw events."""
    with open_service() as service:
        print_json(
            service.get_events(project, event=event, session_id=session, since=since, limit=limit)
        )


def show_sessions(
    project: ProjectOption,
    since: SinceOption = None,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="User identifier")] = None,
    bounced: Annotated[
        Optional[bool], typer.Option("--bounced/--engaged", help="Only bounced or engaged sessions")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows (max 1000)")] = DEFAULT_LIMIT,
) -> None:
    """Most recent sessions."""
    with open_service() as service:
        print_json(
            service.get_sessions(project, since=since, user_id=user, is_bounce=bounced, limit=limit)
        )


def show_projects() -> None:
    """Projects with first/last active date and event count."""
    with open_service() as service:
        print_json(service.list_projects())


def show_properties(
    project: ProjectOption,
    since: SinceOption = None,
    received: Annotated[
        bool, typer.Option("--received", help="List (property, event) pairs from recent events")
    ] = False,
    sample: Annotated[
        int, typer.Option("--sample", help="Recent events to inspect with --received")
    ] = 5000,
) -> None:
    """Event names and property keys in use."""
    with open_service() as service:
        if received:
            print_json(service.get_properties_received(project, since=since, sample=sample))
        else:
            print_json(service.get_properties(project, since=since))


# ==============================================================================
# Reports
# ==============================================================================


def show_breakdown(
    project: ProjectOption,
    property: Annotated[str, typer.Option("--property", help="Property key to group by")],
    since: SinceOption = None,
    event: Annotated[Optional[str], typer.Option("--event", "-e", help="Only this event")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum values")] = DEFAULT_REPORT_LIMIT,
) -> None:
    """Event counts grouped by one property value."""
    with open_service() as service:
        print_json(
            service.get_breakdown(project, property, event=event, since=since, limit=limit)
        )


def _trend_badge(trend: str) -> str:
    if trend == "growing":
        return f"{C.BRIGHT_GREEN}{I.UP} growing{C.RESET}"
    if trend == "declining":
        return f"{C.BRIGHT_RED}{I.DOWN} declining{C.RESET}"
    return f"{C.BRIGHT_YELLOW}{I.FLAT} stable{C.RESET}"


def _format_pct(change_pct: Optional[int]) -> str:
    if change_pct is None:
        return "new"
    return f"{change_pct:+d}%"


def show_insights(
    project: ProjectOption,
    period: Annotated[str, typer.Option("--period", help="Period length, e.g. 7d or 30d")] = "7d",
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Period-over-period comparison.

    Examples:
        siteanalytics insights -p site-1             # Formatted table output
        siteanalytics insights -p site-1 --json      # JSON output for scripting
    """
    with open_service() as service:
        insights = service.get_insights(project, period=period)

    if json_output:
        print_json(insights)
        return

    W = BOX_WIDTH
    INNER = W - 2
    current = insights["current_period"]
    previous = insights["previous_period"]

    print()
    print(_box_header("SITE INSIGHTS", W))
    print(_empty_line(W))
    print(_box_line(f"  Current:   {current['from']} {I.ARROW} {current['to']}", W))
    print(_box_line(f"  Previous:  {previous['from']} {I.ARROW} {previous['to']}", W))
    print(_empty_line(W))
    print(_section_header("Metrics", W))

    header = f"  {'':20}{'Current':>12}  {'Previous':>12}  {'Change':>12}"
    print(_box_line(header, W))
    print(_box_line("  " + "─" * (INNER - 4), W))

    labels = {
        "total_events": "Events",
        "unique_users": "Users",
        "total_sessions": "Sessions",
        "bounce_rate": "Bounce Rate",
        "avg_duration": "Avg Duration (ms)",
    }
    for key, label in labels.items():
        metric = insights["metrics"][key]
        if key == "bounce_rate":
            cur, prev = f"{metric['current']:.3f}", f"{metric['previous']:.3f}"
        else:
            cur, prev = f"{metric['current']:,}", f"{metric['previous']:,}"
        row = f"  {label:<20}{cur:>12}  {prev:>12}  {_format_pct(metric['change_pct']):>12}"
        print(_box_line(row, W))

    print(_empty_line(W))
    print(_box_line(f"  Trend: {_trend_badge(insights['trend'])}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()


def show_pages(
    project: ProjectOption,
    since: SinceOption = None,
    type: Annotated[str, typer.Option("--type", "-t", help="entry, exit or both")] = "entry",
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum pages")] = DEFAULT_REPORT_LIMIT,
) -> None:
    """Entry and/or exit page report."""
    with open_service() as service:
        print_json(service.get_pages(project, type=type, since=since, limit=limit))


def show_distribution(project: ProjectOption, since: SinceOption = None) -> None:
    """Session-duration distribution."""
    with open_service() as service:
        print_json(service.get_session_distribution(project, since=since))


def show_heatmap(project: ProjectOption, since: SinceOption = None) -> None:
    """Day-of-week by hour-of-day activity grid."""
    with open_service() as service:
        print_json(service.get_heatmap(project, since=since))


# ==============================================================================
# Flexible Query
# ==============================================================================


def run_query(
    project: Annotated[
        Optional[str], typer.Option("--project", "-p", help="Project identifier")
    ] = None,
    metrics: Annotated[
        str, typer.Option("--metrics", "-m", help="Comma-separated metrics")
    ] = "event_count",
    group_by: Annotated[
        Optional[str], typer.Option("--group-by", "-g", help="Comma-separated group-by fields")
    ] = None,
    filters: Annotated[
        Optional[str], typer.Option("--filters", "-f", help='JSON list of {"field","op","value"}')
    ] = None,
    date_from: Annotated[Optional[str], typer.Option("--from", help="Start date YYYY-MM-DD")] = None,
    date_to: Annotated[Optional[str], typer.Option("--to", help="End date YYYY-MM-DD")] = None,
    order_by: Annotated[Optional[str], typer.Option("--order-by", help="Ordering column")] = None,
    order: Annotated[str, typer.Option("--order", help="asc or desc")] = "desc",
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows (max 1000)")] = DEFAULT_LIMIT,
    body: Annotated[
        Optional[Path], typer.Option("--body", help="Read the whole request from a JSON file")
    ] = None,
) -> None:
    """Flexible query over events.

    Examples:
        siteanalytics query -p site-1 -m event_count,unique_users -g event
        siteanalytics query -p site-1 -g date -f '[{"field": "properties.path", "op": "eq", "value": "/"}]'
        siteanalytics query --body request.json
    """
    if body is not None:
        request = json.loads(body.read_text())
    else:
        request = {
            "project": project,
            "metrics": parse_csv(metrics),
            "group_by": parse_csv(group_by),
            "filters": json.loads(filters) if filters else None,
            "date_from": date_from,
            "date_to": date_to,
            "order_by": order_by,
            "order": order,
            "limit": limit,
        }

    with open_service() as service:
        print_json(service.query(request))
