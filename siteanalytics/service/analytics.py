# ==============================================================================
# Analytics Service
# ==============================================================================
"""
Ingestion and analytics computations written once against the storage port.

Write side:
    track_event / track_batch insert events and merge sessions in a single
    atomic batch (see SessionProcessor for the merge rules).

Read side:
    stats, breakdown, insights, pages, session distribution, heatmap, raw
    listings and the flexible query. Every report is recomputed per call.

Validation failures raise AnalyticsError before any storage call. Storage
errors propagate unchanged.
"""

import json
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError
from ulid import ULID

from siteanalytics.base.storage import Statement, StoragePort
from siteanalytics.core.constants import (
    DEFAULT_LIMIT,
    DEFAULT_REPORT_LIMIT,
    MS_PER_DAY,
    PROPERTY_SAMPLE_SIZE,
    RECEIVED_SAMPLE_DEFAULT,
    RECEIVED_SAMPLE_MAX,
    RECEIVED_SAMPLE_MIN,
    TOP_EVENTS_LIMIT,
    Granularity,
    Metric,
    PageType,
)
from siteanalytics.core.dates import format_date, now_ms, parse_since, parse_since_ms, shift_date, today
from siteanalytics.core.errors import AnalyticsError, ErrorCode
from siteanalytics.core.experiments import ExperimentContext
from siteanalytics.core.models import ExperimentConfig, Exposure, QueryRequest, TrackedEvent
from siteanalytics.core.query_builder import QueryBuilder, clamp_limit, validate_property_key
from siteanalytics.core.session_processor import SessionProcessor
from siteanalytics.service import reports
from siteanalytics.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

EVENT_INSERT_SQL = """INSERT INTO events (id, project_id, event, properties, user_id, session_id, timestamp, date)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)"""

SESSION_AGGREGATE_SQL = """SELECT COUNT(*) AS total_sessions,
        SUM(CASE WHEN is_bounce = 1 THEN 1 ELSE 0 END) AS bounced_sessions,
        SUM(duration) AS total_duration,
        SUM(event_count) AS total_events,
        COUNT(DISTINCT user_id) AS unique_users
    FROM sessions WHERE project_id = ? AND date >= ?"""


class AnalyticsService:
    """
    Analytics core bound to one storage adapter.

    Args:
        storage: Connected storage adapter
        settings: Application settings. If None, uses get_settings().
        clock: Callable returning the current time in epoch ms (for tests)
    """

    def __init__(
        self,
        storage: StoragePort,
        settings: Settings | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings()
        self._clock = clock or now_ms
        self._sessions = SessionProcessor()
        self._queries = QueryBuilder(storage.dialect)

    @property
    def storage(self) -> StoragePort:
        return self._storage

    @property
    def dialect(self):
        return self._storage.dialect

    def _since(self, since: str | None) -> str:
        return parse_since(since, self._clock())

    def _today(self) -> str:
        return today(self._clock())

    # ==========================================================================
    # Write side
    # ==========================================================================

    @staticmethod
    def _coerce_event(raw: TrackedEvent | Mapping[str, Any]) -> TrackedEvent:
        if isinstance(raw, TrackedEvent):
            return raw
        if not isinstance(raw, Mapping):
            raise AnalyticsError(ErrorCode.INVALID_BODY, "Event must be an object")
        if not raw.get("project") or not raw.get("event"):
            raise AnalyticsError(ErrorCode.MISSING_FIELDS, "project and event are required")
        try:
            return TrackedEvent.model_validate(raw)
        except ValidationError as e:
            raise AnalyticsError(ErrorCode.INVALID_BODY, f"Invalid event: {e}") from e

    def _event_row(self, event: TrackedEvent) -> tuple[Statement, dict]:
        """Insert statement for an event, plus the fields the session merge needs."""
        ts = event.timestamp or self._clock()
        properties = json.dumps(event.properties) if event.properties else None
        params = (
            str(ULID()),
            event.project,
            event.event,
            properties,
            event.user_id,
            event.session_id,
            ts,
            format_date(ts),
        )
        merged = {
            "project": event.project,
            "session_id": event.session_id,
            "user_id": event.user_id,
            "timestamp": ts,
            "properties": event.properties,
        }
        return Statement(EVENT_INSERT_SQL, params), merged

    def track_event(self, raw: TrackedEvent | Mapping[str, Any]) -> str:
        """
        Record one event, merging its session when it carries a session id.

        Returns:
            The generated event identifier

        Raises:
            AnalyticsError: MISSING_FIELDS or INVALID_BODY
        """
        event = self._coerce_event(raw)
        insert, merged = self._event_row(event)

        if not event.session_id:
            self._storage.execute(insert.sql, insert.params)
        else:
            delta = self._sessions.delta_for_event(merged)
            upsert = self._sessions.upsert_statement(delta, self.dialect)
            self._storage.execute_batch([insert, upsert])

        logger.debug("Tracked %s for project %s", event.event, event.project)
        return insert.params[0]

    def track_batch(self, raw_events: Sequence[TrackedEvent | Mapping[str, Any]]) -> int:
        """
        Record a batch of events atomically.

        Same-session events are folded into one session upsert per session.

        Returns:
            Number of events written

        Raises:
            AnalyticsError: INVALID_BODY when empty, BATCH_TOO_LARGE above the
                            configured maximum, MISSING_FIELDS for any event
                            without project or event name
        """
        if not isinstance(raw_events, Sequence) or isinstance(raw_events, (str, bytes)) or not raw_events:
            raise AnalyticsError(ErrorCode.INVALID_BODY, "events must be a non-empty array")
        max_size = self._settings.ingest.max_batch_size
        if len(raw_events) > max_size:
            raise AnalyticsError(
                ErrorCode.BATCH_TOO_LARGE, f"Batch size exceeds maximum of {max_size} events"
            )

        events = [self._coerce_event(raw) for raw in raw_events]
        statements: list[Statement] = []
        merged_events = []
        for event in events:
            insert, merged = self._event_row(event)
            statements.append(insert)
            merged_events.append(merged)

        deltas = self._sessions.fold(merged_events)
        statements.extend(self._sessions.upsert_statement(d, self.dialect) for d in deltas)

        self._storage.execute_batch(statements)
        logger.debug(
            "Tracked batch of %d events (%d sessions) for project %s",
            len(events),
            len(deltas),
            events[0].project,
        )
        return len(events)

    def upsert_session(self, session_data: Mapping[str, Any]) -> int:
        """
        Merge one event's worth of session data outside a batch.

        Accepts `project_id` or `project`, `session_id`, optional `user_id`,
        `timestamp` (defaults to now) and `properties`.
        """
        project = session_data.get("project_id") or session_data.get("project")
        if not project or not session_data.get("session_id"):
            raise AnalyticsError(ErrorCode.MISSING_FIELDS, "project and session_id are required")

        delta = self._sessions.delta_for_event(
            {
                "project": project,
                "session_id": session_data["session_id"],
                "user_id": session_data.get("user_id"),
                "timestamp": session_data.get("timestamp") or self._clock(),
                "properties": session_data.get("properties"),
            }
        )
        statement = self._sessions.upsert_statement(delta, self.dialect)
        return self._storage.execute(statement.sql, statement.params)

    def cleanup_sessions(self, project: str, before_date: str) -> int:
        """Delete sessions whose date precedes the cutoff; returns rows removed."""
        removed = self._storage.execute(
            "DELETE FROM sessions WHERE project_id = ? AND date < ?", (project, before_date)
        )
        logger.info("Removed %d sessions before %s for project %s", removed, before_date, project)
        return removed

    # ==========================================================================
    # Experiments
    # ==========================================================================

    def experiment_context(
        self,
        project: str,
        user_id: str | None,
        experiments: Iterable[ExperimentConfig | dict] | None = None,
        query: str | Mapping[str, str] | None = None,
        session_id: str | None = None,
        record_exposures: bool = True,
    ) -> ExperimentContext:
        """
        Create an experiment context for one page load.

        When record_exposures is set, each exposure is ingested as an event
        through track_event.
        """
        exposure_event = self._settings.experiment.exposure_event

        def _record(exposure: Exposure) -> None:
            self.track_event(
                exposure.to_event(
                    project,
                    user_id,
                    session_id=session_id,
                    timestamp=self._clock(),
                    event_name=exposure_event,
                )
            )

        return ExperimentContext(
            user_id,
            experiments=experiments,
            query=query,
            on_exposure=_record if record_exposures else None,
            override_prefix=self._settings.experiment.override_prefix,
        )

    # ==========================================================================
    # Raw listings
    # ==========================================================================

    def get_sessions(
        self,
        project: str,
        since: str | None = None,
        user_id: str | None = None,
        is_bounce: bool | int | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict]:
        sql = "SELECT * FROM sessions WHERE project_id = ? AND date >= ?"
        params: list[Any] = [project, self._since(since)]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        if is_bounce is not None:
            sql += " AND is_bounce = ?"
            params.append(int(bool(is_bounce)))
        sql += " ORDER BY start_time DESC LIMIT ?"
        params.append(clamp_limit(limit, DEFAULT_LIMIT))
        return self._storage.query_all(sql, params)

    def get_events(
        self,
        project: str,
        event: str | None = None,
        session_id: str | None = None,
        since: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict]:
        """Most recent events first, with properties decoded."""
        sql = "SELECT * FROM events WHERE project_id = ? AND date >= ?"
        params: list[Any] = [project, self._since(since)]
        if event:
            sql += " AND event = ?"
            params.append(event)
        if session_id:
            sql += " AND session_id = ?"
            params.append(session_id)
        sql += " ORDER BY timestamp DESC LIMIT ?"
        params.append(clamp_limit(limit, DEFAULT_LIMIT))

        rows = self._storage.query_all(sql, params)
        for row in rows:
            if isinstance(row.get("properties"), str):
                row["properties"] = json.loads(row["properties"])
        return rows

    def list_projects(self) -> list[dict]:
        return self._storage.query_all(
            """SELECT project_id AS id, MIN(date) AS created, MAX(date) AS last_active,
                    COUNT(*) AS event_count
                FROM events GROUP BY project_id ORDER BY last_active DESC"""
        )

    def get_properties(self, project: str, since: str | None = None) -> dict:
        """
        Event names seen in range, and the property keys in use.

        Property keys come from the most recent distinct property maps.
        """
        from_date = self._since(since)
        events = self._storage.query_all(
            """SELECT event, COUNT(*) AS count, COUNT(DISTINCT user_id) AS unique_users,
                    MIN(date) AS first_seen, MAX(date) AS last_seen
                FROM events WHERE project_id = ? AND date >= ?
                GROUP BY event ORDER BY count DESC""",
            (project, from_date),
        )
        sample = self._storage.query_all(
            """SELECT properties FROM (
                    SELECT properties, MAX(timestamp) AS last_seen_at FROM events
                    WHERE project_id = ? AND properties IS NOT NULL AND date >= ?
                    GROUP BY properties
                ) p ORDER BY last_seen_at DESC LIMIT ?""",
            (project, from_date, PROPERTY_SAMPLE_SIZE),
        )

        keys: set[str] = set()
        for row in sample:
            props = row["properties"]
            if isinstance(props, str):
                try:
                    props = json.loads(props)
                except ValueError:
                    logger.debug("Skipping malformed properties in sample")
                    continue
            if isinstance(props, dict):
                keys.update(props)

        return {"events": events, "property_keys": sorted(keys)}

    def get_properties_received(
        self, project: str, since: str | None = None, sample: int = RECEIVED_SAMPLE_DEFAULT
    ) -> dict:
        """Distinct (property key, event) pairs over the most recent events."""
        from_date = self._since(since)
        try:
            sample_size = int(sample)
        except (TypeError, ValueError):
            sample_size = RECEIVED_SAMPLE_DEFAULT
        sample_size = min(max(sample_size, RECEIVED_SAMPLE_MIN), RECEIVED_SAMPLE_MAX)

        rows = self._storage.query_all(
            f"""SELECT DISTINCT j.key AS key, e.event AS event
                FROM (
                    SELECT event, properties FROM events
                    WHERE project_id = ? AND date >= ? AND properties IS NOT NULL
                    ORDER BY timestamp DESC LIMIT ?
                ) e, {self.dialect.json_each('e.properties')} j
                ORDER BY j.key, e.event""",
            (project, from_date, sample_size),
        )
        return {"sample_size": sample_size, "since": from_date, "properties": rows}

    # ==========================================================================
    # Stats overview
    # ==========================================================================

    def _bucket_expression(self, granularity: Granularity) -> str:
        if granularity == Granularity.HOUR:
            return self.dialect.hour_bucket("timestamp")
        if granularity == Granularity.WEEK:
            return self.dialect.week_bucket("date")
        if granularity == Granularity.MONTH:
            return self.dialect.month_bucket("date")
        return "date"

    def get_session_stats(self, project: str, since: str | None = None) -> dict:
        row = self._storage.query_one(SESSION_AGGREGATE_SQL, (project, self._since(since)))
        return reports.session_stats_from_row(row)

    def get_stats(self, project: str, since: str | None = None, group_by: str = "day") -> dict:
        """
        Time series, top events, totals and session stats for a window.

        Unknown granularities fall back to daily buckets. Hourly buckets are
        bounded by timestamp, the others by date.
        """
        try:
            granularity = Granularity(group_by)
        except ValueError:
            granularity = Granularity.DAY
        from_date = self._since(since)

        if granularity == Granularity.HOUR:
            range_column, range_value = "timestamp", parse_since_ms(since, self._clock())
        else:
            range_column, range_value = "date", from_date

        time_series = self._storage.query_all(
            f"""SELECT {self._bucket_expression(granularity)} AS bucket,
                    COUNT(DISTINCT user_id) AS unique_users, COUNT(*) AS total_events
                FROM events WHERE project_id = ? AND {range_column} >= ?
                GROUP BY bucket ORDER BY bucket""",
            (project, range_value),
        )
        top_events = self._storage.query_all(
            """SELECT event, COUNT(*) AS count, COUNT(DISTINCT user_id) AS unique_users
                FROM events WHERE project_id = ? AND date >= ?
                GROUP BY event ORDER BY count DESC LIMIT ?""",
            (project, from_date, TOP_EVENTS_LIMIT),
        )
        totals = self._storage.query_one(
            """SELECT COUNT(DISTINCT user_id) AS unique_users, COUNT(*) AS total_events
                FROM events WHERE project_id = ? AND date >= ?""",
            (project, from_date),
        )

        return {
            "period": {"from": from_date, "to": self._today(), "groupBy": granularity.value},
            "totals": totals or {"unique_users": 0, "total_events": 0},
            "timeSeries": time_series,
            "events": top_events,
            "sessions": self.get_session_stats(project, since),
        }

    # ==========================================================================
    # Flexible query
    # ==========================================================================

    def query(self, request: QueryRequest | Mapping[str, Any]) -> dict:
        """
        Run a validated flexible query.

        Returns:
            {"period", "metrics", "group_by", "rows", "count"}

        Raises:
            AnalyticsError: PROJECT_REQUIRED, INVALID_BODY, or any validation
                            code raised by the query builder
        """
        if not isinstance(request, QueryRequest):
            if not isinstance(request, Mapping):
                raise AnalyticsError(ErrorCode.INVALID_BODY, "Query must be an object")
            if not request.get("project"):
                raise AnalyticsError(ErrorCode.PROJECT_REQUIRED, "project is required")
            try:
                request = QueryRequest.model_validate(request)
            except ValidationError as e:
                raise AnalyticsError(ErrorCode.INVALID_BODY, f"Invalid query: {e}") from e

        compiled = self._queries.build(request, self._today())
        rows = self._storage.query_all(compiled.statement.sql, compiled.statement.params)

        if compiled.session_statement is not None:
            session_rows = self._storage.query_all(
                compiled.session_statement.sql, compiled.session_statement.params
            )
            self._merge_session_metrics(rows, session_rows, compiled.group_columns, compiled.session_metrics)

        return {
            "period": compiled.period,
            "metrics": compiled.metrics,
            "group_by": compiled.group_by,
            "rows": rows,
            "count": len(rows),
        }

    @staticmethod
    def _merge_session_metrics(
        rows: list[dict],
        session_rows: list[dict],
        group_columns: list[str],
        session_metrics: list[Metric],
    ) -> None:
        by_group = {tuple(r[c] for c in group_columns): r for r in session_rows}
        for row in rows:
            stats = by_group.get(tuple(row[c] for c in group_columns), {})
            sessions = stats.get("sessions") or 0
            if Metric.BOUNCE_RATE in session_metrics:
                row[Metric.BOUNCE_RATE.value] = reports.ratio(stats.get("bounced"), sessions, 3)
            if Metric.AVG_DURATION in session_metrics:
                row[Metric.AVG_DURATION.value] = reports.ratio(stats.get("total_duration"), sessions, 0)

    # ==========================================================================
    # Reports
    # ==========================================================================

    def get_breakdown(
        self,
        project: str,
        property: str,
        event: str | None = None,
        since: str | None = None,
        limit: int = DEFAULT_REPORT_LIMIT,
    ) -> dict:
        """
        Event counts grouped by the value of one property.

        Raises:
            AnalyticsError: INVALID_PROPERTY_KEY
        """
        key = validate_property_key(property)
        value_expr = self.dialect.json_property("properties", key)
        where = "project_id = ? AND date >= ?"
        params: list[Any] = [project, self._since(since)]
        if event:
            where += " AND event = ?"
            params.append(event)

        values = self._storage.query_all(
            f"""SELECT {value_expr} AS value, COUNT(*) AS count, COUNT(DISTINCT user_id) AS unique_users
                FROM events
                WHERE {where} AND properties IS NOT NULL AND {value_expr} IS NOT NULL
                GROUP BY value ORDER BY count DESC LIMIT ?""",
            [*params, clamp_limit(limit, DEFAULT_REPORT_LIMIT)],
        )
        totals = self._storage.query_one(
            f"""SELECT COUNT(*) AS total_events,
                    SUM(CASE WHEN {value_expr} IS NOT NULL THEN 1 ELSE 0 END) AS total_with_property
                FROM events WHERE {where}""",
            params,
        ) or {}

        return {
            "property": key,
            "event": event or None,
            "values": values,
            "total_events": totals.get("total_events") or 0,
            "total_with_property": totals.get("total_with_property") or 0,
        }

    def insight_periods(self, days: int) -> tuple[dict, dict]:
        """
        Current and previous comparison windows.

        Current covers [today - days, today]; previous is the same number of
        calendar dates ending the day before the current window starts.
        """
        current_end = self._today()
        current_start = format_date(self._clock() - days * MS_PER_DAY)
        previous_end = shift_date(current_start, -1)
        previous_start = shift_date(previous_end, -days)
        return (
            {"from": current_start, "to": current_end},
            {"from": previous_start, "to": previous_end},
        )

    def _period_totals(self, project: str, period: dict) -> dict:
        bounds = (project, period["from"], period["to"])
        events = self._storage.query_one(
            """SELECT COUNT(*) AS total_events, COUNT(DISTINCT user_id) AS unique_users
                FROM events WHERE project_id = ? AND date >= ? AND date <= ?""",
            bounds,
        ) or {}
        sessions = self._storage.query_one(
            """SELECT COUNT(*) AS total_sessions,
                    SUM(CASE WHEN is_bounce = 1 THEN 1 ELSE 0 END) AS bounced,
                    SUM(duration) AS total_duration
                FROM sessions WHERE project_id = ? AND date >= ? AND date <= ?""",
            bounds,
        ) or {}

        total_sessions = sessions.get("total_sessions") or 0
        return {
            "total_events": events.get("total_events") or 0,
            "unique_users": events.get("unique_users") or 0,
            "total_sessions": total_sessions,
            "bounce_rate": reports.ratio(sessions.get("bounced"), total_sessions, 3),
            "avg_duration": reports.ratio(sessions.get("total_duration"), total_sessions, 0),
        }

    def get_insights(self, project: str, period: str | None = "7d") -> dict:
        """Period-over-period comparison with an overall trend on total events."""
        days = reports.parse_period_days(period)
        current_period, previous_period = self.insight_periods(days)
        current = self._period_totals(project, current_period)
        previous = self._period_totals(project, previous_period)

        metrics = {name: reports.delta(current[name], previous[name]) for name in current}
        return {
            "current_period": current_period,
            "previous_period": previous_period,
            "metrics": metrics,
            "trend": reports.classify_trend(metrics["total_events"]["change_pct"]),
        }

    def _page_rows(self, column: str, project: str, from_date: str, limit: int) -> list[dict]:
        rows = self._storage.query_all(
            f"""SELECT {column} AS page, COUNT(*) AS sessions,
                    SUM(CASE WHEN is_bounce = 1 THEN 1 ELSE 0 END) AS bounces,
                    SUM(duration) AS total_duration,
                    SUM(event_count) AS total_events
                FROM sessions
                WHERE project_id = ? AND date >= ? AND {column} IS NOT NULL
                GROUP BY {column} ORDER BY sessions DESC LIMIT ?""",
            (project, from_date, limit),
        )
        return [reports.page_row(row) for row in rows]

    def get_pages(
        self,
        project: str,
        type: str = PageType.ENTRY.value,
        since: str | None = None,
        limit: int = DEFAULT_REPORT_LIMIT,
    ) -> dict:
        """Entry and/or exit page aggregates; unknown types report entry pages."""
        try:
            page_type = PageType(type)
        except ValueError:
            page_type = PageType.ENTRY
        from_date = self._since(since)
        safe_limit = clamp_limit(limit, DEFAULT_REPORT_LIMIT)

        result = {}
        if page_type in (PageType.ENTRY, PageType.BOTH):
            result["entry_pages"] = self._page_rows("entry_page", project, from_date, safe_limit)
        if page_type in (PageType.EXIT, PageType.BOTH):
            result["exit_pages"] = self._page_rows("exit_page", project, from_date, safe_limit)
        return result

    def get_session_distribution(self, project: str, since: str | None = None) -> dict:
        rows = self._storage.query_all(
            f"""SELECT {reports.duration_bucket_case('duration')} AS bucket,
                    COUNT(*) AS sessions,
                    SUM(CASE WHEN is_bounce = 1 THEN 1 ELSE 0 END) AS bounces,
                    SUM(event_count) AS total_events
                FROM sessions WHERE project_id = ? AND date >= ?
                GROUP BY bucket""",
            (project, self._since(since)),
        )
        return reports.summarize_distribution(rows)

    def get_heatmap(self, project: str, since: str | None = None) -> dict:
        rows = self._storage.query_all(
            f"""SELECT {self.dialect.day_of_week('date')} AS day,
                    {self.dialect.hour_of_day('timestamp')} AS hour,
                    COUNT(*) AS events, COUNT(DISTINCT user_id) AS users
                FROM events WHERE project_id = ? AND date >= ?
                GROUP BY day, hour ORDER BY day, hour""",
            (project, self._since(since)),
        )
        return reports.summarize_heatmap(rows)
