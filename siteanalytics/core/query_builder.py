# ==============================================================================
# Query Builder and Validator
# ==============================================================================
"""
Turns a flexible analytics request into a parameterized aggregate query.

The request vocabulary is closed: metrics, group-by fields and filter
operators are parsed into enums before any SQL is assembled, and the only
caller text that reaches SQL outside a bind parameter is a property key that
matched PROPERTY_KEY_PATTERN. Everything else is bound with `?`.

Session-level metrics (bounce_rate, avg_duration) come from the sessions
table. They are computed by a second statement over the distinct sessions of
each group and merged into the event rows by group key.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from siteanalytics.base.storage import Dialect, Statement
from siteanalytics.core.constants import (
    ALLOWED_FILTER_OPS,
    ALLOWED_GROUP_BY,
    ALLOWED_METRICS,
    ALLOWED_ORDER_BY,
    DEFAULT_DAYS,
    FILTERABLE_FIELDS,
    MAX_LIMIT,
    MAX_PROPERTY_KEY_LENGTH,
    PROPERTY_FIELD_PREFIX,
    FilterOp,
    GroupByField,
    Metric,
)
from siteanalytics.core.dates import shift_date
from siteanalytics.core.errors import AnalyticsError, ErrorCode
from siteanalytics.core.models import QueryFilter, QueryRequest

logger = logging.getLogger(__name__)

PROPERTY_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# Event-table aggregate for each metric computed directly on events
_EVENT_METRIC_SQL = {
    Metric.EVENT_COUNT: "COUNT(*) AS event_count",
    Metric.UNIQUE_USERS: "COUNT(DISTINCT user_id) AS unique_users",
    Metric.SESSION_COUNT: "COUNT(DISTINCT session_id) AS session_count",
}

SESSION_METRICS = (Metric.BOUNCE_RATE, Metric.AVG_DURATION)


def validate_property_key(key: str | None) -> str:
    """
    Check a property key before it is interpolated into SQL.

    Raises:
        AnalyticsError: INVALID_PROPERTY_KEY unless the key is 1-128 characters
                        of letters, digits and underscores
    """
    if (
        not key
        or len(key) > MAX_PROPERTY_KEY_LENGTH
        or not PROPERTY_KEY_PATTERN.fullmatch(key)
    ):
        raise AnalyticsError(ErrorCode.INVALID_PROPERTY_KEY, "Invalid property filter key")
    return key


def parse_metrics(metrics: list[str]) -> list[Metric]:
    parsed = []
    for metric in metrics:
        try:
            parsed.append(Metric(metric))
        except ValueError:
            raise AnalyticsError(
                ErrorCode.INVALID_METRIC,
                f"invalid metric: {metric}. allowed: {', '.join(ALLOWED_METRICS)}",
            ) from None
    return parsed


def parse_group_by(group_by: list[str]) -> list[GroupByField]:
    parsed = []
    for name in group_by:
        try:
            parsed.append(GroupByField(name))
        except ValueError:
            raise AnalyticsError(
                ErrorCode.INVALID_GROUP_BY,
                f"invalid group_by: {name}. allowed: {', '.join(ALLOWED_GROUP_BY)}",
            ) from None
    return parsed


def parse_filter_op(op: str) -> FilterOp:
    try:
        return FilterOp(op)
    except ValueError:
        raise AnalyticsError(
            ErrorCode.INVALID_FILTER_OP,
            f"invalid filter op: {op}. allowed: {', '.join(ALLOWED_FILTER_OPS)}",
        ) from None


def clamp_limit(limit: Any, default: int, maximum: int = MAX_LIMIT) -> int:
    """Clamp a caller limit into [1, maximum]; non-integers use the default."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, maximum))


@dataclass
class CompiledQuery:
    """
    A validated flexible query ready to run.

    Attributes:
        statement: Aggregate over the events table
        session_statement: Aggregate over sessions for bounce_rate/avg_duration,
                           or None when neither metric was requested
        period: Resolved {"from", "to"} date range
        metrics: Requested metric names, echoed back
        group_by: Requested group-by names, echoed back
        group_columns: Column names used to merge session metrics into rows
        session_metrics: Session metrics to merge
    """

    statement: Statement
    session_statement: Statement | None
    period: dict
    metrics: list[str]
    group_by: list[str]
    group_columns: list[str] = field(default_factory=list)
    session_metrics: list[Metric] = field(default_factory=list)


class QueryBuilder:
    """Compiles QueryRequests into SQL for a given dialect."""

    def __init__(self, dialect: Dialect):
        self._dialect = dialect

    def build_filters(self, filters: list[QueryFilter] | None) -> tuple[list[str], list[Any]]:
        """
        Build WHERE fragments and parameters from caller filters.

        Incomplete filters are skipped; filters on fields that are neither a
        fixed column nor `properties.<key>` are ignored.
        """
        where: list[str] = []
        params: list[Any] = []

        for flt in filters or []:
            if not flt.is_complete:
                continue
            op = parse_filter_op(flt.op)

            if flt.field in FILTERABLE_FIELDS:
                where.append(f"{flt.field} {op.sql} ?")
                params.append(flt.value)
            elif flt.field.startswith(PROPERTY_FIELD_PREFIX):
                key = validate_property_key(flt.field[len(PROPERTY_FIELD_PREFIX) :])
                where.append(
                    f"{self._dialect.json_property('properties', key)} {op.sql} "
                    f"{self._dialect.property_placeholder()}"
                )
                params.append(self._dialect.property_param(flt.value))
            else:
                logger.debug("Ignoring filter on unsupported field %r", flt.field)

        return where, params

    @staticmethod
    def _order_clause(request: QueryRequest, selected: list[str], group_by: list[str]) -> str:
        if request.order_by in ALLOWED_ORDER_BY and request.order_by in selected:
            order_field = request.order_by
        elif GroupByField.DATE.value in group_by:
            order_field = GroupByField.DATE.value
        elif Metric.EVENT_COUNT.value in selected:
            order_field = Metric.EVENT_COUNT.value
        else:
            order_field = selected[0]
        direction = "ASC" if (request.order or "").lower() == "asc" else "DESC"
        return f"ORDER BY {order_field} {direction}"

    def build(self, request: QueryRequest, today: str) -> CompiledQuery:
        """
        Validate and compile a flexible query.

        Args:
            request: Parsed request body
            today: Current UTC date (YYYY-MM-DD), used for the default range

        Raises:
            AnalyticsError: INVALID_METRIC, INVALID_GROUP_BY,
                            INVALID_FILTER_OP or INVALID_PROPERTY_KEY
        """
        metrics = parse_metrics(request.metrics)
        group_by = parse_group_by(request.group_by)

        group_columns = list(dict.fromkeys(g.value for g in group_by))
        select_parts = list(group_columns)
        for metric in metrics:
            sql = _EVENT_METRIC_SQL.get(metric)
            if sql and sql not in select_parts:
                select_parts.append(sql)
        if not select_parts:
            select_parts.append(_EVENT_METRIC_SQL[Metric.EVENT_COUNT])

        date_from = request.date_from or shift_date(today, -DEFAULT_DAYS)
        date_to = request.date_to or today

        where = ["project_id = ?", "date >= ?", "date <= ?"]
        params: list[Any] = [request.project, date_from, date_to]
        filter_where, filter_params = self.build_filters(request.filters)
        where.extend(filter_where)
        params.extend(filter_params)
        where_sql = " AND ".join(where)

        sql = f"SELECT {', '.join(select_parts)} FROM events WHERE {where_sql}"
        if group_columns:
            sql += f" GROUP BY {', '.join(group_columns)}"

        selected = [part.rsplit(" AS ", 1)[-1] for part in select_parts]
        sql += " " + self._order_clause(request, selected, group_columns)

        sql += " LIMIT ?"
        params.append(clamp_limit(request.limit, default=100))

        session_metrics = [m for m in dict.fromkeys(metrics) if m in SESSION_METRICS]
        session_statement = None
        if session_metrics:
            session_statement = self._session_statement(group_columns, where_sql, params[:-1])

        return CompiledQuery(
            statement=Statement(sql, params),
            session_statement=session_statement,
            period={"from": date_from, "to": date_to},
            metrics=list(request.metrics),
            group_by=list(request.group_by),
            group_columns=group_columns,
            session_metrics=session_metrics,
        )

    @staticmethod
    def _session_statement(group_columns: list[str], where_sql: str, params: list[Any]) -> Statement:
        inner_columns = list(dict.fromkeys([*group_columns, GroupByField.SESSION_ID.value]))
        outer_columns = [f"g.{col} AS {col}" for col in group_columns]
        select = ", ".join(
            [
                *outer_columns,
                "COUNT(*) AS sessions",
                "SUM(CASE WHEN s.is_bounce = 1 THEN 1 ELSE 0 END) AS bounced",
                "SUM(s.duration) AS total_duration",
            ]
        )
        sql = (
            f"SELECT {select} FROM ("
            f"SELECT DISTINCT {', '.join(inner_columns)} FROM events "
            f"WHERE {where_sql} AND session_id IS NOT NULL"
            f") g JOIN sessions s ON s.session_id = g.session_id"
        )
        if group_columns:
            sql += f" GROUP BY {', '.join(f'g.{col}' for col in group_columns)}"
        return Statement(sql, list(params))
