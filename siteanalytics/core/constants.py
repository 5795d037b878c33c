# ==============================================================================
# Analytics Vocabulary and Limits
# ==============================================================================
"""
Closed vocabularies and numeric limits shared by the query layer and the
analytics computations.

Anything that ends up interpolated into SQL (metric aliases, group-by columns,
comparison operators) is defined here as an enum, so callers can only reach
SQL through a member of one of these sets.
"""

from enum import Enum


class Granularity(str, Enum):
    """Time-bucket width for the stats time series."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Metric(str, Enum):
    """Metrics accepted by the flexible query endpoint."""

    EVENT_COUNT = "event_count"
    UNIQUE_USERS = "unique_users"
    SESSION_COUNT = "session_count"
    BOUNCE_RATE = "bounce_rate"
    AVG_DURATION = "avg_duration"


class GroupByField(str, Enum):
    """Event columns the flexible query may group by."""

    EVENT = "event"
    DATE = "date"
    USER_ID = "user_id"
    SESSION_ID = "session_id"


class FilterOp(str, Enum):
    """Filter operators and their SQL comparison."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"

    @property
    def sql(self) -> str:
        return _FILTER_SQL[self]


_FILTER_SQL = {
    FilterOp.EQ: "=",
    FilterOp.NEQ: "!=",
    FilterOp.GT: ">",
    FilterOp.LT: "<",
    FilterOp.GTE: ">=",
    FilterOp.LTE: "<=",
}


class PageType(str, Enum):
    """Which end of a session the pages report aggregates on."""

    ENTRY = "entry"
    EXIT = "exit"
    BOTH = "both"


class Trend(str, Enum):
    GROWING = "growing"
    DECLINING = "declining"
    STABLE = "stable"


ALLOWED_METRICS = tuple(m.value for m in Metric)
ALLOWED_GROUP_BY = tuple(g.value for g in GroupByField)
ALLOWED_FILTER_OPS = tuple(op.value for op in FilterOp)

# Fixed event columns a filter may target directly
FILTERABLE_FIELDS = ("event", "user_id", "date")

# Columns a flexible query may be ordered by (when selected)
ALLOWED_ORDER_BY = ("event_count", "unique_users", "date", "event")

PROPERTY_FIELD_PREFIX = "properties."
MAX_PROPERTY_KEY_LENGTH = 128

# Session duration buckets in milliseconds: (label, lower bound inclusive)
DURATION_BUCKETS = (
    ("0s", 0),
    ("1-10s", 1),
    ("10-30s", 10_000),
    ("30-60s", 30_000),
    ("1-3m", 60_000),
    ("3-10m", 180_000),
    ("10m+", 600_000),
)
ENGAGED_BUCKETS = ("30-60s", "1-3m", "3-10m", "10m+")

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# Numeric limits
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000
DEFAULT_DAYS = 7
DEFAULT_REPORT_LIMIT = 20
TOP_EVENTS_LIMIT = 20
MAX_BATCH_SIZE = 100
MS_PER_DAY = 86_400_000

PROPERTY_SAMPLE_SIZE = 100
RECEIVED_SAMPLE_DEFAULT = 5000
RECEIVED_SAMPLE_MIN = 100
RECEIVED_SAMPLE_MAX = 10_000

TREND_THRESHOLD_PCT = 10
