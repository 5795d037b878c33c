# ==============================================================================
# Storage Port
# ==============================================================================
"""
The storage port every backing store implements.

The aggregation and query-building code is written once against four
primitives:

- execute(sql, params)        - write statement, returns rows affected
- query_all(sql, params)      - read statement, returns a list of row dicts
- query_one(sql, params)      - read statement, returns one row dict or None
- execute_batch(statements)   - apply [Statement, ...] all-or-nothing

SQL handed to the port uses `?` placeholders. The few expressions that differ
between stores (JSON extraction, calendar bucketing, scalar min/max) come from
the adapter's Dialect, so the callers never branch on the backend.

Invoking a primitive that a subclass did not override raises
NotImplementedError: that is a development-time contract violation, not a
runtime error category.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, NamedTuple


class Statement(NamedTuple):
    """A parameterized SQL statement."""

    sql: str
    params: Sequence[Any] = ()


class Dialect(ABC):
    """
    Store-specific SQL fragments used by the query builder and analytics.

    Every method returns SQL text. Arguments are column names or aliases
    chosen by the caller from closed vocabularies, or property keys that
    already passed validation; they are never raw user input.
    """

    name: str = ""

    @abstractmethod
    def least(self, a: str, b: str) -> str:
        """Scalar minimum of two expressions."""
        ...

    @abstractmethod
    def greatest(self, a: str, b: str) -> str:
        """Scalar maximum of two expressions."""
        ...

    @abstractmethod
    def json_property(self, column: str, key: str) -> str:
        """Extract a top-level property from a JSON column."""
        ...

    @abstractmethod
    def hour_bucket(self, ts_column: str) -> str:
        """Epoch-ms column truncated to the hour, as 'YYYY-MM-DDTHH:00'."""
        ...

    @abstractmethod
    def week_bucket(self, date_column: str) -> str:
        """Date column anchored to the most recent Sunday on or before it."""
        ...

    def month_bucket(self, date_column: str) -> str:
        """Date column truncated to 'YYYY-MM'."""
        return f"substr({date_column}, 1, 7)"

    @abstractmethod
    def day_of_week(self, date_column: str) -> str:
        """Integer day of week, 0 = Sunday."""
        ...

    @abstractmethod
    def hour_of_day(self, ts_column: str) -> str:
        """Integer UTC hour 0-23 of an epoch-ms column."""
        ...

    @abstractmethod
    def json_each(self, column: str) -> str:
        """Table-valued expansion of a JSON object exposing a `key` column."""
        ...

    def property_placeholder(self) -> str:
        """Placeholder expression a filter value is compared through."""
        return "?"

    def property_param(self, value: Any) -> Any:
        """Coerce a filter value for comparison against json_property()."""
        return value


class StoragePort:
    """
    Base class for backing stores.

    Subclasses override the four primitives, and connect()/close() when the
    store holds a connection.
    """

    dialect: Dialect

    def connect(self) -> None:
        """Establish connection to the data store."""

    def close(self) -> None:
        """Close connection and release resources."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write statement; returns the number of rows affected."""
        raise NotImplementedError("execute not implemented")

    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        """Execute a read statement; returns all rows as dicts."""
        raise NotImplementedError("query_all not implemented")

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> dict | None:
        """Execute a read statement; returns the first row or None."""
        raise NotImplementedError("query_one not implemented")

    def execute_batch(self, statements: Sequence[Statement]) -> None:
        """Apply all statements atomically (all or nothing)."""
        raise NotImplementedError("execute_batch not implemented")

    def __enter__(self) -> "StoragePort":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
