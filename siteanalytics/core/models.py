# ==============================================================================
# Analytics Domain Models
# ==============================================================================
"""
Pydantic models for tracked events, analytics requests and experiments.

These models are used for:
- Validating events arriving on the ingestion path
- Parsing flexible query and experiment configuration payloads
- Type safety throughout the application

Vocabulary checks (metrics, group-by fields, filter operators) are NOT done
here: they belong to the query builder, which raises AnalyticsError codes the
caller can act on.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from siteanalytics.core.constants import DEFAULT_LIMIT, Metric


class TrackedEvent(BaseModel):
    """
    A single behavioral event as submitted by a client.

    Attributes:
        project: Project identifier
        event: Free-form event name
        properties: Optional flat key -> scalar map
        user_id: Optional user identifier
        session_id: Optional session identifier
        timestamp: Epoch milliseconds; defaults to arrival time when absent
    """

    project: str = Field(..., min_length=1, description="Project identifier")
    event: str = Field(..., min_length=1, description="Event name")
    properties: dict[str, Any] | None = Field(None, description="Event properties")
    user_id: str | None = Field(None, description="User identifier")
    session_id: str | None = Field(None, description="Session identifier")
    timestamp: int | None = Field(None, description="Unix timestamp in milliseconds")

    model_config = {"extra": "ignore"}

    @field_validator("user_id", "session_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value in ("", 0):
            return None
        return value if value is None else str(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _zero_timestamp_to_none(cls, value: Any) -> Any:
        return value or None


class QueryFilter(BaseModel):
    """One `{field, op, value}` predicate of a flexible query."""

    field: str | None = None
    op: str | None = None
    value: Any = None

    @property
    def is_complete(self) -> bool:
        return bool(self.field) and bool(self.op) and self.value is not None


class QueryRequest(BaseModel):
    """Flexible analytics query request body."""

    project: str = Field(..., min_length=1)
    metrics: list[str] = Field(default_factory=lambda: [Metric.EVENT_COUNT.value])
    group_by: list[str] = Field(default_factory=list)
    filters: list[QueryFilter] | None = None
    date_from: str | None = None
    date_to: str | None = None
    order_by: str | None = None
    order: str | None = None
    limit: int = DEFAULT_LIMIT

    model_config = {"extra": "ignore"}


class Variant(BaseModel):
    """One named outcome of an experiment with its integer weight."""

    key: str
    weight: int = 0


class ExperimentConfig(BaseModel):
    """Server-distributed experiment definition."""

    key: str
    variants: list[Variant] = Field(..., min_length=1)

    def has_variant(self, key: str) -> bool:
        return any(v.key == key for v in self.variants)


class Exposure(BaseModel):
    """Record emitted the first time an experiment resolves in a context."""

    experiment: str
    variant: str
    forced: bool = False

    def to_properties(self) -> dict:
        """Event properties for the exposure; `forced` only when set."""
        props: dict[str, Any] = {"experiment": self.experiment, "variant": self.variant}
        if self.forced:
            props["forced"] = True
        return props

    def to_event(
        self,
        project: str,
        user_id: str | None,
        session_id: str | None = None,
        timestamp: int | None = None,
        event_name: str = "$experiment_exposure",
    ) -> TrackedEvent:
        """Build the exposure event that flows back through ingestion."""
        return TrackedEvent(
            project=project,
            event=event_name,
            properties=self.to_properties(),
            user_id=user_id,
            session_id=session_id,
            timestamp=timestamp,
        )
