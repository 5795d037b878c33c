# ==============================================================================
# Session Processor - Pure Domain Logic
# ==============================================================================
"""
Session aggregation logic with no I/O.

Sessions are merged by the store, not in memory: for every session touched by
an ingestion call this module produces exactly one conditional upsert, which
the caller submits in the same atomic batch as the event inserts. Building the
merge as a single statement (instead of read-then-write) is what keeps two
concurrent handlers from losing each other's updates for the same session.

Merge rules applied on conflict:
    start_time  = least(stored, new)
    end_time    = greatest(stored, new)
    duration    = greatest(end) - least(start), recomputed every merge
    entry_page  = new page only if new start < stored start
    exit_page   = new page only if new end >= stored end
    event_count = stored + delta
    is_bounce   = 0 once the merged event count exceeds 1, else 1

Multiple events of one batch that share a session are folded first (see
fold()), so a batch produces a single upsert per session.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from siteanalytics.base.storage import Dialect, Statement
from siteanalytics.core.dates import format_date


@dataclass
class SessionDelta:
    """
    The contribution of one or more same-session events to a session row.

    Attributes:
        project: Project identifier
        session_id: Session identifier
        user_id: First non-null user identifier seen
        start_time: Earliest event timestamp (ms)
        end_time: Latest event timestamp (ms)
        entry_page: Page of the earliest event
        exit_page: Page of the latest event
        count: Number of events folded into this delta
    """

    project: str
    session_id: str
    user_id: str | None
    start_time: int
    end_time: int
    entry_page: str | None
    exit_page: str | None
    count: int = 1

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    @property
    def is_bounce(self) -> int:
        return 0 if self.count > 1 else 1

    @property
    def date(self) -> str:
        return format_date(self.start_time)


class SessionProcessor:
    """
    Builds session upserts from events.

    Event dict structure (as produced by the ingestion path):
        {
            "project": str,
            "session_id": str | None,
            "user_id": str | None,
            "timestamp": int,          # Unix timestamp in milliseconds
            "properties": dict | None,
        }
    """

    @staticmethod
    def page_from_properties(properties: Any) -> str | None:
        """Page of an event: `path`, else `url`, else None."""
        if not isinstance(properties, Mapping):
            return None
        return properties.get("path") or properties.get("url") or None

    def delta_for_event(self, event: Mapping[str, Any]) -> SessionDelta:
        """One-event delta."""
        page = self.page_from_properties(event.get("properties"))
        ts = event["timestamp"]
        return SessionDelta(
            project=event["project"],
            session_id=event["session_id"],
            user_id=event.get("user_id") or None,
            start_time=ts,
            end_time=ts,
            entry_page=page,
            exit_page=page,
            count=event.get("count") or 1,
        )

    def fold(self, events: Iterable[Mapping[str, Any]]) -> list[SessionDelta]:
        """
        Fold same-session events of one batch into one delta per session.

        Events without a session identifier are skipped. Deltas are returned in
        order of each session's first appearance. Timestamp ties keep the first
        event's page as entry and the last event's page as exit.
        """
        folded: dict[tuple[str, str], SessionDelta] = {}

        for event in events:
            if not event.get("session_id"):
                continue
            incoming = self.delta_for_event(event)
            key = (incoming.project, incoming.session_id)
            current = folded.get(key)
            if current is None:
                folded[key] = incoming
                continue

            if incoming.start_time < current.start_time:
                current.start_time = incoming.start_time
                current.entry_page = incoming.entry_page
            if incoming.end_time >= current.end_time:
                current.end_time = incoming.end_time
                current.exit_page = incoming.exit_page
            if current.user_id is None:
                current.user_id = incoming.user_id
            current.count += incoming.count

        return list(folded.values())

    @staticmethod
    def upsert_statement(delta: SessionDelta, dialect: Dialect) -> Statement:
        """
        The single conditional upsert that creates or merges a session row.

        Args:
            delta: Folded contribution for one session
            dialect: SQL dialect of the target store

        Returns:
            Statement ready for execute() or execute_batch()
        """
        least_start = dialect.least("sessions.start_time", "excluded.start_time")
        greatest_end = dialect.greatest("sessions.end_time", "excluded.end_time")

        sql = f"""INSERT INTO sessions (session_id, user_id, project_id, start_time, end_time,
                duration, entry_page, exit_page, event_count, is_bounce, date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (session_id) DO UPDATE SET
                start_time = {least_start},
                end_time = {greatest_end},
                duration = {greatest_end} - {least_start},
                entry_page = CASE WHEN excluded.start_time < sessions.start_time
                    THEN excluded.entry_page ELSE sessions.entry_page END,
                exit_page = CASE WHEN excluded.end_time >= sessions.end_time
                    THEN excluded.exit_page ELSE sessions.exit_page END,
                date = CASE WHEN excluded.start_time < sessions.start_time
                    THEN excluded.date ELSE sessions.date END,
                event_count = sessions.event_count + excluded.event_count,
                is_bounce = CASE WHEN sessions.event_count + excluded.event_count > 1
                    THEN 0 ELSE 1 END"""

        params = (
            delta.session_id,
            delta.user_id,
            delta.project,
            delta.start_time,
            delta.end_time,
            delta.duration,
            delta.entry_page,
            delta.exit_page,
            delta.count,
            delta.is_bounce,
            delta.date,
        )
        return Statement(sql, params)
