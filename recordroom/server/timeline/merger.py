"""
Timeline merge over a record's independently paginated event streams.

Each requested stream is read up to `limit` events past the same cursor,
then the union is sorted by (timestamp, sequence) and cut back to `limit`.
Because every stream is capped before the merge, a page can come back
shorter than `limit` even though later events exist; callers keep paging
with the returned cursor.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol
import logging

from recordroom.shared import Cursor, Event, EventKind, TIMELINE_KINDS
from recordroom.server.storage import EventFilter

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    def list_after(
        self,
        record_id: str,
        kind: EventKind,
        cursor: Cursor,
        limit: int,
        event_filter: Optional[EventFilter] = None,
    ) -> List[Event]:
        ...


@dataclass
class TimelineQuery:
    """Filters for one timeline page."""
    kinds: List[EventKind] = field(default_factory=lambda: list(TIMELINE_KINDS))
    console_level: Optional[str] = None
    status_min: Optional[int] = None
    breadcrumb_name: Optional[str] = None
    ts_from: Optional[int] = None
    ts_to: Optional[int] = None

    @staticmethod
    def parse_kinds(names: Optional[Iterable[str]]) -> List[EventKind]:
        """
        Map kind names to timeline kinds.

        Unknown names are dropped; an empty selection means all kinds.
        """
        timeline_values = {k.value: k for k in TIMELINE_KINDS}
        kinds: List[EventKind] = []
        for name in names or []:
            kind = timeline_values.get(name.strip().lower())
            if kind is not None and kind not in kinds:
                kinds.append(kind)
        return kinds or list(TIMELINE_KINDS)

    def filter_for(self, kind: EventKind) -> EventFilter:
        if kind == EventKind.CONSOLE:
            return EventFilter(console_level=self.console_level)
        if kind == EventKind.NETWORK:
            return EventFilter(status_min=self.status_min)
        if kind == EventKind.BREADCRUMB:
            return EventFilter(breadcrumb_name=self.breadcrumb_name)
        return EventFilter()

    def in_range(self, event: Event) -> bool:
        if self.ts_from is not None and event.timestamp_ms < self.ts_from:
            return False
        if self.ts_to is not None and event.timestamp_ms > self.ts_to:
            return False
        return True


@dataclass
class TimelinePage:
    items: List[Event]
    next_cursor: Cursor

    def to_dict(self) -> dict:
        return {
            "items": [e.to_dict() for e in self.items],
            "nextAfter": str(self.next_cursor),
        }


class TimelineMerger:
    """Merges console, network and breadcrumb streams into one ordered page."""

    def __init__(self, source: EventSource):
        self.source = source

    def page(
        self,
        record_id: str,
        cursor: Cursor,
        limit: int,
        query: Optional[TimelineQuery] = None,
    ) -> TimelinePage:
        """
        Read one merged page after `cursor`.

        Args:
            record_id: Record to read
            cursor: Exclusive lower bound shared by every stream
            limit: Page size, also the per-stream fetch cap
            query: Kinds and filters; defaults to every timeline kind unfiltered

        Returns:
            TimelinePage whose cursor is the last item's (ts, seq), or the
            input cursor when the page is empty
        """
        query = query or TimelineQuery()
        per_kind = max(limit, 1)
        kinds = [k for k in query.kinds if k in TIMELINE_KINDS] or list(TIMELINE_KINDS)

        items: List[Event] = []
        for kind in kinds:
            items.extend(
                self.source.list_after(record_id, kind, cursor, per_kind, query.filter_for(kind))
            )

        items = [e for e in items if query.in_range(e)]
        items.sort(key=lambda e: e.sort_key)
        items = items[:max(limit, 0)]

        next_cursor = items[-1].cursor if items else cursor
        return TimelinePage(items=items, next_cursor=next_cursor)

    def load_stream(
        self,
        record_id: str,
        kind: EventKind,
        batch_size: int = 500,
        event_filter: Optional[EventFilter] = None,
    ) -> List[Event]:
        """
        Read a whole stream in bounded batches.

        Returns:
            Every event of the stream in (ts, seq) order
        """
        events: List[Event] = []
        cursor = Cursor()

        while True:
            batch = self.source.list_after(record_id, kind, cursor, batch_size, event_filter)
            if not batch:
                break
            events.extend(batch)
            cursor = batch[-1].cursor
            if len(batch) < batch_size:
                break

        logger.debug(f"Loaded {len(events)} {kind.value} events for record {record_id}")
        return events
