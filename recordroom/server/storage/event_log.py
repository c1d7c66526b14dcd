"""
Event log for recorded browser sessions.

Append-only storage of console, network, breadcrumb and rrweb events,
read back per record and kind in (timestamp, sequence) order after a cursor.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional
import json
import logging
import sqlite3
import threading
import time
import uuid

from recordroom.shared import (
    Cursor,
    Event,
    EventKind,
    EVENT_ID_PREFIXES,
    Record,
)

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    db_path: str = "data/recordroom.db"


@dataclass
class EventFilter:
    """Per-kind filter applied by the log while paging."""
    console_level: Optional[str] = None   # console only; None/"all" = any
    status_min: Optional[int] = None      # network only
    breadcrumb_name: Optional[str] = None  # breadcrumb only; None/"all" = any


def _is_wildcard(value: Optional[str]) -> bool:
    return value is None or not value.strip() or value.strip().lower() == "all"


class EventLog:
    """
    SQLite-backed event log.

    One connection shared by all callers, guarded by a lock. Events are never
    updated after they are appended.
    """

    def __init__(self, config: StorageConfig):
        self.config = config
        self._db_lock = threading.Lock()

        if config.db_path != ":memory:":
            Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db_conn = sqlite3.connect(config.db_path, check_same_thread=False)
        self._init_database()

    def _init_database(self):
        """Initialize the database schema."""
        with self._db_lock:
            self._db_conn.executescript("""
                CREATE TABLE IF NOT EXISTS records (
                    record_id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    previous_record_id TEXT,
                    page_url TEXT NOT NULL DEFAULT '',
                    user_agent TEXT NOT NULL DEFAULT '',
                    app_version TEXT NOT NULL DEFAULT '',
                    created_at_epoch_ms INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    record_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    ts INTEGER NOT NULL,
                    seq INTEGER NOT NULL,
                    level TEXT,
                    status INTEGER,
                    name TEXT,
                    payload TEXT NOT NULL DEFAULT '{}'
                );

                CREATE INDEX IF NOT EXISTS idx_events_stream
                    ON events(record_id, kind, ts, seq);

                CREATE INDEX IF NOT EXISTS idx_records_session
                    ON records(session_id, created_at_epoch_ms);

                CREATE INDEX IF NOT EXISTS idx_records_previous
                    ON records(previous_record_id);
            """)
            self._db_conn.commit()

        logger.info(f"Event log initialized at {self.config.db_path}")

    def close(self):
        with self._db_lock:
            self._db_conn.close()

    # ==================== Records ====================

    def create_record(
        self,
        record_id: str,
        session_id: str,
        previous_record_id: Optional[str] = None,
        page_url: str = "",
        user_agent: str = "",
        app_version: str = "",
        created_at_epoch_ms: Optional[int] = None,
    ) -> Record:
        record = Record(
            record_id=record_id,
            session_id=session_id,
            previous_record_id=previous_record_id or None,
            page_url=page_url or "",
            user_agent=user_agent or "",
            app_version=app_version or "",
            created_at_epoch_ms=created_at_epoch_ms if created_at_epoch_ms is not None
            else int(time.time() * 1000),
        )

        with self._db_lock:
            self._db_conn.execute("""
                INSERT INTO records
                (record_id, session_id, previous_record_id, page_url, user_agent,
                 app_version, created_at_epoch_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                record.record_id,
                record.session_id,
                record.previous_record_id,
                record.page_url,
                record.user_agent,
                record.app_version,
                record.created_at_epoch_ms,
            ))
            self._db_conn.commit()

        return record

    def get_record(self, record_id: str) -> Optional[Record]:
        with self._db_lock:
            row = self._db_conn.execute("""
                SELECT record_id, session_id, previous_record_id, page_url,
                       user_agent, app_version, created_at_epoch_ms
                FROM records WHERE record_id = ?
            """, (record_id,)).fetchone()

        if row is None:
            return None
        return Record(*row)

    def list_session_records(self, session_id: str) -> List[Record]:
        """Records of one session, oldest first."""
        with self._db_lock:
            rows = self._db_conn.execute("""
                SELECT record_id, session_id, previous_record_id, page_url,
                       user_agent, app_version, created_at_epoch_ms
                FROM records WHERE session_id = ?
                ORDER BY created_at_epoch_ms ASC, record_id ASC
            """, (session_id,)).fetchall()

        return [Record(*row) for row in rows]

    def find_successor(self, record_id: str, outside_session: str) -> Optional[Record]:
        """Earliest record of another session that continues from `record_id`."""
        with self._db_lock:
            row = self._db_conn.execute("""
                SELECT record_id, session_id, previous_record_id, page_url,
                       user_agent, app_version, created_at_epoch_ms
                FROM records
                WHERE previous_record_id = ? AND session_id != ?
                ORDER BY created_at_epoch_ms ASC, record_id ASC
                LIMIT 1
            """, (record_id, outside_session)).fetchone()

        return Record(*row) if row else None

    def record_exists(self, record_id: Optional[str]) -> bool:
        if not record_id:
            return False
        with self._db_lock:
            row = self._db_conn.execute(
                "SELECT 1 FROM records WHERE record_id = ?", (record_id,)
            ).fetchone()
        return row is not None

    # ==================== Append ====================

    def append(
        self,
        record_id: str,
        kind: EventKind,
        timestamp_ms: int,
        sequence: int,
        payload: dict,
    ) -> Event:
        """Append one event and return it with its assigned id."""
        event = self.new_event(record_id, kind, timestamp_ms, sequence, payload)
        self._insert([event])
        return event

    def append_batch(self, events: List[Event]) -> int:
        if not events:
            return 0
        self._insert(events)
        return len(events)

    def new_event(
        self,
        record_id: str,
        kind: EventKind,
        timestamp_ms: int,
        sequence: int,
        payload: dict,
    ) -> Event:
        """Build an event with a fresh id without storing it."""
        return Event(
            kind=kind,
            event_id=f"{EVENT_ID_PREFIXES[kind]}{uuid.uuid4()}",
            record_id=record_id,
            timestamp_ms=int(timestamp_ms),
            sequence=int(sequence),
            payload=payload,
        )

    def _insert(self, events: List[Event]):
        rows = [
            (
                e.event_id,
                e.record_id,
                e.kind.value,
                e.timestamp_ms,
                e.sequence,
                e.payload.get("level") if e.kind == EventKind.CONSOLE else None,
                e.payload.get("status") if e.kind == EventKind.NETWORK else None,
                e.payload.get("name") if e.kind == EventKind.BREADCRUMB else None,
                json.dumps(e.payload),
            )
            for e in events
        ]
        with self._db_lock:
            self._db_conn.executemany("""
                INSERT INTO events
                (event_id, record_id, kind, ts, seq, level, status, name, payload)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
            self._db_conn.commit()

    # ==================== Read ====================

    def list_after(
        self,
        record_id: str,
        kind: EventKind,
        cursor: Cursor,
        limit: int,
        event_filter: Optional[EventFilter] = None,
    ) -> List[Event]:
        """
        Get up to `limit` events of one stream strictly after `cursor`.

        Args:
            record_id: Record to read
            kind: Stream to read
            cursor: Exclusive (ts, seq) lower bound
            limit: Maximum number of events to return
            event_filter: Optional per-kind filter

        Returns:
            Events ordered by (ts, seq) ascending
        """
        query = """
            SELECT event_id, ts, seq, payload
            FROM events
            WHERE record_id = ? AND kind = ?
              AND (ts > ? OR (ts = ? AND seq > ?))
        """
        params: List[Any] = [record_id, kind.value, cursor.ts, cursor.ts, cursor.seq]

        if event_filter:
            if kind == EventKind.CONSOLE and not _is_wildcard(event_filter.console_level):
                query += " AND lower(level) = lower(?)"
                params.append(event_filter.console_level.strip())
            if kind == EventKind.NETWORK and event_filter.status_min is not None:
                query += " AND status >= ?"
                params.append(event_filter.status_min)
            if kind == EventKind.BREADCRUMB and not _is_wildcard(event_filter.breadcrumb_name):
                query += " AND name = ?"
                params.append(event_filter.breadcrumb_name.strip())

        query += " ORDER BY ts ASC, seq ASC LIMIT ?"
        params.append(max(0, limit))

        with self._db_lock:
            rows = self._db_conn.execute(query, params).fetchall()

        return [self._row_to_event(record_id, kind, row) for row in rows]

    def get_event(self, record_id: str, event_id: str) -> Optional[Event]:
        """Get a single event of a record by ID."""
        with self._db_lock:
            row = self._db_conn.execute("""
                SELECT kind, event_id, ts, seq, payload
                FROM events WHERE record_id = ? AND event_id = ?
            """, (record_id, event_id)).fetchone()

        if row is None:
            return None
        return self._row_to_event(record_id, EventKind(row[0]), row[1:])

    def _row_to_event(self, record_id: str, kind: EventKind, row) -> Event:
        try:
            payload = json.loads(row[3]) if row[3] else {}
        except ValueError:
            logger.warning(f"Skipping malformed payload for event {row[0]}")
            payload = {}

        return Event(
            kind=kind,
            event_id=row[0],
            record_id=record_id,
            timestamp_ms=row[1],
            sequence=row[2],
            payload=payload,
        )

    def get_stats(self) -> dict:
        """Get event log statistics."""
        with self._db_lock:
            total_records = self._db_conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            by_kind = dict(self._db_conn.execute(
                "SELECT kind, COUNT(*) FROM events GROUP BY kind"
            ).fetchall())

        return {
            "total_records": total_records,
            "events_by_kind": by_kind,
        }
