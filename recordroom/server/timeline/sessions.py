"""
Navigation across the records of a browsing session.

A session is every record sharing a session id, oldest first. Sessions are
chained through `previousRecordId`: a record whose predecessor lives in
another session links the two sessions together.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging

from recordroom.shared import SessionNotFoundError
from recordroom.server.storage import EventLog

logger = logging.getLogger(__name__)


@dataclass
class RecordSummary:
    record_id: str
    previous_record_id: Optional[str]  # within the session
    next_record_id: Optional[str]      # within the session
    page_url: str
    created_at_epoch_ms: int

    def to_dict(self) -> dict:
        return {
            "recordId": self.record_id,
            "previousRecordId": self.previous_record_id,
            "nextRecordId": self.next_record_id,
            "pageUrl": self.page_url,
            "createdAtEpochMs": self.created_at_epoch_ms,
        }


@dataclass
class SessionView:
    session_id: str
    previous_session_id: Optional[str] = None
    next_session_id: Optional[str] = None
    records: List[RecordSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "previousSessionId": self.previous_session_id,
            "nextSessionId": self.next_session_id,
            "records": [r.to_dict() for r in self.records],
        }


class SessionNavigator:
    """Builds session views from the event log's records."""

    def __init__(self, event_log: EventLog):
        self.event_log = event_log

    def view(self, session_id: str) -> SessionView:
        """
        Get the ordered records of a session with their neighbours.

        Raises:
            SessionNotFoundError: if no record belongs to the session
        """
        records = self.event_log.list_session_records(session_id)
        if not records:
            raise SessionNotFoundError(session_id)

        summaries = []
        for i, record in enumerate(records):
            summaries.append(RecordSummary(
                record_id=record.record_id,
                previous_record_id=records[i - 1].record_id if i > 0 else None,
                next_record_id=records[i + 1].record_id if i + 1 < len(records) else None,
                page_url=record.page_url,
                created_at_epoch_ms=record.created_at_epoch_ms,
            ))

        return SessionView(
            session_id=session_id,
            previous_session_id=self._previous_session(session_id, records),
            next_session_id=self._next_session(session_id, records),
            records=summaries,
        )

    def _previous_session(self, session_id: str, records) -> Optional[str]:
        # Earliest record that continues from a record of another session
        own_ids = {r.record_id for r in records}
        for record in records:
            if not record.previous_record_id or record.previous_record_id in own_ids:
                continue
            previous = self.event_log.get_record(record.previous_record_id)
            if previous is None:
                logger.debug(f"Dangling previousRecordId {record.previous_record_id} in session {session_id}")
                continue
            if previous.session_id != session_id:
                return previous.session_id
        return None

    def _next_session(self, session_id: str, records) -> Optional[str]:
        # Latest record that another session continues from
        for record in reversed(records):
            successor = self.event_log.find_successor(record.record_id, session_id)
            if successor is not None:
                return successor.session_id
        return None
