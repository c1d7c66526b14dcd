"""
Shared protocol definitions for RecordRoom.
Defines event streams, pagination cursors and live notification types
exchanged between the browser SDK, the server and replay clients.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import json
import re


class EventKind(Enum):
    CONSOLE = "console"
    NETWORK = "network"
    BREADCRUMB = "breadcrumb"
    RRWEB = "rrweb"  # DOM snapshots, not part of the merged timeline


# Streams merged by the timeline view
TIMELINE_KINDS = (EventKind.CONSOLE, EventKind.NETWORK, EventKind.BREADCRUMB)

# Bounds of a stored INTEGER; timestamps, sequences and statuses stay inside them
INT64_MIN = -2**63
INT64_MAX = 2**63 - 1

_CURSOR_PART = re.compile(r"-?[0-9]+")

EVENT_ID_PREFIXES = {
    EventKind.CONSOLE: "c_",
    EventKind.NETWORK: "n_",
    EventKind.BREADCRUMB: "b_",
    EventKind.RRWEB: "r_",
}


class NotableEventType(Enum):
    RECORD_CREATED = "record_created"
    CONSOLE_ERROR = "console_error"
    CONSOLE_WARN = "console_warn"
    NETWORK_HTTP_ERROR = "network_http_error"  # status >= 400
    NETWORK_SLOW = "network_slow"              # duration > 2000 ms

    # Live channel framing
    HISTORY_START = "history_start"
    HISTORY_END = "history_end"


@dataclass(frozen=True, order=True)
class Cursor:
    """Exclusive (ts, seq) lower bound for the next page of a stream."""
    ts: int = 0
    seq: int = 0

    @classmethod
    def parse(cls, value: Optional[str]) -> "Cursor":
        """
        Parse "<ts>_<seq>", "<ts>,<seq>" or "<ts>".

        Anything unparseable means "from the beginning".
        """
        if value is None or not value.strip():
            return cls()

        text = value.strip()
        sep = "_" if "_" in text else ","
        parts = text.split(sep, 1)
        values = [_parse_int64(part) for part in parts]
        if None in values:
            return cls()
        return cls(ts=values[0], seq=values[1] if len(values) > 1 else 0)

    def __str__(self) -> str:
        return f"{self.ts}_{self.seq}"


def _parse_int64(text: str) -> Optional[int]:
    text = text.strip()
    if not _CURSOR_PART.fullmatch(text):
        return None
    value = int(text)
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


@dataclass(frozen=True)
class Event:
    """One immutable entry of a record's event stream."""
    kind: EventKind
    event_id: str
    record_id: str
    timestamp_ms: int
    sequence: int
    payload: dict = field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.timestamp_ms, self.sequence)

    @property
    def cursor(self) -> Cursor:
        return Cursor(self.timestamp_ms, self.sequence)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "eventId": self.event_id,
            "recordId": self.record_id,
            "ts": self.timestamp_ms,
            "seq": self.sequence,
            **self.payload,
        }


@dataclass(frozen=True)
class Record:
    record_id: str
    session_id: str
    previous_record_id: Optional[str]
    page_url: str
    user_agent: str
    app_version: str
    created_at_epoch_ms: int

    def to_dict(self) -> dict:
        return {
            "recordId": self.record_id,
            "sessionId": self.session_id,
            "previousRecordId": self.previous_record_id,
            "pageUrl": self.page_url,
            "userAgent": self.user_agent,
            "appVersion": self.app_version,
            "createdAtEpochMs": self.created_at_epoch_ms,
        }


@dataclass
class CdpMessage:
    """Inbound Chrome DevTools Protocol call."""
    id: Optional[int]
    method: str
    params: dict = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: str) -> Optional["CdpMessage"]:
        """Decode a CDP call, or None if it is not one."""
        try:
            d = json.loads(data)
        except (TypeError, ValueError):
            return None
        if not isinstance(d, dict) or not isinstance(d.get("method"), str):
            return None

        params = d.get("params")
        return cls(
            id=d.get("id"),
            method=d["method"],
            params=params if isinstance(params, dict) else {},
        )


def cdp_reply(message_id: Optional[int], result: Optional[dict] = None) -> str:
    return json.dumps({"id": message_id, "result": result if result is not None else {}})


def cdp_push(method: str, params: dict) -> str:
    return json.dumps({"method": method, "params": params})
