from .protocol import (
    EventKind,
    TIMELINE_KINDS,
    EVENT_ID_PREFIXES,
    INT64_MIN,
    INT64_MAX,
    NotableEventType,
    Cursor,
    Event,
    Record,
    CdpMessage,
    cdp_reply,
    cdp_push,
)
from .errors import (
    RecordroomError,
    RecordNotFoundError,
    SessionNotFoundError,
    EventNotFoundError,
    ReplayBlockedError,
    ReplayFailedError,
)

__all__ = [
    "EventKind",
    "TIMELINE_KINDS",
    "EVENT_ID_PREFIXES",
    "INT64_MIN",
    "INT64_MAX",
    "NotableEventType",
    "Cursor",
    "Event",
    "Record",
    "CdpMessage",
    "cdp_reply",
    "cdp_push",
    "RecordroomError",
    "RecordNotFoundError",
    "SessionNotFoundError",
    "EventNotFoundError",
    "ReplayBlockedError",
    "ReplayFailedError",
]
