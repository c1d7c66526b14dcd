"""
Domain exceptions shared by storage, replay and the API layer.
"""


class RecordroomError(Exception):
    """Base class for RecordRoom errors."""


class RecordNotFoundError(RecordroomError):
    def __init__(self, record_id: str):
        super().__init__(f"record not found: {record_id}")
        self.record_id = record_id


class SessionNotFoundError(RecordroomError):
    def __init__(self, session_id: str):
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class EventNotFoundError(RecordroomError):
    def __init__(self, event_id: str):
        super().__init__(f"event not found: {event_id}")
        self.event_id = event_id


class ReplayBlockedError(RecordroomError):
    """A captured request may not be re-issued."""


class ReplayFailedError(RecordroomError):
    """A replayed request got no response from the origin."""
