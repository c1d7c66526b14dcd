"""
Tests for session navigation.
"""

import pytest

from recordroom.shared import SessionNotFoundError
from recordroom.server.timeline import SessionNavigator


@pytest.fixture
def chained_sessions(event_log):
    """Three sessions, each continuing from the last record of the one before."""
    log = event_log
    log.create_record("a1", "sess-a", page_url="/home", created_at_epoch_ms=100)
    log.create_record("a2", "sess-a", previous_record_id="a1", page_url="/cart", created_at_epoch_ms=200)
    log.create_record("b2", "sess-b", previous_record_id="b1", page_url="/pay", created_at_epoch_ms=400)
    log.create_record("b1", "sess-b", previous_record_id="a2", page_url="/checkout", created_at_epoch_ms=300)
    log.create_record("c1", "sess-c", previous_record_id="b2", page_url="/done", created_at_epoch_ms=500)
    return log


class TestSessionView:
    """Tests for ordered records and their neighbours."""

    def test_records_in_creation_order(self, chained_sessions):
        view = SessionNavigator(chained_sessions).view("sess-b")

        assert [r.record_id for r in view.records] == ["b1", "b2"]
        assert [r.page_url for r in view.records] == ["/checkout", "/pay"]

    def test_record_links_stay_inside_session(self, chained_sessions):
        first, second = SessionNavigator(chained_sessions).view("sess-b").records

        assert first.previous_record_id is None
        assert first.next_record_id == "b2"
        assert second.previous_record_id == "b1"
        assert second.next_record_id is None

    def test_session_links(self, chained_sessions):
        navigator = SessionNavigator(chained_sessions)

        middle = navigator.view("sess-b")
        assert middle.previous_session_id == "sess-a"
        assert middle.next_session_id == "sess-c"

        first = navigator.view("sess-a")
        assert first.previous_session_id is None
        assert first.next_session_id == "sess-b"

        last = navigator.view("sess-c")
        assert last.previous_session_id == "sess-b"
        assert last.next_session_id is None

    def test_same_creation_time_ordered_by_id(self, event_log):
        event_log.create_record("r-b", "s", created_at_epoch_ms=100)
        event_log.create_record("r-a", "s", created_at_epoch_ms=100)

        view = SessionNavigator(event_log).view("s")
        assert [r.record_id for r in view.records] == ["r-a", "r-b"]

    def test_dangling_previous_record(self, event_log):
        event_log.create_record("r1", "s", previous_record_id="gone", created_at_epoch_ms=100)

        view = SessionNavigator(event_log).view("s")
        assert view.previous_session_id is None
        assert view.next_session_id is None

    def test_unknown_session(self, event_log):
        with pytest.raises(SessionNotFoundError):
            SessionNavigator(event_log).view("missing")

    def test_to_dict(self, chained_sessions):
        d = SessionNavigator(chained_sessions).view("sess-c").to_dict()
        assert d == {
            "sessionId": "sess-c",
            "previousSessionId": "sess-b",
            "nextSessionId": None,
            "records": [{
                "recordId": "c1",
                "previousRecordId": None,
                "nextRecordId": None,
                "pageUrl": "/done",
                "createdAtEpochMs": 500,
            }],
        }


class TestSessionQueries:
    """Tests for the event log lookups behind session views."""

    def test_list_session_records(self, chained_sessions):
        assert [r.record_id for r in chained_sessions.list_session_records("sess-a")] == ["a1", "a2"]
        assert chained_sessions.list_session_records("missing") == []

    def test_successor_ignores_own_session(self, chained_sessions):
        assert chained_sessions.find_successor("a1", "sess-a") is None
        assert chained_sessions.find_successor("a2", "sess-a").record_id == "b1"
