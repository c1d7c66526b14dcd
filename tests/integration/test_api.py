"""
Integration tests for the REST API.
"""

import pytest

from recordroom.shared import EventKind


class TestRecordsApi:
    """Tests for record endpoints."""

    def test_create_record(self, client, event_log):
        response = client.post("/api/records", json={"pageUrl": "https://shop.example.com", "appVersion": "2.0"})
        assert response.status_code == 200

        body = response.json()
        record_id = body["recordId"]
        assert body["shareUrl"] == f"http://testserver/r/{record_id}/timeline"
        assert body["ingestWsUrl"] == f"ws://testserver/ws/ingest?recordId={record_id}"
        assert event_log.get_record(record_id).app_version == "2.0"

    def test_get_record(self, client, record):
        response = client.get("/api/records/rec-1")
        assert response.status_code == 200
        assert response.json()["sessionId"] == "sess-1"

    def test_unknown_record(self, client):
        response = client.get("/api/records/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "record not found: missing"

    @pytest.mark.parametrize("path", [
        "/api/records/missing/timeline",
        "/api/records/missing/console",
        "/api/records/missing/network",
        "/api/records/missing/network/n_1",
        "/api/records/missing/breadcrumbs",
        "/api/records/missing/rrweb",
    ])
    def test_record_scoped_endpoints_404(self, client, path):
        assert client.get(path).status_code == 404


class TestSessionsApi:
    """Tests for session navigation."""

    def test_session_view(self, client):
        first = client.post("/api/records", json={"sessionId": "s-1", "pageUrl": "/home"}).json()
        second = client.post("/api/records", json={
            "sessionId": "s-2",
            "previousRecordId": first["recordId"],
            "pageUrl": "/cart",
        }).json()

        body = client.get("/api/sessions/s-2").json()
        assert body["sessionId"] == "s-2"
        assert body["previousSessionId"] == "s-1"
        assert body["nextSessionId"] is None
        assert [r["recordId"] for r in body["records"]] == [second["recordId"]]

        assert client.get("/api/sessions/s-1").json()["nextSessionId"] == "s-2"

    def test_unknown_session(self, client):
        response = client.get("/api/sessions/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "session not found: missing"


class TestTimelineApi:
    """Tests for timeline reads."""

    def test_first_page(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={"limit": 2}).json()

        assert [item["kind"] for item in body["items"]] == ["console", "network"]
        assert body["nextAfter"] == "1100_1"

    def test_continuation(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={"limit": 2, "after": "1100_1"}).json()
        assert [item["ts"] for item in body["items"]] == [1_200, 1_250]

    def test_bad_cursor_starts_over(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={"after": "garbage"}).json()
        assert len(body["items"]) == 6

    @pytest.mark.parametrize("after", ["99999999999999999999_0", "1_2_3"])
    def test_cursor_outside_int64_starts_over(self, client, populated_record, after):
        response = client.get("/api/records/rec-1/timeline", params={"after": after})
        assert response.status_code == 200
        assert len(response.json()["items"]) == 6

    @pytest.mark.parametrize("path, params", [
        ("/api/records/rec-1/timeline", {"statusMin": 10**20}),
        ("/api/records/rec-1/timeline", {"tsFrom": -(10**20)}),
        ("/api/records/rec-1/timeline", {"tsTo": 10**20}),
        ("/api/records/rec-1/network", {"statusMin": 10**20}),
    ])
    def test_filters_outside_int64_rejected(self, client, populated_record, path, params):
        assert client.get(path, params=params).status_code == 422

    @pytest.mark.parametrize("limit, expected", [(0, 1), (-5, 1), (10_000, 6)])
    def test_limit_clamped(self, client, populated_record, limit, expected):
        body = client.get("/api/records/rec-1/timeline", params={"limit": limit}).json()
        assert len(body["items"]) == expected

    def test_types_and_filters(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={
            "types": "console,network,bogus",
            "consoleLevel": "error",
            "statusMin": 400,
        }).json()

        assert [(i["kind"], i["ts"]) for i in body["items"]] == [("console", 1_300), ("network", 1_400)]

    def test_time_range(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={"tsFrom": 1_200, "tsTo": 1_300}).json()
        assert [i["ts"] for i in body["items"]] == [1_200, 1_250, 1_300]

    def test_empty_page_keeps_cursor(self, client, populated_record):
        body = client.get("/api/records/rec-1/timeline", params={"after": "9999_0"}).json()
        assert body == {"items": [], "nextAfter": "9999_0"}


class TestStreamApi:
    """Tests for single-stream reads."""

    def test_console_level(self, client, populated_record):
        body = client.get("/api/records/rec-1/console", params={"level": "error"}).json()
        assert [i["message"] for i in body["items"]] == ["boom"]

    def test_network_status(self, client, populated_record):
        body = client.get("/api/records/rec-1/network", params={"statusMin": 500}).json()
        assert [i["status"] for i in body["items"]] == [500]

    def test_breadcrumb_name(self, client, populated_record):
        body = client.get("/api/records/rec-1/breadcrumbs", params={"name": "navigation"}).json()
        assert [i["message"] for i in body["items"]] == ["/checkout"]

    def test_network_detail(self, client, event_log, populated_record):
        network = client.get("/api/records/rec-1/network").json()["items"][0]

        detail = client.get(f"/api/records/rec-1/network/{network['eventId']}").json()
        assert detail["responseBody"] == '{"items": []}'

    def test_network_detail_rejects_other_kinds(self, client, populated_record):
        console = client.get("/api/records/rec-1/console").json()["items"][0]
        assert client.get(f"/api/records/rec-1/network/{console['eventId']}").status_code == 404

    def test_rrweb(self, client, event_log, record):
        for ts in (3, 1, 2):
            event_log.append("rec-1", EventKind.RRWEB, ts, 0, {"payload": {"ts": ts}})

        body = client.get("/api/records/rec-1/rrweb", params={"limit": 2}).json()
        assert [e["payload"]["ts"] for e in body["events"]] == [1, 2]
        assert body["nextAfter"] == "2_0"

        body = client.get("/api/records/rec-1/rrweb", params={"after": body["nextAfter"]}).json()
        assert [e["payload"]["ts"] for e in body["events"]] == [3]


class TestNetworkReplayApi:
    """Tests for network replay."""

    def test_replay_same_origin(self, client, event_log, record, replay_http):
        event = event_log.append("rec-1", EventKind.NETWORK, 1, 0, {"method": "GET", "url": "/api/ping", "status": 502})

        response = client.post(f"/api/records/rec-1/network/{event.event_id}/replay")
        assert response.status_code == 200

        body = response.json()
        assert body["replayUrl"] == "http://testserver/api/ping"
        assert body["originalStatus"] == 502
        assert body["replayStatus"] == 200
        assert body["responseBody"] == "pong"

    def test_non_idempotent_blocked(self, client, event_log, record, replay_http):
        event = event_log.append("rec-1", EventKind.NETWORK, 1, 0, {"method": "DELETE", "url": "/api/cart"})

        response = client.post(f"/api/records/rec-1/network/{event.event_id}/replay")
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"
        replay_http.request.assert_not_called()

        response = client.post(
            f"/api/records/rec-1/network/{event.event_id}/replay",
            params={"allowNonIdempotent": "true"},
        )
        assert response.status_code == 200

    def test_other_origin_blocked(self, client, populated_record):
        network = client.get("/api/records/rec-1/network").json()["items"][0]

        response = client.post(f"/api/records/rec-1/network/{network['eventId']}/replay")
        assert response.status_code == 400
        assert "different origin" in response.json()["message"]

    def test_unknown_event(self, client, record):
        assert client.post("/api/records/rec-1/network/n_missing/replay").status_code == 404


class TestHealth:
    def test_health(self, client, record):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["storage"]["total_records"] == 1
        assert body["cdp_sessions"] == []
        assert body["clocks"] == []

    def test_health_lists_clocks(self, client, clock_registry):
        clock_registry.update("rec-1", relative_ms=40, base_epoch_ms=1_000, mode="pause")

        (clock,) = client.get("/health").json()["clocks"]
        assert clock["recordId"] == "rec-1"
        assert clock["absEpochMs"] == 1_040
        assert clock["mode"] == "pause"
