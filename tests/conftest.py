"""
Shared test fixtures for RecordRoom tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from recordroom.shared import EventKind
from recordroom.server.storage import EventLog, StorageConfig


@pytest.fixture
def event_log(tmp_path):
    """Event log backed by a temporary SQLite file."""
    log = EventLog(StorageConfig(db_path=str(tmp_path / "recordroom.db")))
    yield log
    log.close()


@pytest.fixture
def record(event_log):
    """An empty record."""
    return event_log.create_record(
        record_id="rec-1",
        session_id="sess-1",
        page_url="https://shop.example.com/cart",
        user_agent="Mozilla/5.0",
        app_version="1.4.2",
        created_at_epoch_ms=1_000,
    )


@pytest.fixture
def populated_record(event_log, record):
    """A record with a handful of events in every timeline stream."""
    log = event_log
    rid = record.record_id

    log.append(rid, EventKind.CONSOLE, 1_000, 1, {"level": "log", "message": "boot"})
    log.append(rid, EventKind.CONSOLE, 1_300, 1, {"level": "error", "message": "boom", "stack": "at a\nat b"})
    log.append(rid, EventKind.NETWORK, 1_100, 1, {
        "method": "GET",
        "url": "https://shop.example.com/api/cart",
        "status": 200,
        "requestHeaders": {"Accept": "application/json"},
        "responseHeaders": {"Content-Type": "application/json; charset=utf-8"},
        "responseBody": '{"items": []}',
        "durationMs": 40,
    })
    log.append(rid, EventKind.NETWORK, 1_400, 1, {
        "method": "POST",
        "url": "https://shop.example.com/api/checkout",
        "status": 500,
        "requestBody": '{"total": 12}',
        "responseBody": "server error",
        "durationMs": 2_500,
    })
    log.append(rid, EventKind.BREADCRUMB, 1_200, 1, {"name": "click", "message": "button#checkout"})
    log.append(rid, EventKind.BREADCRUMB, 1_250, 1, {"name": "navigation", "message": "/checkout"})
    return record


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket connection."""
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws
