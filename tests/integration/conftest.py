"""
Shared fixtures for integration tests.
"""

import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from recordroom.server.api import create_app
from recordroom.server.ingest import NetworkReplayer
from recordroom.server.replay import PlaybackClockRegistry, ReplayConfig


@pytest.fixture
def clock_registry():
    return PlaybackClockRegistry()


@pytest.fixture
def replay_http():
    """Stand-in for the requests session used by network replay."""
    session = MagicMock()
    session.request.return_value = MagicMock(status_code=200, text="pong")
    return session


@pytest.fixture
def app(event_log, clock_registry, replay_http):
    return create_app(
        event_log,
        clock_registry=clock_registry,
        replay_config=ReplayConfig(poll_interval_ms=5),
        network_replayer=NetworkReplayer(session=replay_http),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
