"""RecordRoom Server Module"""

from recordroom.server.storage import EventLog, EventFilter, StorageConfig
from recordroom.server.timeline import (
    SessionNavigator,
    TimelineMerger,
    TimelinePage,
    TimelineQuery,
)
from recordroom.server.replay import (
    PlaybackClockRegistry,
    ReplayConfig,
    ReplaySession,
)
from recordroom.server.live import LiveHub, LiveHubConfig
from recordroom.server.ingest import IngestService, NotableConfig, NetworkReplayer
from recordroom.server.api import create_app

__all__ = [
    "EventLog", "EventFilter", "StorageConfig",
    "SessionNavigator", "TimelineMerger", "TimelineQuery", "TimelinePage",
    "PlaybackClockRegistry", "ReplayConfig", "ReplaySession",
    "LiveHub", "LiveHubConfig",
    "IngestService", "NotableConfig", "NetworkReplayer",
    "create_app",
]
