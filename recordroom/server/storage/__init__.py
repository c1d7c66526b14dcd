# Event and record storage
from .event_log import (
    EventLog,
    EventFilter,
    StorageConfig,
)

__all__ = [
    "EventLog",
    "EventFilter",
    "StorageConfig",
]
