# Live admin notifications
from .live_hub import (
    LiveHub,
    LiveHubConfig,
    LiveBufferEntry,
    LiveObserver,
    WebSocketObserver,
)

__all__ = [
    "LiveHub",
    "LiveHubConfig",
    "LiveBufferEntry",
    "LiveObserver",
    "WebSocketObserver",
]
