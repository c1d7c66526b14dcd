# DevTools protocol replay
from .clock import (
    ClockMode,
    ClockState,
    PlaybackClockRegistry,
)
from .cdp_session import (
    ReplaySession,
    ReplaySnapshot,
    ReplayConfig,
    ReplayOptions,
    ReplayMode,
    SessionState,
    Capability,
    sanitize_query_value,
    CLOSE_POLICY_VIOLATION,
    CLOSE_INTERNAL_ERROR,
)

__all__ = [
    "ClockMode",
    "ClockState",
    "PlaybackClockRegistry",
    "ReplaySession",
    "ReplaySnapshot",
    "ReplayConfig",
    "ReplayOptions",
    "ReplayMode",
    "SessionState",
    "Capability",
    "sanitize_query_value",
    "CLOSE_POLICY_VIOLATION",
    "CLOSE_INTERNAL_ERROR",
]
