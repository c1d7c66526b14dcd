"""
Playback clock shared between an rrweb player and gated CDP replays.

The player pushes ticks over the clock channel; each tick fully replaces
the record's clock. Readers always get a complete snapshot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional
import logging
import threading
import time

logger = logging.getLogger(__name__)


class ClockMode(Enum):
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"


@dataclass(frozen=True)
class ClockState:
    """Immutable clock snapshot for one record."""
    record_id: str
    relative_ms: int = 0          # rrweb player time, 0..
    base_epoch_ms: int = 0        # epoch ms of the player's first event
    absolute_epoch_ms: int = 0    # base_epoch_ms + relative_ms when known
    mode: str = ClockMode.PLAY.value
    speed: float = 1.0
    updated_at: float = field(default_factory=time.time)  # diagnostics only

    @property
    def is_paused(self) -> bool:
        return self.mode.lower() == ClockMode.PAUSE.value

    def cutoff_ms(self, baseline_ms: int) -> int:
        """Absolute epoch ms up to which events are due."""
        if self.absolute_epoch_ms > 0:
            return self.absolute_epoch_ms
        return baseline_ms + max(0, self.relative_ms)

    def to_dict(self) -> dict:
        return {
            "recordId": self.record_id,
            "tMs": self.relative_ms,
            "baseEpochMs": self.base_epoch_ms,
            "absEpochMs": self.absolute_epoch_ms,
            "mode": self.mode,
            "speed": self.speed,
            "updatedAt": self.updated_at,
        }


class PlaybackClockRegistry:
    """
    Per-record playback clocks.

    Last write wins; ticks carry no ordering so a stale tick arriving late
    simply replaces a newer one.
    """

    def __init__(self):
        self._clocks: Dict[str, ClockState] = {}
        self._lock = threading.Lock()

    def update(
        self,
        record_id: str,
        relative_ms: int,
        base_epoch_ms: int = 0,
        absolute_epoch_ms: int = 0,
        mode: Optional[str] = None,
        speed: float = 1.0,
    ) -> ClockState:
        """Replace the clock for a record and return the stored snapshot."""
        relative_ms = max(0, int(relative_ms))
        base_epoch_ms = max(0, int(base_epoch_ms))
        absolute_epoch_ms = max(0, int(absolute_epoch_ms))

        if absolute_epoch_ms <= 0 and base_epoch_ms > 0:
            absolute_epoch_ms = base_epoch_ms + relative_ms

        state = ClockState(
            record_id=record_id,
            relative_ms=relative_ms,
            base_epoch_ms=base_epoch_ms,
            absolute_epoch_ms=absolute_epoch_ms,
            mode=mode.strip() if mode and mode.strip() else ClockMode.PLAY.value,
            speed=speed if speed and speed > 0 else 1.0,
        )

        with self._lock:
            self._clocks[record_id] = state
        return state

    def read(self, record_id: str) -> Optional[ClockState]:
        with self._lock:
            return self._clocks.get(record_id)

    def snapshot(self) -> list:
        """All current clocks, for diagnostics."""
        with self._lock:
            states = list(self._clocks.values())
        return [state.to_dict() for state in states]

    def __len__(self) -> int:
        with self._lock:
            return len(self._clocks)

    def apply_sync_message(self, message: dict) -> Optional[ClockState]:
        """
        Apply one clock-channel message.

        Returns:
            The stored snapshot, or None if the message was ignored
        """
        if message.get("type") != "clock":
            return None

        record_id = message.get("recordId")
        if not isinstance(record_id, str) or not record_id.strip():
            logger.warning("Clock message without recordId dropped")
            return None

        relative_ms = _as_int(message.get("tMs"))
        base_epoch_ms = _as_int(message.get("baseEpochMs"))
        absolute_epoch_ms = _as_int(message.get("absEpochMs"))

        if absolute_epoch_ms <= 0 and base_epoch_ms > 0:
            absolute_epoch_ms = base_epoch_ms + max(0, relative_ms)

        mode = message.get("mode")
        return self.update(
            record_id=record_id.strip(),
            relative_ms=relative_ms,
            base_epoch_ms=base_epoch_ms,
            absolute_epoch_ms=absolute_epoch_ms,
            mode=mode if isinstance(mode, str) else None,
            speed=_as_float(message.get("speed"), 1.0),
        )


def _as_int(value, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_float(value, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
