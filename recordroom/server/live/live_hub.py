"""
Live fan-out of notable events to admin observers.

Ingestion pushes notable events here; every connected observer receives
them, and observers that join late first get whatever happened in the
last few minutes, framed by history_start / history_end markers.
"""

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Protocol
import asyncio
import logging
import threading
import time

from recordroom.shared import NotableEventType

logger = logging.getLogger(__name__)


class LiveObserver(Protocol):
    def deliver(self, payload: dict) -> None:
        """Hand one payload to the observer without blocking."""
        ...


@dataclass
class LiveHubConfig:
    window_seconds: int = 300


@dataclass
class LiveBufferEntry:
    type: str
    timestamp_ms: int
    payload: dict


class LiveHub:
    """
    Process-wide broadcaster with a time-windowed replay buffer.

    emit() never raises and never blocks; a failing observer is logged and
    skipped so it cannot affect the others.
    """

    def __init__(self, config: Optional[LiveHubConfig] = None, clock: Callable[[], float] = time.time):
        self.config = config or LiveHubConfig()
        self._clock = clock
        self._observers: List[LiveObserver] = []
        self._buffer: Deque[LiveBufferEntry] = deque()
        self._lock = threading.Lock()

        self.emitted_count = 0
        self.delivery_failures = 0

    @property
    def window_ms(self) -> int:
        return self.config.window_seconds * 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def emit(self, payload: dict, timestamp_ms: Optional[int] = None):
        """Buffer a notable event and deliver it to every observer."""
        now_ms = self._now_ms()
        entry = LiveBufferEntry(
            type=str(payload.get("type") or "unknown"),
            timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms,
            payload=payload,
        )

        with self._lock:
            self._buffer.append(entry)
            self._evict_expired(now_ms)
            observers = list(self._observers)
            self.emitted_count += 1

        for observer in observers:
            self._deliver(observer, payload)

    def _evict_expired(self, now_ms: int):
        # Entries may arrive out of order, so the whole buffer is checked
        window_ms = self.window_ms
        kept = [e for e in self._buffer if now_ms - e.timestamp_ms < window_ms]
        if len(kept) != len(self._buffer):
            self._buffer = deque(kept)

    def _deliver(self, observer: LiveObserver, payload: dict) -> bool:
        try:
            observer.deliver(payload)
            return True
        except Exception as e:
            self.delivery_failures += 1
            logger.warning(f"Live delivery failed, skipping observer {observer!r}: {e}")
            return False

    def subscribe(self, observer: LiveObserver):
        """Register an observer and replay the unexpired buffer to it."""
        with self._lock:
            self._observers.append(observer)

            now_ms = self._now_ms()
            history = [e for e in self._buffer if now_ms - e.timestamp_ms < self.window_ms]
            if not history:
                return

            if not self._deliver(observer, {
                "type": NotableEventType.HISTORY_START.value,
                "timestampMs": now_ms,
                "count": len(history),
            }):
                return

            for entry in history:
                replayed = dict(entry.payload)
                replayed["_buffered"] = True
                replayed["_bufferedAgeMs"] = now_ms - entry.timestamp_ms
                if not self._deliver(observer, replayed):
                    return

            self._deliver(observer, {
                "type": NotableEventType.HISTORY_END.value,
                "timestampMs": now_ms,
            })

        logger.info(f"Live observer subscribed, replayed {len(history)} buffered events")

    def unsubscribe(self, observer: LiveObserver):
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def buffered(self) -> List[LiveBufferEntry]:
        with self._lock:
            return list(self._buffer)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "observers": len(self._observers),
                "buffered": len(self._buffer),
                "emitted": self.emitted_count,
                "delivery_failures": self.delivery_failures,
            }


class WebSocketObserver:
    """
    Observer that forwards payloads to one websocket.

    deliver() only enqueues, so it is safe from any thread; run() drains
    the queue on the event loop until the socket fails or stop() is called.
    """

    def __init__(self, websocket, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.websocket = websocket
        self.loop = loop or asyncio.get_running_loop()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def deliver(self, payload: dict):
        if self.closed:
            raise ConnectionError("observer closed")
        self.loop.call_soon_threadsafe(self.queue.put_nowait, payload)

    async def run(self):
        try:
            while not self.closed:
                payload = await self.queue.get()
                if payload is None:
                    break
                await self.websocket.send_json(payload)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Live websocket send failed: {e}")
        finally:
            self.closed = True

    def stop(self):
        if not self.closed:
            self.closed = True
            self.loop.call_soon_threadsafe(self.queue.put_nowait, None)
