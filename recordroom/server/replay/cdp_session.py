"""
Chrome DevTools Protocol replay sessions.

DevTools frontend connects with
    devtools://devtools/bundled/devtools_app.html?ws=<host>/ws/cdp?recordId=...

and each connection gets one ReplaySession. The session answers CDP calls
and, once the Network or Log domain is enabled, streams the record's
captured activity back as CDP pushes in one of three pacing modes:

- immediate: everything at once
- timed: original inter-event gaps divided by the speed factor
- gated: whatever the shared playback clock says is due
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Set, Tuple
import asyncio
import logging
import time

from recordroom.shared import (
    CdpMessage,
    Event,
    EventKind,
    EventNotFoundError,
    cdp_push,
    cdp_reply,
)
from recordroom.server.timeline import TimelineMerger

from .cdp_messages import (
    MAX_BODY_CHARS,
    UNDEFINED_RESULT,
    console_entry,
    execution_context_created,
    network_bundle,
    truncate_body,
)
from .clock import ClockState, PlaybackClockRegistry

logger = logging.getLogger(__name__)


CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011

# Enables and settings DevTools sends that need nothing but an ack
NOOP_METHODS = frozenset({
    "Page.enable",
    "Inspector.enable",
    "DOM.enable",
    "CSS.enable",
    "Overlay.enable",
    "Debugger.enable",
    "Profiler.enable",
    "Emulation.setTouchEmulationEnabled",
    "Emulation.setEmulatedMedia",
    "Emulation.setDeviceMetricsOverride",
    "Emulation.setUserAgentOverride",
    "Target.setAutoAttach",
    "Target.setDiscoverTargets",
    "Target.setRemoteLocations",
    "Security.enable",
    "Network.setCacheDisabled",
    "Network.clearBrowserCache",
    "Network.clearBrowserCookies",
    "Log.startViolationsReport",
})


class ReplayMode(Enum):
    IMMEDIATE = "immediate"
    TIMED = "timed"
    GATED = "gated"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ReplayMode":
        if value:
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.IMMEDIATE


class SessionState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class Capability(Enum):
    NETWORK = "network"
    LOG = "log"
    RUNTIME = "runtime"


@dataclass
class ReplayConfig:
    poll_interval_ms: int = 50
    max_sleep_ms: int = 30_000
    seek_tolerance_ms: int = 10
    load_batch_size: int = 500
    max_body_chars: int = MAX_BODY_CHARS


def sanitize_query_value(value: Optional[str]) -> Optional[str]:
    """
    Clean a query value copied out of a DevTools URL.

    Drops an accidentally pasted second devtools URL and anything after
    the first whitespace.
    """
    if value is None:
        return None

    for marker in ("chrome-devtools://", "devtools://"):
        cut = value.find(marker)
        if cut >= 0:
            value = value[:cut]

    parts = value.strip().split(None, 1)
    return parts[0] if parts else ""


@dataclass
class ReplayOptions:
    """Connection parameters chosen by the client."""
    record_id: Optional[str]
    mode: ReplayMode = ReplayMode.IMMEDIATE
    speed: float = 1.0

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "ReplayOptions":
        speed = 1.0
        raw_speed = sanitize_query_value(params.get("speed"))
        if raw_speed:
            try:
                speed = float(raw_speed)
            except ValueError:
                speed = 1.0
        if not speed > 0:
            speed = 1.0

        return cls(
            record_id=sanitize_query_value(params.get("recordId")) or None,
            mode=ReplayMode.parse(sanitize_query_value(params.get("mode"))),
            speed=speed,
        )


@dataclass(frozen=True)
class ReplaySnapshot:
    """A record's replayable streams, loaded once per session."""
    networks: Tuple[Event, ...]
    consoles: Tuple[Event, ...]
    baseline_ms: int
    network_by_id: Mapping[str, Event] = field(default_factory=dict)

    @classmethod
    def build(cls, networks: List[Event], consoles: List[Event]) -> "ReplaySnapshot":
        timestamps = [e.timestamp_ms for e in networks] + [e.timestamp_ms for e in consoles]
        baseline_ms = min(timestamps) if timestamps else int(time.time() * 1000)

        return cls(
            networks=tuple(networks),
            consoles=tuple(consoles),
            baseline_ms=baseline_ms,
            network_by_id=MappingProxyType({e.event_id: e for e in networks}),
        )

    def events_for(self, capability: Capability) -> Tuple[Event, ...]:
        if capability == Capability.NETWORK:
            return self.networks
        if capability == Capability.LOG:
            return self.consoles
        return ()

    def get_network(self, event_id: Optional[str]) -> Event:
        event = self.network_by_id.get(event_id) if event_id else None
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event


class Transport(Protocol):
    async def send_text(self, data: str) -> None:
        ...

    async def close(self, code: int = CLOSE_NORMAL, reason: Optional[str] = None) -> None:
        ...


class ReplaySession:
    """
    One CDP replay connection.

    Owns its snapshot and emission tasks; only reads the event log and the
    playback clock registry.
    """

    def __init__(
        self,
        transport: Transport,
        options: ReplayOptions,
        merger: TimelineMerger,
        clocks: PlaybackClockRegistry,
        record_exists: Callable[[Optional[str]], bool],
        config: Optional[ReplayConfig] = None,
    ):
        self.transport = transport
        self.options = options
        self.merger = merger
        self.clocks = clocks
        self.record_exists = record_exists
        self.config = config or ReplayConfig()

        self.state = SessionState.CONNECTING
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

        self.enabled: Set[Capability] = set()
        self.snapshot: Optional[ReplaySnapshot] = None
        self.baseline_ms: int = 0
        self.last_clock: Optional[ClockState] = None

        # Index of the next event to emit, per capability
        self.emitted: Dict[Capability, int] = {}

        self._streaming: Set[Capability] = set()
        self._tasks: List[asyncio.Task] = []
        self._load_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

        self._handlers: Dict[str, Callable[[CdpMessage], Awaitable[None]]] = {
            "Runtime.enable": self._on_runtime_enable,
            "Network.enable": self._on_network_enable,
            "Log.enable": self._on_log_enable,
            "Network.getResponseBody": self._on_get_response_body,
            "Network.getRequestPostData": self._on_get_request_post_data,
            "Runtime.evaluate": self._on_evaluate,
        }

    @property
    def record_id(self) -> Optional[str]:
        return self.options.record_id

    @property
    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks)

    # ==================== Lifecycle ====================

    async def open(self) -> bool:
        """
        Validate the connection parameters.

        Returns:
            True if the session is ACTIVE; otherwise it has been closed
        """
        if not self.record_id:
            logger.warning("CDP replay rejected: missing recordId")
            await self.close(CLOSE_POLICY_VIOLATION, "missing recordId")
            return False

        if not self.record_exists(self.record_id):
            logger.warning(f"CDP replay rejected: record not found. recordId={self.record_id}")
            await self.close(CLOSE_POLICY_VIOLATION, "record not found")
            return False

        self.state = SessionState.ACTIVE
        logger.info(
            f"CDP replay connected. recordId={self.record_id}, "
            f"mode={self.options.mode.value}, speed={self.options.speed}"
        )
        return True

    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        """Close the transport and stop every emission task."""
        if self.state == SessionState.CLOSED:
            return

        self.state = SessionState.CLOSED
        self.close_code = code
        self.close_reason = reason
        self._cancel_tasks()

        try:
            await self.transport.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"CDP transport close failed: {e}")

        logger.info(f"CDP replay closed. recordId={self.record_id}, code={code}, reason={reason}")

    def detach(self):
        """Stop emitting after the remote side went away."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.close_code = CLOSE_NORMAL
        self._cancel_tasks()
        logger.info(f"CDP replay disconnected. recordId={self.record_id}")

    def _cancel_tasks(self):
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

    async def join(self):
        """Wait for all emission tasks to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ==================== Inbound ====================

    async def handle_message(self, data: str):
        """Answer one inbound CDP call."""
        if self.state != SessionState.ACTIVE:
            return

        message = CdpMessage.from_json(data)
        if message is None:
            logger.warning(f"CDP bad message dropped: {data[:200]!r}")
            return

        handler = self._handlers.get(message.method)
        if handler is not None:
            await handler(message)
        else:
            # Ack everything else so DevTools never stalls
            if message.method not in NOOP_METHODS:
                logger.debug(f"CDP method not emulated: {message.method}")
            await self._reply(message.id, {})

    async def _on_runtime_enable(self, message: CdpMessage):
        self.enabled.add(Capability.RUNTIME)
        await self._reply(message.id, {})
        await self._send(execution_context_created())

    async def _on_network_enable(self, message: CdpMessage):
        await self._enable_streaming(message, Capability.NETWORK)

    async def _on_log_enable(self, message: CdpMessage):
        await self._enable_streaming(message, Capability.LOG)

    async def _on_get_response_body(self, message: CdpMessage):
        try:
            event = await self.lookup_network(message.params.get("requestId"))
            body = truncate_body(event.payload.get("responseBody"), self.config.max_body_chars)
        except EventNotFoundError:
            body = ""
        await self._reply(message.id, {"body": body, "base64Encoded": False})

    async def _on_get_request_post_data(self, message: CdpMessage):
        try:
            event = await self.lookup_network(message.params.get("requestId"))
            post_data = truncate_body(event.payload.get("requestBody"), self.config.max_body_chars)
        except EventNotFoundError:
            post_data = ""
        await self._reply(message.id, {"postData": post_data})

    async def _on_evaluate(self, message: CdpMessage):
        # Nothing is executed during replay
        await self._reply(message.id, dict(UNDEFINED_RESULT))

    async def lookup_network(self, event_id: Optional[str]) -> Event:
        """Get a captured request from the snapshot, loading it if needed."""
        snapshot = await self.ensure_loaded()
        return snapshot.get_network(event_id)

    # ==================== Snapshot ====================

    async def ensure_loaded(self) -> ReplaySnapshot:
        """Load the record's replay streams once for the life of the session."""
        async with self._load_lock:
            if self.snapshot is None:
                self.snapshot = await asyncio.to_thread(self._load_snapshot)
                self.baseline_ms = self.snapshot.baseline_ms
        return self.snapshot

    def _load_snapshot(self) -> ReplaySnapshot:
        batch_size = self.config.load_batch_size
        networks = self.merger.load_stream(self.record_id, EventKind.NETWORK, batch_size)
        consoles = self.merger.load_stream(self.record_id, EventKind.CONSOLE, batch_size)

        logger.info(
            f"CDP replay snapshot loaded. recordId={self.record_id}, "
            f"network={len(networks)}, console={len(consoles)}"
        )
        return ReplaySnapshot.build(networks, consoles)

    # ==================== Emission ====================

    async def _enable_streaming(self, message: CdpMessage, capability: Capability):
        self.enabled.add(capability)
        await self._reply(message.id, {})

        if capability in self._streaming or self.state != SessionState.ACTIVE:
            return
        self._streaming.add(capability)

        snapshot = await self.ensure_loaded()
        events = snapshot.events_for(capability)
        self.emitted[capability] = 0

        mode = self.options.mode
        if mode == ReplayMode.IMMEDIATE:
            await self._emit_immediate(capability, events)
        elif mode == ReplayMode.TIMED:
            self._start_task(capability, self._emit_timed(capability, events))
        else:
            self._start_task(capability, self._emit_gated(capability, events))

    def _start_task(self, capability: Capability, coro):
        task = asyncio.create_task(coro, name=f"cdp-{capability.value}-{self.record_id}")
        self._tasks.append(task)

    def _render(self, capability: Capability, event: Event) -> List[dict]:
        if capability == Capability.NETWORK:
            return network_bundle(event, self.record_id, self.baseline_ms)
        return [console_entry(event, self.baseline_ms)]

    async def _emit_event(self, capability: Capability, event: Event) -> bool:
        for message in self._render(capability, event):
            if not await self._send(message):
                return False
        self.emitted[capability] = self.emitted.get(capability, 0) + 1
        return True

    async def _emit_immediate(self, capability: Capability, events: Tuple[Event, ...]):
        for event in events:
            if not await self._emit_event(capability, event):
                return

    async def _emit_timed(self, capability: Capability, events: Tuple[Event, ...]):
        """Replay with the recorded gaps scaled by speed."""
        speed = self.options.speed
        previous_ms = self.baseline_ms

        try:
            for event in events:
                gap_ms = event.timestamp_ms - previous_ms
                if gap_ms > 0:
                    sleep_ms = min(gap_ms / speed, self.config.max_sleep_ms)
                    await asyncio.sleep(sleep_ms / 1000.0)
                previous_ms = event.timestamp_ms

                if not await self._emit_event(capability, event):
                    return
        except asyncio.CancelledError:
            pass

    async def _emit_gated(self, capability: Capability, events: Tuple[Event, ...]):
        """Emit whatever the playback clock has reached, never re-emitting."""
        poll_s = self.config.poll_interval_ms / 1000.0
        tolerance = self.config.seek_tolerance_ms
        last_relative: Optional[int] = None
        index = 0

        try:
            while self.state == SessionState.ACTIVE:
                clock = self.clocks.read(self.record_id)
                if clock is None:
                    await asyncio.sleep(poll_s)
                    continue

                # Emitted CDP state cannot be taken back, so a rewind ends the session
                if last_relative is not None and clock.relative_ms + tolerance < last_relative:
                    logger.warning(
                        f"CDP gated: seek-backward detected, closing session. "
                        f"recordId={self.record_id}, from={last_relative}, to={clock.relative_ms}"
                    )
                    await self.close(CLOSE_INTERNAL_ERROR, "seek-backward")
                    return
                last_relative = clock.relative_ms
                self.last_clock = clock

                if clock.is_paused:
                    await asyncio.sleep(poll_s)
                    continue

                self._adopt_clock_base(clock)
                cutoff_ms = clock.cutoff_ms(self.baseline_ms)

                while index < len(events) and events[index].timestamp_ms <= cutoff_ms:
                    if not await self._emit_event(capability, events[index]):
                        return
                    index += 1

                await asyncio.sleep(poll_s)
        except asyncio.CancelledError:
            pass

    def _adopt_clock_base(self, clock: ClockState):
        # Align CDP timestamps with the rrweb player's origin when it starts earlier
        if clock.base_epoch_ms > 0 and (self.baseline_ms <= 0 or clock.base_epoch_ms < self.baseline_ms):
            self.baseline_ms = clock.base_epoch_ms

    # ==================== Outbound ====================

    async def _reply(self, message_id: Optional[int], result: dict):
        if self.state != SessionState.ACTIVE:
            return
        await self._send_text(cdp_reply(message_id, result))

    async def _send(self, message: dict) -> bool:
        if self.state != SessionState.ACTIVE:
            return False
        return await self._send_text(cdp_push(message["method"], message["params"]))

    async def _send_text(self, text: str) -> bool:
        async with self._send_lock:
            try:
                await self.transport.send_text(text)
                return True
            except Exception as e:
                logger.warning(f"CDP send failed, detaching. recordId={self.record_id}: {e}")
                self.detach()
                return False

    def get_status(self) -> dict:
        return {
            "recordId": self.record_id,
            "state": self.state.value,
            "mode": self.options.mode.value,
            "speed": self.options.speed,
            "enabled": sorted(c.value for c in self.enabled),
            "emitted": {c.value: n for c, n in self.emitted.items()},
            "baselineMs": self.baseline_ms,
        }
