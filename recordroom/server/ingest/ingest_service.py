"""
Telemetry ingestion.

Normalizes SDK messages into events, appends them to the event log and
pushes notable ones (errors, warnings, failing or slow requests, new
records) to the live hub.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging
import time
import uuid

from pydantic import ValidationError

from recordroom.shared import Event, EventKind, NotableEventType, Record, RecordNotFoundError
from recordroom.server.storage import EventLog
from recordroom.server.live import LiveHub

from .models import (
    BreadcrumbIngest,
    ConsoleIngest,
    CreateRecordRequest,
    NetworkIngest,
    RrwebBatchIngest,
)

logger = logging.getLogger(__name__)


@dataclass
class NotableConfig:
    slow_threshold_ms: int = 2000
    http_error_status: int = 400


class IngestService:
    """Writes SDK telemetry to the event log."""

    def __init__(
        self,
        event_log: EventLog,
        live_hub: Optional[LiveHub] = None,
        config: Optional[NotableConfig] = None,
    ):
        self.event_log = event_log
        self.live_hub = live_hub
        self.config = config or NotableConfig()

    # ==================== Records ====================

    def create_record(
        self,
        request: CreateRecordRequest,
        record_id: Optional[str] = None,
        now_ms: Optional[int] = None,
    ) -> Record:
        """Create a record; a new session is started unless one is given."""
        session_id = request.session_id
        if not session_id or not session_id.strip():
            session_id = str(uuid.uuid4())

        record = self.event_log.create_record(
            record_id=record_id or str(uuid.uuid4()),
            session_id=session_id,
            previous_record_id=(request.previous_record_id or "").strip() or None,
            page_url=request.page_url or "",
            user_agent=request.user_agent or "",
            app_version=request.app_version or "",
            created_at_epoch_ms=now_ms if now_ms is not None else int(time.time() * 1000),
        )

        logger.info(f"Record created: {record.record_id} (session {record.session_id})")
        self._notify({
            "type": NotableEventType.RECORD_CREATED.value,
            "recordId": record.record_id,
            "sessionId": record.session_id,
            "pageUrl": record.page_url,
            "timestampMs": record.created_at_epoch_ms,
        })
        return record

    def _require_record(self, record_id: str):
        if not self.event_log.record_exists(record_id):
            raise RecordNotFoundError(record_id)

    # ==================== Events ====================

    def save_console(self, record_id: str, request: ConsoleIngest) -> Event:
        self._require_record(record_id)
        level = request.level if request.level and request.level.strip() else "log"

        event = self.event_log.append(record_id, EventKind.CONSOLE, request.ts, request.seq, {
            "level": level,
            "message": request.message or "",
            "stack": request.stack,
        })

        for notable in self.classify(event):
            self._notify(notable)
        return event

    def save_network(self, record_id: str, request: NetworkIngest) -> Event:
        self._require_record(record_id)
        method = request.method if request.method and request.method.strip() else "GET"

        event = self.event_log.append(
            record_id,
            EventKind.NETWORK,
            request.started_at_epoch_ms,
            request.seq,
            {
                "clientRequestId": request.client_request_id,
                "method": method,
                "url": request.url or "",
                "status": request.status,
                "requestHeaders": request.request_headers or {},
                "requestBody": request.request_body,
                "responseHeaders": request.response_headers or {},
                "responseBody": request.response_body,
                "startedAtEpochMs": request.started_at_epoch_ms,
                "durationMs": request.duration_ms,
                "error": request.error,
            },
        )

        for notable in self.classify(event):
            self._notify(notable)
        return event

    def save_breadcrumb(self, record_id: str, request: BreadcrumbIngest) -> Event:
        self._require_record(record_id)
        return self.event_log.append(record_id, EventKind.BREADCRUMB, request.ts, request.seq, {
            "name": request.name or "",
            "message": request.message or "",
            "data": request.data or {},
        })

    def save_rrweb_batch(self, record_id: str, request: RrwebBatchIngest) -> int:
        """Store a batch of rrweb events; empty envelopes are skipped."""
        self._require_record(record_id)

        events = [
            self.event_log.new_event(
                record_id,
                EventKind.RRWEB,
                envelope.ts,
                envelope.seq,
                {"payload": envelope.payload if envelope.payload is not None else {}},
            )
            for envelope in request.events
            if envelope is not None
        ]
        return self.event_log.append_batch(events)

    def handle_message(self, record_id: str, message: dict) -> bool:
        """
        Store one ingest-channel message.

        Returns:
            True if stored, False if the message was unknown or invalid
        """
        kind = message.get("type") if isinstance(message, dict) else None
        try:
            if kind == "console":
                self.save_console(record_id, ConsoleIngest.model_validate(message))
            elif kind == "network":
                self.save_network(record_id, NetworkIngest.model_validate(message))
            elif kind == "breadcrumb":
                self.save_breadcrumb(record_id, BreadcrumbIngest.model_validate(message))
            elif kind == "rrweb":
                self.save_rrweb_batch(record_id, RrwebBatchIngest.model_validate(message))
            else:
                logger.warning(f"Unknown ingest message type dropped: {kind!r}")
                return False
        except ValidationError as e:
            logger.warning(f"Invalid {kind} message dropped for record {record_id}: {e.error_count()} errors")
            return False
        return True

    # ==================== Notable events ====================

    def classify(self, event: Event) -> List[dict]:
        """Live notifications warranted by an event, if any."""
        payload = event.payload
        base = {
            "recordId": event.record_id,
            "eventId": event.event_id,
            "timestampMs": event.timestamp_ms,
        }
        notable = []

        if event.kind == EventKind.CONSOLE:
            level = (payload.get("level") or "").lower()
            if level == "error":
                notable.append({**base, "type": NotableEventType.CONSOLE_ERROR.value,
                                "message": payload.get("message", "")})
            elif level == "warn":
                notable.append({**base, "type": NotableEventType.CONSOLE_WARN.value,
                                "message": payload.get("message", "")})

        elif event.kind == EventKind.NETWORK:
            status = payload.get("status") or 0
            duration_ms = payload.get("durationMs") or 0
            request = {"method": payload.get("method"), "url": payload.get("url")}

            if status >= self.config.http_error_status:
                notable.append({**base, **request, "type": NotableEventType.NETWORK_HTTP_ERROR.value,
                                "status": status})
            if duration_ms > self.config.slow_threshold_ms:
                notable.append({**base, **request, "type": NotableEventType.NETWORK_SLOW.value,
                                "durationMs": duration_ms})

        return notable

    def _notify(self, payload: dict):
        if self.live_hub is not None:
            self.live_hub.emit(payload)
