"""
FastAPI server for RecordRoom.
Serves record reads, network replay, and the ingest, CDP replay, clock and
admin WebSocket channels.
"""

import asyncio
import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from recordroom.shared import (
    INT64_MAX,
    INT64_MIN,
    Cursor,
    EventKind,
    RecordNotFoundError,
    ReplayBlockedError,
    SessionNotFoundError,
    ReplayFailedError,
)
from recordroom.server.ingest import (
    CreateRecordRequest,
    CreateRecordResponse,
    IngestService,
    NetworkReplayer,
)
from recordroom.server.live import LiveHub, WebSocketObserver
from recordroom.server.replay import (
    CLOSE_POLICY_VIOLATION,
    PlaybackClockRegistry,
    ReplayConfig,
    ReplayOptions,
    ReplaySession,
)
from recordroom.server.storage import EventLog
from recordroom.server.timeline import SessionNavigator, TimelineMerger, TimelineQuery

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 200
MAX_PAGE_LIMIT = 500
DEFAULT_RRWEB_LIMIT = 2000
MAX_RRWEB_LIMIT = 5000


# Global references (set during app creation)
_event_log: Optional[EventLog] = None
_merger: Optional[TimelineMerger] = None
_sessions: Optional[SessionNavigator] = None
_clock_registry: Optional[PlaybackClockRegistry] = None
_live_hub: Optional[LiveHub] = None
_ingest_service: Optional[IngestService] = None
_network_replayer: Optional[NetworkReplayer] = None
_replay_config: Optional[ReplayConfig] = None
_public_base_url: Optional[str] = None
_cdp_sessions: list[ReplaySession] = []


def create_app(
    event_log: EventLog,
    clock_registry: Optional[PlaybackClockRegistry] = None,
    live_hub: Optional[LiveHub] = None,
    ingest_service: Optional[IngestService] = None,
    replay_config: Optional[ReplayConfig] = None,
    network_replayer: Optional[NetworkReplayer] = None,
    public_base_url: Optional[str] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    global _event_log, _merger, _sessions, _clock_registry, _live_hub, _ingest_service
    global _network_replayer, _replay_config, _public_base_url, _cdp_sessions

    _event_log = event_log
    _merger = TimelineMerger(event_log)
    _sessions = SessionNavigator(event_log)
    _clock_registry = clock_registry or PlaybackClockRegistry()
    _live_hub = live_hub or LiveHub()
    _ingest_service = ingest_service or IngestService(event_log, _live_hub)
    _network_replayer = network_replayer or NetworkReplayer()
    _replay_config = replay_config or ReplayConfig()
    _public_base_url = public_base_url.rstrip("/") if public_base_url else None
    _cdp_sessions = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("API server starting up")

        yield

        # Shutdown
        logger.info("API server shutting down")
        for session in list(_cdp_sessions):
            session.detach()

    app = FastAPI(
        title="RecordRoom API",
        description="Capture and replay of browser sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    register_exception_handlers(app)
    register_routes(app)
    register_websocket_routes(app)

    return app


def clamp_limit(limit: int, maximum: int = MAX_PAGE_LIMIT) -> int:
    return max(1, min(limit, maximum))


def base_url_for(request: Request) -> str:
    if _public_base_url:
        return _public_base_url
    return str(request.base_url).rstrip("/")


def require_record(record_id: str):
    if not _event_log.record_exists(record_id):
        raise HTTPException(status_code=404, detail=f"record not found: {record_id}")


def register_exception_handlers(app: FastAPI):
    """Map domain errors onto HTTP responses."""

    @app.exception_handler(RecordNotFoundError)
    async def record_not_found(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ReplayBlockedError)
    async def replay_blocked(request: Request, exc: ReplayBlockedError):
        return JSONResponse(status_code=400, content={"error": "bad_request", "message": str(exc)})

    @app.exception_handler(ReplayFailedError)
    async def replay_failed(request: Request, exc: ReplayFailedError):
        return JSONResponse(status_code=502, content={"error": "bad_gateway", "message": str(exc)})


def register_routes(app: FastAPI):
    """Register all API routes."""

    # ==================== Records ====================

    @app.post("/api/records")
    async def create_record(body: CreateRecordRequest, request: Request):
        """Start a recording and tell the SDK where to stream it."""
        record = _ingest_service.create_record(body)

        base_url = base_url_for(request)
        response = CreateRecordResponse(
            record_id=record.record_id,
            share_url=f"{base_url}/r/{record.record_id}/timeline",
            ingest_ws_url=f"{re.sub('^http', 'ws', base_url)}/ws/ingest?recordId={record.record_id}",
        )
        return response.model_dump(by_alias=True)

    @app.get("/api/records/{record_id}")
    async def get_record(record_id: str):
        record = _event_log.get_record(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"record not found: {record_id}")
        return record.to_dict()

    # ==================== Sessions ====================

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        """Records of a session in order, linked to neighbouring sessions."""
        return _sessions.view(session_id).to_dict()

    # ==================== Timeline ====================

    @app.get("/api/records/{record_id}/timeline")
    async def get_timeline(
        record_id: str,
        after: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        types: Optional[str] = None,
        console_level: str = Query("all", alias="consoleLevel"),
        status_min: Optional[int] = Query(None, alias="statusMin", ge=INT64_MIN, le=INT64_MAX),
        ts_from: Optional[int] = Query(None, alias="tsFrom", ge=INT64_MIN, le=INT64_MAX),
        ts_to: Optional[int] = Query(None, alias="tsTo", ge=INT64_MIN, le=INT64_MAX),
    ):
        """
        Merged console, network and breadcrumb events after a cursor.

        `types` is a comma separated subset of console,network,breadcrumb.
        """
        require_record(record_id)

        query = TimelineQuery(
            kinds=TimelineQuery.parse_kinds(types.split(",") if types else None),
            console_level=console_level,
            status_min=status_min,
            ts_from=ts_from,
            ts_to=ts_to,
        )
        page = _merger.page(record_id, Cursor.parse(after), clamp_limit(limit), query)
        return page.to_dict()

    @app.get("/api/records/{record_id}/console")
    async def list_console(
        record_id: str,
        after: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        level: str = "all",
    ):
        require_record(record_id)
        query = TimelineQuery(kinds=[EventKind.CONSOLE], console_level=level)
        return _merger.page(record_id, Cursor.parse(after), clamp_limit(limit), query).to_dict()

    @app.get("/api/records/{record_id}/network")
    async def list_network(
        record_id: str,
        after: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        status_min: Optional[int] = Query(None, alias="statusMin", ge=INT64_MIN, le=INT64_MAX),
    ):
        require_record(record_id)
        query = TimelineQuery(kinds=[EventKind.NETWORK], status_min=status_min)
        return _merger.page(record_id, Cursor.parse(after), clamp_limit(limit), query).to_dict()

    @app.get("/api/records/{record_id}/network/{event_id}")
    async def get_network_event(record_id: str, event_id: str):
        require_record(record_id)
        event = _event_log.get_event(record_id, event_id)
        if event is None or event.kind != EventKind.NETWORK:
            raise HTTPException(status_code=404, detail=f"network event not found: {event_id}")
        return event.to_dict()

    @app.post("/api/records/{record_id}/network/{event_id}/replay")
    def replay_network_event(
        record_id: str,
        event_id: str,
        request: Request,
        allow_non_idempotent: bool = Query(False, alias="allowNonIdempotent"),
    ):
        """
        Re-issue a captured request against this server's origin.

        Runs in the threadpool so a request back to this server can be served.
        """
        require_record(record_id)
        event = _event_log.get_event(record_id, event_id)
        if event is None or event.kind != EventKind.NETWORK:
            raise HTTPException(status_code=404, detail=f"network event not found: {event_id}")

        result = _network_replayer.replay(event, base_url_for(request), allow_non_idempotent)
        return result.model_dump(by_alias=True)

    @app.get("/api/records/{record_id}/breadcrumbs")
    async def list_breadcrumbs(
        record_id: str,
        after: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        name: str = "all",
    ):
        require_record(record_id)
        query = TimelineQuery(kinds=[EventKind.BREADCRUMB], breadcrumb_name=name)
        return _merger.page(record_id, Cursor.parse(after), clamp_limit(limit), query).to_dict()

    @app.get("/api/records/{record_id}/rrweb")
    async def list_rrweb(
        record_id: str,
        after: Optional[str] = None,
        limit: int = DEFAULT_RRWEB_LIMIT,
    ):
        """rrweb snapshots in player order."""
        require_record(record_id)
        cursor = Cursor.parse(after)
        events = _event_log.list_after(
            record_id, EventKind.RRWEB, cursor, clamp_limit(limit, MAX_RRWEB_LIMIT)
        )
        return {
            "events": [e.to_dict() for e in events],
            "nextAfter": str(events[-1].cursor if events else cursor),
        }

    # ==================== Health Check ====================

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "cdp_sessions": [s.get_status() for s in _cdp_sessions],
            "clocks": _clock_registry.snapshot(),
            "live": _live_hub.get_stats(),
            "storage": _event_log.get_stats(),
            "timestamp": datetime.now().isoformat(),
        }


def register_websocket_routes(app: FastAPI):
    """Register the ingest, CDP, clock and admin channels."""

    @app.websocket("/ws/ingest")
    async def ingest_endpoint(websocket: WebSocket):
        """Telemetry stream from the browser SDK for one record."""
        await websocket.accept()

        record_id = websocket.query_params.get("recordId")
        if not _event_log.record_exists(record_id):
            logger.warning(f"Ingest rejected: unknown record {record_id!r}")
            await websocket.close(code=CLOSE_POLICY_VIOLATION, reason="record not found")
            return

        logger.info(f"Ingest connected for record {record_id}")
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except ValueError:
                    logger.warning(f"Malformed ingest message dropped for record {record_id}")
                    continue
                try:
                    _ingest_service.handle_message(record_id, message)
                except Exception as e:
                    logger.error(f"Ingest message dropped for record {record_id}: {e}")

        except WebSocketDisconnect:
            logger.info(f"Ingest disconnected for record {record_id}")
        except Exception as e:
            logger.error(f"Ingest WebSocket error: {e}")

    @app.websocket("/ws/cdp")
    async def cdp_endpoint(websocket: WebSocket):
        """DevTools frontend replaying one record."""
        await websocket.accept()

        session = ReplaySession(
            transport=websocket,
            options=ReplayOptions.from_query(websocket.query_params),
            merger=_merger,
            clocks=_clock_registry,
            record_exists=_event_log.record_exists,
            config=_replay_config,
        )
        if not await session.open():
            return

        _cdp_sessions.append(session)
        try:
            while True:
                data = await websocket.receive_text()
                await session.handle_message(data)

        except WebSocketDisconnect:
            session.detach()
        except Exception as e:
            logger.error(f"CDP WebSocket error: {e}")
            session.detach()
        finally:
            if session in _cdp_sessions:
                _cdp_sessions.remove(session)

    @app.websocket("/ws/clock")
    async def clock_endpoint(websocket: WebSocket):
        """Playback clock ticks from the rrweb player."""
        await websocket.accept()

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except ValueError:
                    logger.warning("Malformed clock message dropped")
                    continue
                if isinstance(message, dict):
                    _clock_registry.apply_sync_message(message)

        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"Clock WebSocket error: {e}")

    @app.websocket("/ws/admin")
    async def admin_endpoint(websocket: WebSocket):
        """Live notable events for operators."""
        await websocket.accept()

        observer = WebSocketObserver(websocket)
        pump = asyncio.create_task(observer.run())
        _live_hub.subscribe(observer)
        logger.info(f"Admin connected, {_live_hub.get_stats()['observers']} observers")

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except ValueError:
                    continue

                # Handle ping/pong
                if isinstance(message, dict) and message.get("type") == "ping":
                    observer.deliver({"type": "pong"})

        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"Admin WebSocket error: {e}")
        finally:
            _live_hub.unsubscribe(observer)
            observer.stop()
            pump.cancel()
            logger.info("Admin disconnected")
