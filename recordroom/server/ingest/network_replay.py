"""
Re-issue a captured request against the serving origin.

Meant for reproducing a failing call from a recording. Only same-origin
URLs are replayed, credentials and browser-managed headers are never
forwarded, and non-idempotent methods need explicit opt-in.
"""

from typing import Dict, Optional
from urllib.parse import urlsplit
import logging
import time

import requests

from recordroom.shared import Event, EventKind, ReplayBlockedError, ReplayFailedError

from .models import NetworkReplayResponse

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
BLOCKED_HEADERS = frozenset({
    "cookie",
    "authorization",
    "host",
    "content-length",
    "origin",
    "referer",
    "connection",
    "accept-encoding",
})
BLOCKED_HEADER_PREFIXES = ("sec-", "proxy-")

MAX_REPLAY_BODY_CHARS = 20_000
REPLAY_TIMEOUT_SECONDS = 10.0


def truncate_text(text: Optional[str], max_chars: int = MAX_REPLAY_BODY_CHARS) -> Optional[str]:
    if text is None or len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n...[truncated]"


def forwardable_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Drop sensitive, hop-by-hop and browser-only headers."""
    kept = {}
    for key, value in (headers or {}).items():
        if not key:
            continue
        lower = key.lower()
        if lower in BLOCKED_HEADERS or lower.startswith(BLOCKED_HEADER_PREFIXES):
            continue
        kept[key] = value
    return kept


def looks_like_json(body: str) -> bool:
    text = body.strip()
    return (text.startswith("{") and text.endswith("}")) or (text.startswith("[") and text.endswith("]"))


def _origin(url: str) -> tuple:
    parts = urlsplit(url)
    return (parts.scheme.lower(), parts.netloc.lower())


def resolve_replay_url(url: str, base_url: str) -> str:
    """
    Resolve a captured URL against the serving origin.

    Raises:
        ReplayBlockedError: for other origins and non-http URLs
    """
    replay_url = base_url + url if url.startswith("/") else url

    if not replay_url.startswith(("http://", "https://")):
        raise ReplayBlockedError(f"Replay blocked (unsupported url): {replay_url}")
    if _origin(replay_url) != _origin(base_url):
        raise ReplayBlockedError(
            f"Replay blocked (different origin). baseUrl={base_url}, url={replay_url}"
        )
    return replay_url


class NetworkReplayer:
    """Replays captured network events over HTTP."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = REPLAY_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout = timeout

    def replay(self, event: Event, base_url: str, allow_non_idempotent: bool = False) -> NetworkReplayResponse:
        """
        Send a captured request again and report what came back.

        Args:
            event: Captured network event
            base_url: Origin of this server, e.g. "http://localhost:8080"
            allow_non_idempotent: Permit methods other than GET/HEAD/OPTIONS

        Returns:
            NetworkReplayResponse with both statuses and the (truncated) body

        Raises:
            ReplayBlockedError: if the request may not be replayed
            ReplayFailedError: if the origin could not be reached
        """
        if event.kind != EventKind.NETWORK:
            raise ReplayBlockedError(f"Not a network event: {event.event_id}")

        payload = event.payload
        method = (payload.get("method") or "GET").upper()
        if method not in IDEMPOTENT_METHODS and not allow_non_idempotent:
            raise ReplayBlockedError(
                f"Non-idempotent method blocked. Set allowNonIdempotent=true for method={method}"
            )

        original_url = payload.get("url") or ""
        replay_url = resolve_replay_url(original_url, base_url.rstrip("/"))
        headers = forwardable_headers(payload.get("requestHeaders"))

        body = payload.get("requestBody")
        data = None
        if body and body.strip() and method not in ("GET", "HEAD"):
            has_content_type = any(k.lower() == "content-type" for k in headers)
            if not has_content_type and looks_like_json(body):
                headers["Content-Type"] = "application/json"
            data = body.encode("utf-8")

        logger.info(f"Replaying {method} {replay_url} for event {event.event_id}")
        started = time.time()
        try:
            response = self.session.request(
                method,
                replay_url,
                headers=headers,
                data=data,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Replay of {event.event_id} failed: {e}")
            raise ReplayFailedError(f"Replay failed: {e}") from e
        duration_ms = int((time.time() - started) * 1000)

        return NetworkReplayResponse(
            record_id=event.record_id,
            event_id=event.event_id,
            method=method,
            original_url=original_url,
            replay_url=replay_url,
            original_status=payload.get("status") or 0,
            replay_status=response.status_code,
            duration_ms=duration_ms,
            response_body=truncate_text(response.text),
        )
