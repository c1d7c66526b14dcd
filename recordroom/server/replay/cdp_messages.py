"""
Rendering of recorded events as Chrome DevTools Protocol pushes.

Only the subset DevTools' Network and Console panels need is produced.
CDP timestamps are seconds relative to the replay baseline; wallTime is
epoch seconds.
"""

from typing import List, Optional

from recordroom.shared import Event

MAX_BODY_CHARS = 200_000
TRUNCATION_MARKER = "\n...[truncated]"

REPLAY_CONTEXT = {
    "id": 1,
    "origin": "recordroom://replay",
    "name": "RecordRoom Replay",
    "uniqueId": "recordroom-context-1",
}

UNDEFINED_RESULT = {
    "result": {
        "type": "undefined",
        "value": None,
        "description": "undefined",
    }
}

_LOG_LEVELS = {
    "error": "error",
    "warn": "warning",
    "debug": "verbose",
}


def to_log_level(level: Optional[str]) -> str:
    if not level:
        return "info"
    return _LOG_LEVELS.get(level.lower(), "info")


def guess_mime_type(headers: Optional[dict]) -> str:
    for key, value in (headers or {}).items():
        if isinstance(key, str) and key.lower() == "content-type":
            if not value:
                return "text/plain"
            return value.split(";", 1)[0].strip()
    return "text/plain"


def parse_stack_frames(stack: str) -> List[dict]:
    """One call frame per non-blank stack line; the line is kept verbatim."""
    return [
        {
            "functionName": "",
            "url": "",
            "lineNumber": 0,
            "columnNumber": 0,
            "description": line.strip(),
        }
        for line in stack.split("\n")
        if line.strip()
    ]


def truncate_body(body: Optional[str], max_chars: int = MAX_BODY_CHARS) -> str:
    if not body:
        return ""
    if len(body) <= max_chars:
        return body
    return body[:max_chars] + TRUNCATION_MARKER


def _seconds_since(epoch_ms: int, baseline_ms: int) -> float:
    return (epoch_ms - baseline_ms) / 1000.0


def execution_context_created() -> dict:
    return {
        "method": "Runtime.executionContextCreated",
        "params": {"context": dict(REPLAY_CONTEXT)},
    }


def console_entry(event: Event, baseline_ms: int) -> dict:
    """Log.entryAdded for one console event."""
    payload = event.payload
    entry = {
        "source": "console-api",
        "level": to_log_level(payload.get("level")),
        "text": payload.get("message") or "",
        "timestamp": _seconds_since(event.timestamp_ms, baseline_ms),
    }

    stack = payload.get("stack")
    if stack and stack.strip():
        entry["stackTrace"] = {"callFrames": parse_stack_frames(stack)}

    return {"method": "Log.entryAdded", "params": {"entry": entry}}


def network_bundle(event: Event, record_id: str, baseline_ms: int) -> List[dict]:
    """
    CDP pushes describing one captured request.

    requestWillBeSent, then loadingFailed for errored requests or
    responseReceived + loadingFinished otherwise.
    """
    payload = event.payload
    request_id = event.event_id
    url = payload.get("url") or ""
    started_ms = event.timestamp_ms
    finished_ms = started_ms + max(0, int(payload.get("durationMs") or 0))

    messages = [{
        "method": "Network.requestWillBeSent",
        "params": {
            "requestId": request_id,
            "loaderId": record_id,
            "documentURL": url,
            "request": {
                "url": url,
                "method": payload.get("method") or "GET",
                "headers": payload.get("requestHeaders") or {},
            },
            "timestamp": _seconds_since(started_ms, baseline_ms),
            "wallTime": started_ms / 1000.0,
            "initiator": {"type": "other"},
            "type": "Fetch",
        },
    }]

    error = payload.get("error")
    if error and str(error).strip():
        messages.append({
            "method": "Network.loadingFailed",
            "params": {
                "requestId": request_id,
                "timestamp": _seconds_since(finished_ms, baseline_ms),
                "type": "Fetch",
                "errorText": error,
            },
        })
        return messages

    response_headers = payload.get("responseHeaders") or {}
    encoded_length = len(payload.get("responseBody") or "")

    messages.append({
        "method": "Network.responseReceived",
        "params": {
            "requestId": request_id,
            "loaderId": record_id,
            "timestamp": _seconds_since(finished_ms, baseline_ms),
            "type": "Fetch",
            "response": {
                "url": url,
                "status": payload.get("status") or 0,
                "statusText": "",
                "headers": response_headers,
                "mimeType": guess_mime_type(response_headers),
                "connectionReused": False,
                "connectionId": 0,
                "encodedDataLength": encoded_length,
            },
        },
    })
    messages.append({
        "method": "Network.loadingFinished",
        "params": {
            "requestId": request_id,
            "timestamp": _seconds_since(finished_ms, baseline_ms),
            "encodedDataLength": encoded_length,
        },
    })
    return messages
