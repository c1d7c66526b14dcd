"""
Request models for telemetry sent by the browser SDK.

The SDK speaks camelCase; fields are snake_case here and accept either.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from recordroom.shared import INT64_MAX, INT64_MIN


class SdkModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


# ============== Records ==============

class CreateRecordRequest(SdkModel):
    """Start a new recording."""
    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    app_version: Optional[str] = None
    session_id: Optional[str] = None
    previous_record_id: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [{
                "pageUrl": "https://shop.example.com/cart",
                "userAgent": "Mozilla/5.0",
                "appVersion": "1.4.2",
            }]
        },
    }


class CreateRecordResponse(SdkModel):
    record_id: str
    share_url: str
    ingest_ws_url: str


# ============== Ingest messages ==============

class ConsoleIngest(SdkModel):
    type: str = "console"
    level: Optional[str] = None  # log | info | warn | error | debug
    message: Optional[str] = None
    stack: Optional[str] = None
    ts: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    seq: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


class NetworkIngest(SdkModel):
    type: str = "network"
    client_request_id: Optional[str] = None
    method: Optional[str] = None
    url: Optional[str] = None
    status: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)  # 0 when failed before a response
    request_headers: Optional[Dict[str, str]] = None
    request_body: Optional[str] = None
    response_headers: Optional[Dict[str, str]] = None
    response_body: Optional[str] = None
    started_at_epoch_ms: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    duration_ms: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    error: Optional[str] = None
    seq: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


class BreadcrumbIngest(SdkModel):
    type: str = "breadcrumb"
    name: Optional[str] = None  # click | navigation | input | custom
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None  # SDK values may be numbers or null
    ts: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    seq: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


class RrwebEnvelope(SdkModel):
    ts: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    seq: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    payload: Any = None  # raw rrweb event


class RrwebBatchIngest(SdkModel):
    type: str = "rrweb"
    events: List[Optional[RrwebEnvelope]] = Field(default_factory=list)


class NetworkReplayResponse(SdkModel):
    record_id: str
    event_id: str
    method: str
    original_url: str
    replay_url: str
    original_status: int
    replay_status: int
    duration_ms: int
    response_body: Optional[str] = None
