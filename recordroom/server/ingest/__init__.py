# Telemetry ingestion
from .ingest_service import IngestService, NotableConfig
from .network_replay import NetworkReplayer
from .models import (
    CreateRecordRequest,
    CreateRecordResponse,
    ConsoleIngest,
    NetworkIngest,
    BreadcrumbIngest,
    RrwebEnvelope,
    RrwebBatchIngest,
    NetworkReplayResponse,
)

__all__ = [
    "IngestService",
    "NotableConfig",
    "NetworkReplayer",
    "CreateRecordRequest",
    "CreateRecordResponse",
    "ConsoleIngest",
    "NetworkIngest",
    "BreadcrumbIngest",
    "RrwebEnvelope",
    "RrwebBatchIngest",
    "NetworkReplayResponse",
]
