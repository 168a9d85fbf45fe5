# Device Trace
# Ingestion, paginated search and the record/page models

from gwtrace.trace.models import (
    Order,
    RequestContext,
    Trace,
    TracePage,
    TraceQuery,
    TraceResponse,
    MIN_LIMIT,
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_TIMESTAMP,
    format_millis,
)
from gwtrace.trace.store import TraceStore, decode_hit
from gwtrace.trace.ingest import (
    IngestError,
    PostTrace,
    build_traces,
    ingest_body,
    parse_post_body,
)

__all__ = [
    "Order",
    "RequestContext",
    "Trace",
    "TracePage",
    "TraceQuery",
    "TraceResponse",
    "MIN_LIMIT",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MAX_TIMESTAMP",
    "format_millis",
    "TraceStore",
    "decode_hit",
    "IngestError",
    "PostTrace",
    "build_traces",
    "ingest_body",
    "parse_post_body",
]
