"""
Trace Models

Record, query and page types for the device trace store.

- Trace: the persisted document (wire names: account_id, device_id, @timestamp, ...)
- TraceResponse: one entry of a list response
- TracePage: list wrapper with cursor pagination data
- TraceQuery: already-validated filter set consumed by the store
- RequestContext: per-call deadline and log correlation

The `trace` payload is an arbitrary JSON object owned by the device
application; it is carried through without any schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


MIN_LIMIT = 2
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

# Largest accepted client timestamp, in ms since epoch
MIN_TIMESTAMP = 0
MAX_TIMESTAMP = 9223372036854

DEFAULT_TIMEOUT_SECONDS = 30.0

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_millis(ms: int) -> str:
    """
    Render ms since epoch as a UTC display string with millisecond precision.

    >>> format_millis(1672531200000)
    '2023-01-01T00:00:00.000Z'

    Raises:
        ValueError: If the value is outside the datetime range
    """
    try:
        moment = _EPOCH + timedelta(milliseconds=ms)
    except OverflowError as e:
        raise ValueError(f"Timestamp {ms} cannot be rendered") from e
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def to_millis(moment: datetime) -> int:
    """Convert an aware datetime to ms since epoch."""
    delta = moment - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp. A zone designator is required.

    Raises:
        ValueError: If the value is not RFC 3339
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"Missing time zone offset in '{value}'")
    return parsed


class Order(str, Enum):
    """Sort direction over the temporal id."""
    ASC = "ASC"
    DESC = "DESC"

    @property
    def ascending(self) -> bool:
        return self is Order.ASC


class Trace(BaseModel):
    """
    A single device trace as persisted in the backend.

    Immutable once created at ingestion. `timestring` and `created_at` are
    display renderings of `timestamp` and `cloud_timestamp`, filled in by the
    store right before writing.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    account_id: str
    device_id: str
    id: str
    timestamp: int
    timestring: str = ""
    trace: dict[str, Any] = Field(default_factory=dict)
    type: str = ""
    cloud_timestamp: int = Field(alias="@timestamp")
    created_at: str = ""

    def with_display_fields(self) -> Trace:
        """Return a copy with timestring/created_at derived from the integer timestamps."""
        return self.model_copy(update={
            "timestring": format_millis(self.timestamp),
            "created_at": format_millis(self.cloud_timestamp),
        })

    def to_document(self) -> dict[str, Any]:
        """Serialize with wire field names for the backend."""
        return self.model_dump(mode="json", by_alias=True)


class TraceResponse(BaseModel):
    """One trace as exposed in a list response."""
    account_id: str
    device_id: str
    id: str
    object: str = "device-trace"
    created_at: str
    etag: str
    timestamp: str
    trace: dict[str, Any]
    type: str

    @classmethod
    def from_trace(cls, trace: Trace) -> TraceResponse:
        # etag and created_at both come from the stored generation time
        return cls(
            account_id=trace.account_id,
            device_id=trace.device_id,
            id=trace.id,
            created_at=trace.created_at,
            etag=trace.created_at,
            timestamp=trace.timestring,
            trace=trace.trace,
            type=trace.type,
        )


class TracePage(BaseModel):
    """
    Paginated list of traces.

    `after` echoes the cursor the caller supplied. `total_count` is only set
    when the caller asked for it.
    """
    object: str = "list"
    limit: int
    after: str | None = None
    order: Order = Order.DESC
    has_more: bool = False
    data: list[TraceResponse] = Field(default_factory=list)
    total_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the list response body."""
        body = self.model_dump(mode="json")
        if self.total_count is None:
            body.pop("total_count")
        return body


@dataclass
class TraceQuery:
    """
    Filters and paging for a trace search.

    Attributes:
        devices: Device ids (OR). Empty means any device
        account_id: Exact account
        after: Inclusive lower bound on `timestamp` (ms). None or 0 is open
        before: Inclusive upper bound on `timestamp` (ms). None or 0 is open
        type: Exact trace type
        id: Exact trace id
        order: Sort direction over the id
        limit: Page size, 2..1000
        cursor: Id of the last item of the previous page
    """
    devices: list[str] = field(default_factory=list)
    account_id: str = ""
    after: int | None = None
    before: int | None = None
    type: str = ""
    id: str = ""
    order: Order = Order.DESC
    limit: int = DEFAULT_LIMIT
    cursor: str | None = None

    def __post_init__(self):
        if not MIN_LIMIT <= self.limit <= MAX_LIMIT:
            raise ValueError(
                f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got {self.limit}"
            )


@dataclass(frozen=True)
class RequestContext:
    """
    Per-call execution context supplied by the calling layer.

    request_id/account_id only feed log correlation. `timeout` bounds the
    backend round trip; None disables the deadline.
    """
    request_id: str = ""
    account_id: str = ""
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
