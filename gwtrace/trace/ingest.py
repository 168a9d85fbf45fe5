"""
Trace ingestion.

Converts gateway-posted trace bodies into Trace records ready for the store:
- decode the JSON array, rejecting unknown fields
- parse and range-check each client timestamp
- assign a temporal id and derive cloud_timestamp from it
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from gwtrace.muuid.generator import MUUIDGenerator
from gwtrace.trace.models import (
    MAX_TIMESTAMP,
    MIN_TIMESTAMP,
    Trace,
    parse_rfc3339,
    to_millis,
)


logger = logging.getLogger(__name__)


class IngestError(ValueError):
    """A posted trace body could not be accepted."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class PostTrace(BaseModel):
    """One trace as posted by a gateway."""
    model_config = ConfigDict(extra="forbid")

    timestamp: str
    trace: dict[str, Any] = Field(default_factory=dict)
    type: str = ""


_post_list = TypeAdapter(list[PostTrace])


def parse_post_body(raw: bytes | str) -> list[PostTrace]:
    """
    Decode a posted body: a JSON array of trace objects.

    Raises:
        IngestError: On malformed JSON, a non-array body or unknown fields
    """
    try:
        return _post_list.validate_json(raw)
    except ValidationError as e:
        raise IngestError(f"Error decoding request body: {e}") from e


def parse_timestamp(value: str) -> int:
    """
    Client timestamp (RFC 3339) to ms since epoch, range-checked.

    Raises:
        IngestError: If unparsable or outside [MIN_TIMESTAMP, MAX_TIMESTAMP]
    """
    try:
        ms = to_millis(parse_rfc3339(value))
    except ValueError as e:
        raise IngestError(
            "Invalid log timestamp, cannot parse as RFC3339 format.",
            field="timestamp",
        ) from e

    if ms < MIN_TIMESTAMP or ms > MAX_TIMESTAMP:
        raise IngestError("Invalid log timestamp, not in range.", field="timestamp")
    return ms


def build_traces(
    posts: list[PostTrace],
    device_id: str,
    account_id: str,
    generator: MUUIDGenerator,
) -> list[Trace]:
    """
    Build store records for a posted batch.

    All timestamps are validated before any id is issued, so a rejected
    batch does not consume identifiers.

    Args:
        posts: Decoded bodies
        device_id: Gateway the traces belong to
        account_id: Owning account
        generator: Identifier source

    Returns:
        One Trace per posted item, in order

    Raises:
        IngestError: On an empty device id or an invalid timestamp
    """
    if not device_id:
        raise IngestError("Empty RelayID", field="device_id")

    timestamps = [parse_timestamp(p.timestamp) for p in posts]

    traces = []
    for post, timestamp in zip(posts, timestamps):
        muuid = generator.next()
        traces.append(Trace(
            id=str(muuid),
            device_id=device_id,
            account_id=account_id,
            timestamp=timestamp,
            cloud_timestamp=muuid.timestamp_ms,
            trace=post.trace,
            type=post.type,
        ))

    logger.debug(f"Built {len(traces)} traces for device {device_id}")
    return traces


def ingest_body(
    raw: bytes | str,
    device_id: str,
    account_id: str,
    generator: MUUIDGenerator,
) -> list[Trace]:
    """parse_post_body() followed by build_traces()."""
    return build_traces(parse_post_body(raw), device_id, account_id, generator)

