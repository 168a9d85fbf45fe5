"""
List-query parameter parsing.

Turns the raw key/value pairs of a trace list request into a validated
TraceQuery. Lives at the boundary, ahead of the store:

- timestamp__gte / timestamp__lte: RFC 3339, converted to ms since epoch
- type__eq: exact type
- limit: 2..1000
- order: asc | desc (case-insensitive)
- after: cursor, 32 hex chars, normalized to lower case
- include: "total_count" turns on the exact count
- device_id__in: comma separated device ids

Out-of-range time bounds are passed through; clamping and the empty-page
short-circuit belong to the store.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from gwtrace.trace.models import (
    MAX_LIMIT,
    MIN_LIMIT,
    DEFAULT_LIMIT,
    Order,
    TraceQuery,
    parse_rfc3339,
    to_millis,
)


_TRACE_ID_RE = re.compile(r"[a-fA-F0-9]{32}")

KNOWN_FIELDS = frozenset({
    "timestamp__gte",
    "timestamp__lte",
    "type__eq",
    "limit",
    "order",
    "after",
    "include",
    "device_id__in",
})


class QueryParamError(ValueError):
    """Invalid list-query parameter."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid query field '{field}': {message}")
        self.field = field
        self.message = message


def is_trace_id(value: str) -> bool:
    """True for a 32 hex character identifier string, in either case."""
    return _TRACE_ID_RE.fullmatch(value) is not None


def _parse_time(field: str, value: str) -> int:
    try:
        return to_millis(parse_rfc3339(value))
    except ValueError as e:
        raise QueryParamError(
            field, "Invalid field value. Could not parse as RFC3339 format."
        ) from e


def parse_query_params(
    params: Mapping[str, str],
    account_id: str,
    devices: list[str] | None = None,
) -> tuple[TraceQuery, bool]:
    """
    Validate list-query parameters.

    Args:
        params: Raw query parameters (first value per key)
        account_id: Account from the caller's credentials
        devices: Device ids fixed by the route (e.g. a single-device path);
            when given, device_id__in is not accepted

    Returns:
        Tuple of (query, include_total_count)

    Raises:
        QueryParamError: On unknown fields, empty values or invalid values
    """
    after: int | None = None
    before: int | None = None
    typ = ""
    limit = DEFAULT_LIMIT
    order = Order.DESC
    cursor: str | None = None
    include = False
    device_ids = list(devices) if devices else []

    for name, value in params.items():
        if name not in KNOWN_FIELDS or (name == "device_id__in" and devices):
            raise QueryParamError(name, f"Invalid field name '{name}'")
        if value == "":
            raise QueryParamError(name, "Invalid field value ''")

        if name == "timestamp__gte":
            after = _parse_time(name, value)
        elif name == "timestamp__lte":
            before = _parse_time(name, value)
        elif name == "type__eq":
            typ = value
        elif name == "limit":
            try:
                limit = int(value)
            except ValueError as e:
                raise QueryParamError(name, f"Invalid 'limit' {value!r}") from e
            if limit < MIN_LIMIT or limit > MAX_LIMIT:
                raise QueryParamError(
                    name,
                    f"Invalid 'limit' provided. Acceptable value is {MIN_LIMIT}-{MAX_LIMIT}.",
                )
        elif name == "order":
            try:
                order = Order(value.upper())
            except ValueError as e:
                raise QueryParamError(
                    name, "Invalid 'order'. Acceptable values [ASC|DESC]"
                ) from e
        elif name == "after":
            if not is_trace_id(value):
                raise QueryParamError(name, "Invalid after cursor.")
            cursor = value.lower()
        elif name == "include":
            # Other include values are ignored
            include = value == "total_count"
        elif name == "device_id__in":
            device_ids = [d for d in value.split(",") if d]
            if not device_ids:
                raise QueryParamError(name, "Invalid field value ''")

    if after is not None and before is not None and before < after:
        raise QueryParamError(
            "timestamp__lte",
            "Invalid time range. timestamp__lte should be after timestamp__gte",
        )

    query = TraceQuery(
        devices=device_ids,
        account_id=account_id,
        after=after,
        before=before,
        type=typ,
        order=order,
        limit=limit,
        cursor=cursor,
    )
    return query, include
