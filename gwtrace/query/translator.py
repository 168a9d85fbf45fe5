"""
Query Translator

Maps a semantic TraceQuery onto the backend filter tree.

Every populated field contributes one ANDed clause:
- devices    -> terms(device_id)   membership, OR across ids
- account_id -> term(account_id)
- type       -> term(type)
- time range -> range(timestamp)   in filter context
- id         -> term(id)

A bound of None or 0 means "open on that side" and emits nothing; it is never
read as "equal to epoch zero". The translator does not check after <= before,
the calling layer rejects inverted ranges.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gwtrace.query.filters import (
    BoolFilter,
    Clause,
    RangeFilter,
    TermFilter,
    TermsFilter,
)

if TYPE_CHECKING:
    from gwtrace.trace.models import TraceQuery


def translate(query: TraceQuery) -> BoolFilter:
    """
    Build backend criteria for a query.

    Args:
        query: Filters to translate

    Returns:
        Conjunction of the clauses for every populated field
    """
    must: list[Clause] = []
    filters: list[Clause] = []

    if query.devices:
        must.append(TermsFilter("device_id", tuple(query.devices)))

    if query.account_id:
        must.append(TermFilter("account_id", query.account_id))

    if query.type:
        must.append(TermFilter("type", query.type))

    after = query.after or None
    before = query.before or None
    if after is not None or before is not None:
        filters.append(RangeFilter("timestamp", gte=after, lte=before))

    if query.id:
        must.append(TermFilter("id", query.id))

    return BoolFilter(must=tuple(must), filter=tuple(filters))
