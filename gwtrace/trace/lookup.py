"""
Single trace lookup.

Fetches one trace by id within an account, the way the get-by-id endpoint
does: a search on the id term with the smallest page size and an exact count.
A count of zero is "not found"; more than one hit for an id is logged and the
first hit is returned.

Not re-exported from gwtrace.trace: it depends on gwtrace.query.params,
which in turn loads the trace models.
"""

from __future__ import annotations

import logging

from gwtrace.query.params import QueryParamError, is_trace_id
from gwtrace.trace.models import MIN_LIMIT, RequestContext, TraceQuery, TraceResponse
from gwtrace.trace.store import TraceStore


logger = logging.getLogger(__name__)


class TraceNotFound(LookupError):
    """No trace with the requested id exists in the account."""

    def __init__(self, trace_id: str):
        super().__init__(f"Could not retrieve device trace by ID {trace_id}")
        self.trace_id = trace_id


async def get_trace(
    store: TraceStore,
    trace_id: str,
    account_id: str,
    ctx: RequestContext | None = None,
) -> TraceResponse:
    """
    Fetch a single trace by id.

    Args:
        store: Trace store to search
        trace_id: 32 hex character trace id (any case)
        account_id: Owning account; traces of other accounts are not found
        ctx: Deadline and log correlation

    Returns:
        The matching trace

    Raises:
        QueryParamError: If trace_id is not a valid id
        TraceNotFound: If no trace matches
        StorageError: Propagated from the store
    """
    if not is_trace_id(trace_id):
        raise QueryParamError("device_trace_id", "Invalid device trace id.")

    trace_id = trace_id.lower()
    query = TraceQuery(account_id=account_id, id=trace_id, limit=MIN_LIMIT)
    page = await store.search(query, include_total_count=True, ctx=ctx)

    if not page.total_count or not page.data:
        logger.warning(f"Could not find trace for id {trace_id}")
        raise TraceNotFound(trace_id)
    if page.total_count > 1:
        logger.error(
            f"Found {page.total_count} trace logs for id {trace_id}. This should not have happened."
        )

    return page.data[0]
