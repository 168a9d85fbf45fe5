"""
Device Trace Store

Batched writes and cursor-paginated searches over a SearchBackend.

Design:
- Append-only: traces are written once and never updated or deleted here
- Writes go to the active alias, reads to the search alias; both fixed at
  construction
- The temporal id is the sort key and the cursor: pages resume with a
  seek-past-this-id, never a numeric offset
- One extra hit is requested per page purely to compute has_more
- Every call is a single attempt bounded by the RequestContext deadline;
  retries belong to the caller

Failure semantics:
- add() is at-least-once and non-atomic across the batch. Any rejected item
  fails the whole call, items already written stay written
- search() never returns a partial page: one undecodable hit fails the page
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from collections.abc import Awaitable, Sequence
from typing import Any, TypeVar

from pydantic import ValidationError

from gwtrace.query.filters import to_query_dsl
from gwtrace.query.translator import translate
from gwtrace.storage.ports import (
    BatchCountMismatch,
    BulkWriteFailed,
    DecodeFailed,
    IndexIntent,
    QueryExecutionFailed,
    SearchBackend,
    SearchHit,
    SearchRequest,
    StorageTimeout,
)
from gwtrace.trace.models import (
    MAX_TIMESTAMP,
    MIN_TIMESTAMP,
    RequestContext,
    Trace,
    TracePage,
    TraceQuery,
    TraceResponse,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_CONTEXT = RequestContext()


class TraceStore:
    """
    Search-indexed device trace store.

    Stateless per call apart from the immutable backend handle and the two
    target names.
    """

    def __init__(
        self,
        backend: SearchBackend,
        search_alias: str,
        active_alias: str,
    ):
        self._backend = backend
        self._search_alias = search_alias
        self._active_alias = active_alias

    @property
    def backend(self) -> SearchBackend:
        return self._backend

    @property
    def search_alias(self) -> str:
        return self._search_alias

    @property
    def active_alias(self) -> str:
        return self._active_alias

    def _logger(self, ctx: RequestContext, function: str) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(logger, {
            "request_id": ctx.request_id,
            "account_id": ctx.account_id,
            "function": function,
        })

    async def _bounded(self, ctx: RequestContext, call: Awaitable[T]) -> T:
        if ctx.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=ctx.timeout)
        except asyncio.TimeoutError as e:
            raise StorageTimeout(
                f"Backend call exceeded {ctx.timeout}s deadline"
            ) from e

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _build_intents(self, traces: Sequence[Trace]) -> list[IndexIntent]:
        return [
            IndexIntent(document=trace.with_display_fields().to_document())
            for trace in traces
        ]

    async def add(
        self,
        traces: Sequence[Trace],
        ctx: RequestContext | None = None,
    ) -> None:
        """
        Write a batch of traces with a single bulk request.

        Args:
            traces: Records with ids already assigned
            ctx: Deadline and log correlation

        Raises:
            BatchCountMismatch: Intent count differs from input length (no
                backend call is made)
            BulkWriteFailed: The request failed or any item was rejected;
                other items of the batch may already be durable
            StorageTimeout: Deadline exceeded
        """
        ctx = ctx or _DEFAULT_CONTEXT
        log = self._logger(ctx, "add()")

        if not traces:
            log.debug("There is nothing to commit.")
            return

        intents = self._build_intents(traces)
        if len(intents) != len(traces):
            log.warning(
                f"Fail to create bulk request: {len(intents)} actions for {len(traces)} traces"
            )
            raise BatchCountMismatch(
                "Found unmatched number of actions of bulk request"
            )

        log.debug(f"Sending bulk request of {len(intents)} traces to {self._active_alias}")

        try:
            result = await self._bounded(
                ctx, self._backend.bulk_write(self._active_alias, intents)
            )
        except StorageTimeout:
            log.warning(f"Bulk request to {self._active_alias} timed out")
            raise
        except Exception as e:
            log.warning(f"Fail to make bulk request: {e}", exc_info=True)
            raise BulkWriteFailed("Failed to make the bulk request") from e

        if result.errors:
            for failure in result.failures:
                log.error(
                    f"Bulk request failed item {failure.position} "
                    f"(id={failure.doc_id}): {failure.reason}"
                )
            raise BulkWriteFailed(
                f"Bulk request failed for {len(result.failures)} of {len(intents)} items",
                failures=result.failures,
            )

        log.debug(f"Bulk request of {result.took_items} traces succeeded")

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: TraceQuery,
        include_total_count: bool = False,
        ctx: RequestContext | None = None,
    ) -> TracePage:
        """
        Fetch one page of traces.

        Args:
            query: Validated filters and paging
            include_total_count: Also compute the exact number of matches
            ctx: Deadline and log correlation

        Returns:
            Page of at most query.limit traces. `after` echoes query.cursor

        Raises:
            QueryExecutionFailed: Backend failed to execute the search
            DecodeFailed: A hit could not be decoded
            StorageTimeout: Deadline exceeded
        """
        ctx = ctx or _DEFAULT_CONTEXT
        log = self._logger(ctx, "search()")

        page = TracePage(
            limit=query.limit,
            after=query.cursor,
            order=query.order,
            total_count=0 if include_total_count else None,
        )

        after = query.after or None
        before = query.before or None

        # Bounds that put the whole range outside what can be stored
        if (after is not None and after > MAX_TIMESTAMP) or (
            before is not None and before < MIN_TIMESTAMP
        ):
            log.debug("Time range outside supported timestamps, returning empty page")
            return page

        if before is not None and before > MAX_TIMESTAMP:
            before = None
        if after is not None and after < MIN_TIMESTAMP:
            after = None

        criteria = translate(replace(query, after=after, before=before))
        request = SearchRequest(
            target=self._search_alias,
            criteria=criteria,
            sort_field="id",
            ascending=query.order.ascending,
            size=query.limit + 1,
            search_after=[query.cursor] if query.cursor else None,
            track_total_hits=include_total_count,
        )

        log.debug(f"Search query prepared: {to_query_dsl(criteria)}")

        try:
            result = await self._bounded(ctx, self._backend.search(request))
        except StorageTimeout:
            log.warning(f"Search on {self._search_alias} timed out")
            raise
        except Exception as e:
            log.warning(f"Error executing search query: {e}", exc_info=True)
            raise QueryExecutionFailed(
                "Failed to query the trace logs by the specific term"
            ) from e

        page.has_more = len(result.hits) > query.limit
        page.data = _assemble(result.hits[:query.limit], log)
        if include_total_count:
            page.total_count = result.total or 0

        return page


def decode_hit(hit: SearchHit) -> Trace:
    """
    Decode a raw hit source into a Trace.

    Raises:
        DecodeFailed: If the source is not a valid trace document
    """
    source: Any = hit.source
    try:
        if isinstance(source, (str, bytes, bytearray)):
            return Trace.model_validate_json(source)
        return Trace.model_validate(source)
    except ValidationError as e:
        raise DecodeFailed("Failed to format the query result") from e


def _assemble(hits: list[SearchHit], log: logging.LoggerAdapter) -> list[TraceResponse]:
    data = []
    for hit in hits:
        try:
            trace = decode_hit(hit)
        except DecodeFailed as e:
            log.warning(f"Error decoding response as trace data: {e.__cause__}")
            raise
        data.append(TraceResponse.from_trace(trace))
    return data
