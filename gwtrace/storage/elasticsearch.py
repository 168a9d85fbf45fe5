"""
Elasticsearch Search Backend

Production adapter over an Elasticsearch cluster via AsyncElasticsearch.

- Writes use one _bulk request with `index` actions keyed by the trace id,
  so a re-sent id overwrites the document instead of duplicating it
- Reads sort on the `id` keyword field and resume with search_after
- The exact hit count is only tracked when asked for

Index mappings, aliases and rollover are managed outside this service. The
search alias must map `id`, `account_id`, `device_id` and `type` as keyword
and `timestamp` as long.
"""

import logging
from typing import Any

from elasticsearch import AsyncElasticsearch

from gwtrace.query.filters import to_query_dsl
from gwtrace.storage.ports import (
    BulkItemFailure,
    BulkWriteResult,
    IndexIntent,
    SearchBackend,
    SearchHit,
    SearchRequest,
    SearchResult,
)


logger = logging.getLogger(__name__)


def _body(response: Any) -> dict[str, Any]:
    # ObjectApiResponse exposes the decoded JSON as .body
    return getattr(response, "body", response)


def _failure_reason(error: Any) -> str:
    if isinstance(error, dict):
        return error.get("reason") or error.get("type") or str(error)
    return str(error)


class ElasticsearchSearchBackend(SearchBackend):
    """
    Elasticsearch implementation of the search backend.

    Args:
        client: Connected AsyncElasticsearch client (owned by the backend)
        refresh: Optional refresh policy for bulk writes ("wait_for", "true")
    """

    def __init__(self, client: AsyncElasticsearch, refresh: str | None = None):
        self._client = client
        self._refresh = refresh

    async def bulk_write(
        self,
        target: str,
        intents: list[IndexIntent]
    ) -> BulkWriteResult:
        operations: list[dict[str, Any]] = []
        for intent in intents:
            action: dict[str, Any] = {"_index": target}
            if intent.doc_id:
                action["_id"] = intent.doc_id
            operations.append({"index": action})
            operations.append(intent.document)

        kwargs: dict[str, Any] = {}
        if self._refresh:
            kwargs["refresh"] = self._refresh

        response = _body(await self._client.bulk(operations=operations, **kwargs))

        failures = []
        items = response.get("items", [])
        for position, item in enumerate(items):
            detail = next(iter(item.values()), {})
            error = detail.get("error")
            if error:
                failures.append(BulkItemFailure(
                    position=position,
                    doc_id=detail.get("_id"),
                    reason=_failure_reason(error),
                ))

        if response.get("errors") and not failures:
            logger.warning("Bulk response flagged errors without failed items")

        return BulkWriteResult(took_items=len(items) - len(failures), failures=failures)

    async def search(self, request: SearchRequest) -> SearchResult:
        kwargs: dict[str, Any] = {
            "index": request.target,
            "query": to_query_dsl(request.criteria),
            "sort": [{request.sort_field: {"order": "asc" if request.ascending else "desc"}}],
            "size": request.size,
        }
        if request.search_after:
            kwargs["search_after"] = list(request.search_after)
        if request.track_total_hits:
            kwargs["track_total_hits"] = True

        response = _body(await self._client.search(**kwargs))

        hits_body = response["hits"]
        hits = [
            SearchHit(source=hit.get("_source"), sort=hit.get("sort"))
            for hit in hits_body.get("hits", [])
        ]

        total = None
        if request.track_total_hits:
            total_body = hits_body.get("total") or {}
            total = total_body.get("value", 0) if isinstance(total_body, dict) else int(total_body)

        return SearchResult(hits=hits, total=total)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.close()


def create_elasticsearch_backend(
    url: str,
    refresh: str | None = None,
    **client_kwargs: Any,
) -> ElasticsearchSearchBackend:
    """
    Create an Elasticsearch backend for a single URL.

    Sniffing stays off; the URL is expected to be a load balancer or a single
    coordinating node.
    """
    client = AsyncElasticsearch(hosts=[url], **client_kwargs)
    return ElasticsearchSearchBackend(client, refresh=refresh)
