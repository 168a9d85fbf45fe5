"""
In-Memory Search Backend

Coroutine-safe implementation for development and testing.
Uses an asyncio lock for concurrent async safety.

Documents are kept as encoded JSON, the way a search index returns _source,
and are lost on restart. Use for:
- Local development
- Unit/integration testing

Aliases: each write target is a partition. A search target resolves through
the alias map to one or more partitions (a target with no alias entry reads
its own partition only).

Writes index by id: a re-sent id replaces the stored document.
"""

import asyncio
import json
from typing import Any

from gwtrace.query.filters import (
    BoolFilter,
    Clause,
    RangeFilter,
    TermFilter,
    TermsFilter,
)
from gwtrace.storage.ports import (
    BulkItemFailure,
    BulkWriteResult,
    IndexIntent,
    SearchBackend,
    SearchHit,
    SearchRequest,
    SearchResult,
)


def matches_clause(clause: Clause, doc: dict[str, Any]) -> bool:
    """Evaluate one filter clause against a document."""
    value = doc.get(clause.field)
    if isinstance(clause, TermFilter):
        return value == clause.value
    if isinstance(clause, TermsFilter):
        return value in clause.values
    if isinstance(clause, RangeFilter):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if clause.gte is not None and value < clause.gte:
            return False
        if clause.lte is not None and value > clause.lte:
            return False
        return True
    raise TypeError(f"Unsupported filter clause: {clause!r}")


def matches(criteria: BoolFilter, doc: dict[str, Any]) -> bool:
    """Evaluate a filter tree against a document."""
    return all(matches_clause(c, doc) for c in criteria.clauses)


class InMemorySearchBackend(SearchBackend):
    """
    In-memory search backend.

    Uses dicts keyed by document id with an asyncio.Lock.
    """

    def __init__(self, aliases: dict[str, list[str]] | None = None):
        self._aliases = {k: list(v) for k, v in (aliases or {}).items()}
        # partition -> doc id -> (parsed doc, encoded source)
        self._partitions: dict[str, dict[str, tuple[dict[str, Any], str]]] = {}
        self._lock = asyncio.Lock()
        self.bulk_calls = 0
        self.search_calls = 0

    def _resolve(self, target: str) -> list[str]:
        return self._aliases.get(target, [target])

    async def bulk_write(
        self,
        target: str,
        intents: list[IndexIntent]
    ) -> BulkWriteResult:
        async with self._lock:
            self.bulk_calls += 1
            partition = self._partitions.setdefault(target, {})
            failures = []
            written = 0

            for position, intent in enumerate(intents):
                doc_id = intent.doc_id
                if not doc_id:
                    failures.append(BulkItemFailure(position, None, "document has no id"))
                    continue
                try:
                    source = json.dumps(intent.document)
                except (TypeError, ValueError) as e:
                    failures.append(BulkItemFailure(position, doc_id, f"failed to parse: {e}"))
                    continue
                # Re-sent ids replace the stored document; the decoded copy
                # isolates it from later mutation of the intent
                partition[doc_id] = (json.loads(source), source)
                written += 1

            return BulkWriteResult(took_items=written, failures=failures)

    async def search(self, request: SearchRequest) -> SearchResult:
        async with self._lock:
            self.search_calls += 1
            candidates = []
            for name in self._resolve(request.target):
                for doc, source in self._partitions.get(name, {}).values():
                    if matches(request.criteria, doc):
                        candidates.append((doc, source))

        key = request.sort_field
        candidates.sort(key=lambda item: item[0].get(key, ""), reverse=not request.ascending)
        total = len(candidates)

        if request.search_after:
            cursor = request.search_after[0]
            if request.ascending:
                candidates = [c for c in candidates if c[0].get(key, "") > cursor]
            else:
                candidates = [c for c in candidates if c[0].get(key, "") < cursor]

        hits = [
            SearchHit(source=source, sort=[doc.get(key)])
            for doc, source in candidates[:request.size]
        ]
        return SearchResult(
            hits=hits,
            total=total if request.track_total_hits else None,
        )

    async def ping(self) -> bool:
        return True

    async def count(self, target: str) -> int:
        """Number of documents readable through a target."""
        async with self._lock:
            return sum(len(self._partitions.get(n, {})) for n in self._resolve(target))
