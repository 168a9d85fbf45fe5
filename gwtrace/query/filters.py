"""
Backend Filter Tree

Backend-neutral search criteria produced by the query translator.

The tree mirrors the small subset of search primitives the trace store needs:
- TermFilter: exact match on a keyword field
- TermsFilter: membership in a set of keyword values (logical OR)
- RangeFilter: inclusive bounds on a numeric field, either side open
- BoolFilter: logical AND of scoring (`must`) and non-scoring (`filter`) clauses

Adapters render or evaluate the tree: Elasticsearch via to_query_dsl(),
SQLAlchemy as WHERE clauses, the in-memory store by direct evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class TermFilter:
    field: str
    value: Any


@dataclass(frozen=True)
class TermsFilter:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class RangeFilter:
    """Inclusive range. A None bound is open."""
    field: str
    gte: int | None = None
    lte: int | None = None


Clause = Union[TermFilter, TermsFilter, RangeFilter]


@dataclass(frozen=True)
class BoolFilter:
    """
    Conjunction of clauses.

    `must` and `filter` are both ANDed; the split only matters to backends
    that score (filter context skips scoring and is cacheable).
    """
    must: tuple[Clause, ...] = field(default_factory=tuple)
    filter: tuple[Clause, ...] = field(default_factory=tuple)

    @property
    def clauses(self) -> tuple[Clause, ...]:
        return self.must + self.filter

    def is_empty(self) -> bool:
        return not self.must and not self.filter


def clause_to_dsl(clause: Clause) -> dict[str, Any]:
    """Render one clause as Elasticsearch query DSL."""
    if isinstance(clause, TermFilter):
        return {"term": {clause.field: clause.value}}
    if isinstance(clause, TermsFilter):
        return {"terms": {clause.field: list(clause.values)}}
    if isinstance(clause, RangeFilter):
        bounds: dict[str, int] = {}
        if clause.gte is not None:
            bounds["gte"] = clause.gte
        if clause.lte is not None:
            bounds["lte"] = clause.lte
        return {"range": {clause.field: bounds}}
    raise TypeError(f"Unsupported filter clause: {clause!r}")


def to_query_dsl(criteria: BoolFilter) -> dict[str, Any]:
    """
    Render a filter tree as an Elasticsearch bool query.

    An empty tree renders as match_all.
    """
    if criteria.is_empty():
        return {"match_all": {}}

    body: dict[str, Any] = {}
    if criteria.must:
        body["must"] = [clause_to_dsl(c) for c in criteria.must]
    if criteria.filter:
        body["filter"] = [clause_to_dsl(c) for c in criteria.filter]
    return {"bool": body}
