"""
Storage Port Interfaces

Abstract base classes defining the search backend contract for the trace store.
All backend APIs are async. No sync network/DB calls allowed.

These ports follow the hexagonal architecture pattern:
- TraceStore depends only on these interfaces
- Adapters (in-memory, SQLAlchemy, Elasticsearch) implement them
- The backend is injected via dependency inversion

The capability is deliberately small: a batched write and a search.
Anything richer (index rollover, cluster topology) is outside the store.

Thread-safety: All implementations must be safe for concurrent async usage.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gwtrace.query.filters import BoolFilter


# =============================================================================
# Write intents
# =============================================================================

@dataclass
class IndexIntent:
    """
    A single write-intent inside a bulk request.

    The document is the full serialized trace (wire field names) and is
    stored as-is; backends must not reshape it.
    """
    document: dict[str, Any]

    @property
    def doc_id(self) -> str | None:
        return self.document.get("id")


@dataclass
class BulkItemFailure:
    """Per-item rejection reported by a bulk write."""
    position: int
    doc_id: str | None
    reason: str


@dataclass
class BulkWriteResult:
    """
    Outcome of a bulk write.

    Items not listed in `failures` were durably written.
    """
    took_items: int
    failures: list[BulkItemFailure] = field(default_factory=list)

    @property
    def errors(self) -> bool:
        return bool(self.failures)


# =============================================================================
# Search
# =============================================================================

@dataclass
class SearchRequest:
    """
    Backend-neutral search request.

    Attributes:
        target: Alias or table to read from
        criteria: Filter tree produced by the query translator
        sort_field: Field to sort on (always the temporal id for traces)
        ascending: Sort direction
        size: Maximum number of hits to return
        search_after: Seek-past values from a previous page (sort values of
            the last seen hit), never a numeric offset
        track_total_hits: Also compute the exact number of matches
    """
    target: str
    criteria: BoolFilter
    sort_field: str = "id"
    ascending: bool = False
    size: int = 10
    search_after: list[Any] | None = None
    track_total_hits: bool = False


@dataclass
class SearchHit:
    """
    A raw hit as returned by the backend.

    `source` is whatever the backend holds for the document: a dict for a
    JSON-native store, or an encoded JSON string/bytes. Decoding is the
    caller's responsibility.
    """
    source: Any
    sort: list[Any] | None = None


@dataclass
class SearchResult:
    """Raw hits plus the exact match count when it was requested."""
    hits: list[SearchHit]
    total: int | None = None


# =============================================================================
# Search Backend
# =============================================================================

class SearchBackend(ABC):
    """
    Storage interface for the search-indexed trace backend.

    Implementations may partially fail a bulk write; they report that through
    BulkWriteResult.failures and never roll back written items.
    """

    @abstractmethod
    async def bulk_write(
        self,
        target: str,
        intents: list[IndexIntent]
    ) -> BulkWriteResult:
        """
        Write a batch of documents in a single operation.

        Args:
            target: Write alias / table
            intents: One intent per document

        Returns:
            Result listing any per-item failures

        Raises:
            Exception: Backend-specific errors if the request as a whole failed
        """
        ...

    @abstractmethod
    async def search(self, request: SearchRequest) -> SearchResult:
        """
        Execute a search.

        Args:
            request: Criteria, ordering, size and cursor

        Returns:
            Raw hits in the requested order

        Raises:
            Exception: Backend-specific errors
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """
        Check that the backend is reachable.

        Returns:
            True if the backend answered
        """
        ...

    async def close(self) -> None:
        """
        Release connections.

        Called during shutdown.
        """
        pass


# =============================================================================
# Exceptions
# =============================================================================

class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class InitializationError(StorageError):
    """Backend unreachable at startup."""
    pass


class BatchCountMismatch(StorageError):
    """Number of built write-intents differs from the number of records."""
    pass


class BulkWriteFailed(StorageError):
    """
    One or more items of a bulk write were rejected, or the request failed.

    Items that were written are not rolled back. Per-item reasons are kept in
    `failures` for diagnostics only.
    """

    def __init__(self, message: str, failures: list[BulkItemFailure] | None = None):
        super().__init__(message)
        self.failures = failures or []


class QueryExecutionFailed(StorageError):
    """The backend failed to execute a search."""
    pass


class DecodeFailed(StorageError):
    """A search hit could not be decoded as a trace."""
    pass


class StorageTimeout(StorageError):
    """A store call exceeded its request deadline."""
    pass
