# Storage Layer
# Pluggable search backends for the device trace store
#
# This module provides:
# - Port interfaces (ABCs) defining the backend capability
# - In-memory implementation for development/testing
# - SQLAlchemy implementation for relational persistence
# - Elasticsearch implementation for the production search index
#
# The settings/factory module (gwtrace.storage.factory) wires a backend into a
# TraceStore and is imported separately.

from .ports import (
    SearchBackend,
    IndexIntent,
    BulkItemFailure,
    BulkWriteResult,
    SearchRequest,
    SearchHit,
    SearchResult,
    StorageError,
    InitializationError,
    BatchCountMismatch,
    BulkWriteFailed,
    QueryExecutionFailed,
    DecodeFailed,
    StorageTimeout,
)
from .memory import InMemorySearchBackend

__all__ = [
    # Ports
    "SearchBackend",
    "IndexIntent",
    "BulkItemFailure",
    "BulkWriteResult",
    "SearchRequest",
    "SearchHit",
    "SearchResult",
    # Errors
    "StorageError",
    "InitializationError",
    "BatchCountMismatch",
    "BulkWriteFailed",
    "QueryExecutionFailed",
    "DecodeFailed",
    "StorageTimeout",
    # Adapters
    "InMemorySearchBackend",
]
