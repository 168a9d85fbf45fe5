"""
Storage Factory

Environment-based configuration and factory for the trace store.
Returns a TraceStore wired to the backend selected by the settings.

Supported backends:
- memory: In-memory search backend (development/testing)
- sqlite: SQLite with aiosqlite (single-node)
- postgresql: PostgreSQL with asyncpg
- elasticsearch: Elasticsearch cluster (production search index)

Usage:
    # From environment
    store = await create_trace_store_from_env()

    # From settings
    settings = StoreSettings(backend_url="http://localhost:9200")
    store = await create_trace_store(settings)
    generator = create_generator(settings)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum

from gwtrace.muuid.generator import MUUIDGenerator
from gwtrace.storage.memory import InMemorySearchBackend
from gwtrace.storage.ports import InitializationError, SearchBackend
from gwtrace.trace.models import DEFAULT_TIMEOUT_SECONDS, RequestContext
from gwtrace.trace.store import TraceStore


logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Supported search backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    ELASTICSEARCH = "elasticsearch"


@dataclass
class StoreSettings:
    """
    Configuration for the trace store.

    Attributes:
        backend: Backend type
        backend_url: Elasticsearch URL or SQLAlchemy connection URL
        search_alias: Read target (spans every partition)
        active_alias: Write target
        pool_size: Connection pool size for SQL
        pool_max_overflow: Max overflow for connection pool
        echo_sql: Whether to log SQL queries
        create_tables: Whether to auto-create tables on startup
        es_refresh: Refresh policy for Elasticsearch bulk writes
        uuid_interface: Network interface whose MAC is the id node identity
        instance_id: 4-bit instance tag embedded in ids
        request_timeout: Default deadline for store calls, in seconds
        log_level: Root log level
    """
    backend: StorageBackend = StorageBackend.MEMORY
    backend_url: str | None = None
    search_alias: str = "device-trace-search"
    active_alias: str = "device-trace-active"
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo_sql: bool = False
    create_tables: bool = True
    es_refresh: str | None = None
    uuid_interface: str = "eth0"
    instance_id: int = 1
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS
    log_level: str = "INFO"

    @property
    def aliases(self) -> dict[str, list[str]]:
        """Alias map for backends that emulate aliases."""
        return {self.search_alias: [self.active_alias]}

    def context(self, request_id: str = "", account_id: str = "") -> RequestContext:
        """Request context carrying the configured deadline."""
        return RequestContext(
            request_id=request_id,
            account_id=account_id,
            timeout=self.request_timeout,
        )


def _parse_backend_url(url: str) -> StorageBackend:
    """Determine backend from URL."""
    if url.startswith("sqlite"):
        return StorageBackend.SQLITE
    elif url.startswith("postgresql") or url.startswith("postgres"):
        return StorageBackend.POSTGRESQL
    elif url.startswith("http://") or url.startswith("https://"):
        return StorageBackend.ELASTICSEARCH
    else:
        raise ValueError(f"Unsupported backend URL scheme: {url}")


def settings_from_env() -> StoreSettings:
    """
    Create StoreSettings from environment variables.

    Environment variables:
        GWTRACE_BACKEND: "memory", "sqlite", "postgresql", "elasticsearch"
        GWTRACE_BACKEND_URL: Elasticsearch or SQLAlchemy URL
        GWTRACE_SEARCH_ALIAS: Read alias
        GWTRACE_ACTIVE_ALIAS: Write alias
        GWTRACE_POOL_SIZE: Connection pool size
        GWTRACE_POOL_MAX_OVERFLOW: Connection pool overflow
        GWTRACE_ECHO_SQL: "true" to log SQL
        GWTRACE_CREATE_TABLES: "false" to disable table creation
        GWTRACE_ES_REFRESH: Refresh policy for bulk writes
        GWTRACE_UUID_INTERFACE: Interface for id node identity
        GWTRACE_INSTANCE_ID: Instance tag (0-15)
        GWTRACE_TIMEOUT: Request deadline in seconds
        GWTRACE_LOG_LEVEL: Log level
    """
    backend_url = os.getenv("GWTRACE_BACKEND_URL")
    backend_str = os.getenv("GWTRACE_BACKEND", "memory")

    # Auto-detect backend from URL if provided
    if backend_url and backend_str == "memory":
        backend = _parse_backend_url(backend_url)
    else:
        backend = StorageBackend(backend_str)

    defaults = StoreSettings()
    return StoreSettings(
        backend=backend,
        backend_url=backend_url,
        search_alias=os.getenv("GWTRACE_SEARCH_ALIAS", defaults.search_alias),
        active_alias=os.getenv("GWTRACE_ACTIVE_ALIAS", defaults.active_alias),
        pool_size=int(os.getenv("GWTRACE_POOL_SIZE", "5")),
        pool_max_overflow=int(os.getenv("GWTRACE_POOL_MAX_OVERFLOW", "10")),
        echo_sql=os.getenv("GWTRACE_ECHO_SQL", "").lower() == "true",
        create_tables=os.getenv("GWTRACE_CREATE_TABLES", "true").lower() != "false",
        es_refresh=os.getenv("GWTRACE_ES_REFRESH") or None,
        uuid_interface=os.getenv("GWTRACE_UUID_INTERFACE", defaults.uuid_interface),
        instance_id=int(os.getenv("GWTRACE_INSTANCE_ID", "1")),
        request_timeout=float(os.getenv("GWTRACE_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))),
        log_level=os.getenv("GWTRACE_LOG_LEVEL", "INFO"),
    )


def _async_database_url(settings: StoreSettings) -> str:
    """Ensure the async driver is in the URL."""
    url = settings.backend_url or ""
    if settings.backend == StorageBackend.SQLITE:
        if "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://")
    elif settings.backend == StorageBackend.POSTGRESQL:
        if "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://")
            url = url.replace("postgres://", "postgresql+asyncpg://")
    return url


async def create_backend(settings: StoreSettings) -> SearchBackend:
    """
    Create the search backend selected by the settings.

    Raises:
        ValueError: If settings are invalid
    """
    if settings.backend == StorageBackend.MEMORY:
        return InMemorySearchBackend(aliases=settings.aliases)

    if not settings.backend_url:
        raise ValueError(f"backend_url required for backend {settings.backend.value}")

    if settings.backend == StorageBackend.ELASTICSEARCH:
        from gwtrace.storage.elasticsearch import create_elasticsearch_backend

        return create_elasticsearch_backend(settings.backend_url, refresh=settings.es_refresh)

    from gwtrace.storage.sqlalchemy import create_sqlalchemy_backend

    engine_kwargs = {}
    if settings.backend == StorageBackend.POSTGRESQL:
        engine_kwargs = {
            "pool_size": settings.pool_size,
            "max_overflow": settings.pool_max_overflow,
        }
    return await create_sqlalchemy_backend(
        _async_database_url(settings),
        aliases=settings.aliases,
        echo=settings.echo_sql,
        create_tables=settings.create_tables,
        **engine_kwargs,
    )


async def create_trace_store(settings: StoreSettings) -> TraceStore:
    """
    Create a trace store and check the backend is reachable.

    Raises:
        InitializationError: If the backend cannot be created or does not answer
    """
    try:
        backend = await create_backend(settings)
    except Exception as e:
        logger.error(f"Failed to initialize the {settings.backend.value} backend: {e}", exc_info=True)
        raise InitializationError(f"Failed to initialize the {settings.backend.value} backend") from e

    try:
        reachable = await backend.ping()
    except Exception as e:
        logger.error(f"Backend ping failed: {e}", exc_info=True)
        reachable = False

    if not reachable:
        await backend.close()
        raise InitializationError(
            f"The {settings.backend.value} backend at {settings.backend_url} is unreachable"
        )

    logger.info(
        f"Trace store ready on {settings.backend.value} "
        f"(search={settings.search_alias}, active={settings.active_alias})"
    )
    return TraceStore(
        backend,
        search_alias=settings.search_alias,
        active_alias=settings.active_alias,
    )


async def create_trace_store_from_env() -> TraceStore:
    """
    Create a trace store from environment variables.

    Convenience function that combines settings_from_env() and create_trace_store().
    """
    return await create_trace_store(settings_from_env())


def create_generator(settings: StoreSettings) -> MUUIDGenerator:
    """
    Create the process-wide id generator.

    Raises:
        NodeIdentityUnavailable: If the configured interface has no MAC
    """
    return MUUIDGenerator.from_interface(settings.uuid_interface, instance_id=settings.instance_id)


# Convenience for quick setup
async def create_memory_store() -> TraceStore:
    """Create an in-memory trace store (for testing)."""
    return await create_trace_store(StoreSettings(backend=StorageBackend.MEMORY))


async def create_sqlite_store(path: str, create_tables: bool = True) -> TraceStore:
    """Create a SQLite-backed trace store."""
    return await create_trace_store(StoreSettings(
        backend=StorageBackend.SQLITE,
        backend_url=f"sqlite+aiosqlite:///{path}",
        create_tables=create_tables,
    ))
