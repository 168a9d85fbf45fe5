"""
SQLAlchemy Search Backend

Async SQLAlchemy 2.0 implementation of the search capability for relational
deployments.

Compatible with:
- SQLite (aiosqlite)
- PostgreSQL (asyncpg)

All operations are async. No sync DB calls.

Bulk writes are checked item by item before the upsert so that a malformed
document is reported as a per-item failure while the rest of the batch is
written, matching the partial-failure behaviour of a search index. A re-sent
id replaces the stored row, so callers can retry a whole batch.
"""

from typing import Any

from sqlalchemy import and_, func, select, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gwtrace.query.filters import (
    BoolFilter,
    Clause,
    RangeFilter,
    TermFilter,
    TermsFilter,
)
from gwtrace.storage.models import Base, TraceDocumentModel
from gwtrace.storage.ports import (
    BulkItemFailure,
    BulkWriteResult,
    IndexIntent,
    SearchBackend,
    SearchHit,
    SearchRequest,
    SearchResult,
)


_COLUMNS = {
    "id": TraceDocumentModel.id,
    "account_id": TraceDocumentModel.account_id,
    "device_id": TraceDocumentModel.device_id,
    "type": TraceDocumentModel.type,
    "timestamp": TraceDocumentModel.timestamp,
}


# =============================================================================
# Converters
# =============================================================================

def _column(field: str):
    try:
        return _COLUMNS[field]
    except KeyError:
        raise ValueError(f"Field '{field}' is not searchable") from None


def clause_to_sql(clause: Clause):
    """Render one filter clause as a SQL expression."""
    column = _column(clause.field)
    if isinstance(clause, TermFilter):
        return column == clause.value
    if isinstance(clause, TermsFilter):
        return column.in_(clause.values)
    if isinstance(clause, RangeFilter):
        conditions = []
        if clause.gte is not None:
            conditions.append(column >= clause.gte)
        if clause.lte is not None:
            conditions.append(column <= clause.lte)
        return and_(*conditions)
    raise TypeError(f"Unsupported filter clause: {clause!r}")


def criteria_to_sql(criteria: BoolFilter) -> list:
    return [clause_to_sql(c) for c in criteria.clauses]


def document_to_model(partition: str, document: dict[str, Any]) -> TraceDocumentModel:
    """
    Convert a trace document to a row.

    Raises:
        ValueError: If an indexed field is missing or has the wrong type
    """
    for name in ("id", "account_id", "device_id"):
        if not isinstance(document.get(name), str) or not document[name]:
            raise ValueError(f"field [{name}] must be a non-empty string")
    timestamp = document.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ValueError("field [timestamp] must be an integer")

    return TraceDocumentModel(
        partition=partition,
        id=document["id"],
        account_id=document["account_id"],
        device_id=document["device_id"],
        type=document.get("type") or "",
        timestamp=timestamp,
        source=document,
    )


# =============================================================================
# SQLAlchemy Search Backend
# =============================================================================

class SqlAlchemySearchBackend(SearchBackend):
    """
    SQLAlchemy implementation of the search backend.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aliases: dict[str, list[str]] | None = None,
        engine: AsyncEngine | None = None,
    ):
        self._session_factory = session_factory
        self._aliases = {k: list(v) for k, v in (aliases or {}).items()}
        self._engine = engine

    def _resolve(self, target: str) -> list[str]:
        return self._aliases.get(target, [target])

    async def bulk_write(
        self,
        target: str,
        intents: list[IndexIntent]
    ) -> BulkWriteResult:
        failures = []
        # Later items win over earlier ones with the same id, as with index actions
        rows: dict[str, TraceDocumentModel] = {}

        for position, intent in enumerate(intents):
            try:
                row = document_to_model(target, intent.document)
            except ValueError as e:
                failures.append(BulkItemFailure(position, intent.doc_id, f"failed to parse: {e}"))
                continue
            rows[row.id] = row

        if rows:
            async with self._session_factory() as session:
                async with session.begin():
                    for row in rows.values():
                        # merge() updates the stored row for (partition, id) or inserts it
                        await session.merge(row)

        return BulkWriteResult(took_items=len(intents) - len(failures), failures=failures)


    async def search(self, request: SearchRequest) -> SearchResult:
        async with self._session_factory() as session:
            conditions = [TraceDocumentModel.partition.in_(self._resolve(request.target))]
            conditions.extend(criteria_to_sql(request.criteria))

            total = None
            if request.track_total_hits:
                count_query = select(func.count()).select_from(TraceDocumentModel).where(
                    and_(*conditions)
                )
                total = (await session.execute(count_query)).scalar_one()

            sort_column = _column(request.sort_field)
            if request.search_after:
                cursor = request.search_after[0]
                if request.ascending:
                    conditions.append(sort_column > cursor)
                else:
                    conditions.append(sort_column < cursor)

            query = (
                select(TraceDocumentModel.source, sort_column)
                .where(and_(*conditions))
                .order_by(sort_column.asc() if request.ascending else sort_column.desc())
                .limit(request.size)
            )

            result = await session.execute(query)
            hits = [SearchHit(source=row[0], sort=[row[1]]) for row in result.all()]

            return SearchResult(hits=hits, total=total)

    async def ping(self) -> bool:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
            return True

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()


# =============================================================================
# Backend Factory
# =============================================================================

async def create_sqlalchemy_backend(
    database_url: str,
    aliases: dict[str, list[str]] | None = None,
    echo: bool = False,
    create_tables: bool = True,
    **engine_kwargs: Any,
) -> SqlAlchemySearchBackend:
    """
    Create a search backend with a SQLAlchemy engine.

    Args:
        database_url: Async database URL (e.g., "sqlite+aiosqlite:///./traces.db")
        aliases: Search alias -> partitions
        echo: Enable SQL logging
        create_tables: Auto-create tables if not exist

    Returns:
        Backend owning the engine (disposed on close())
    """
    engine = create_async_engine(database_url, echo=echo, **engine_kwargs)

    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return SqlAlchemySearchBackend(session_factory, aliases=aliases, engine=engine)
