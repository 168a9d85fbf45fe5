"""
SQLAlchemy Models for Trace Storage

Async-compatible SQLAlchemy 2.0 ORM model for trace documents.

Designed to work with:
- SQLite (via aiosqlite)
- PostgreSQL (via asyncpg)

The filterable fields are real indexed columns; the complete document is
kept alongside in a JSON column and returned untouched as the hit source.

JSON column handling:
- PostgreSQL: Native JSONB
- SQLite: TEXT with JSON serialization
"""

import json
from typing import Any

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


# =============================================================================
# Custom Types
# =============================================================================

class JSONType(TypeDecorator):
    """
    Platform-agnostic JSON column.

    Uses JSONB on PostgreSQL, TEXT+JSON elsewhere.
    """
    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        if isinstance(value, str):
            return json.loads(value)
        return value


# =============================================================================
# Base
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Trace Document Model
# =============================================================================

class TraceDocumentModel(Base):
    """
    One stored device trace.

    `partition` is the write target the document went to; search aliases
    resolve to one or more partitions.
    """
    __tablename__ = "gw_device_traces"

    partition: Mapped[str] = mapped_column(String(255), primary_key=True)
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    source: Mapped[dict[str, Any]] = mapped_column(JSONType(), nullable=False)

    __table_args__ = (
        Index("ix_gw_device_traces_account_id", "account_id", "id"),
        Index("ix_gw_device_traces_device_id", "device_id", "id"),
        Index("ix_gw_device_traces_timestamp", "timestamp"),
    )
