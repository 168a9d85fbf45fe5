# Temporal identifiers
# Time-ordered ids used as primary key, sort key and cursor

from gwtrace.muuid.generator import (
    MUUID,
    MUUIDGenerator,
    NodeIdentityUnavailable,
    mac_address,
    timestamp_from_id,
)

__all__ = [
    "MUUID",
    "MUUIDGenerator",
    "NodeIdentityUnavailable",
    "mac_address",
    "timestamp_from_id",
]
