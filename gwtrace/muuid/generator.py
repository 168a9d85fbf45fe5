"""
Temporal Unique Identifier Generator

16-byte identifiers that sort by creation time:

    bytes 0-5    ms since epoch, 48-bit big-endian
    bytes 6-11   node identity (MAC of a configured interface), fixed per generator
    bytes 12-15  4-bit instance tag | 28-bit per-millisecond sequence

Identifiers from one generator are non-decreasing when compared as raw bytes
or as their lower-case hex strings, so the id doubles as primary key, sort key
and pagination cursor.

The sequence restarts at 0 on every new millisecond and wraps silently after
2**28 ids within the same millisecond; nothing guards against that.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import psutil


logger = logging.getLogger(__name__)

ID_BYTES = 16
NODE_ID_BYTES = 6
INSTANCE_BITS = 4
SEQUENCE_BITS = 28
MAX_INSTANCE_ID = (1 << INSTANCE_BITS) - 1
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1


class NodeIdentityUnavailable(Exception):
    """The configured node identity source could not be resolved."""
    pass


class MUUID(bytes):
    """A 16-byte temporal identifier. str() is the lower-case hex form."""

    def __new__(cls, value: bytes):
        if len(value) != ID_BYTES:
            raise ValueError(f"MUUID must be {ID_BYTES} bytes, got {len(value)}")
        return super().__new__(cls, value)

    @classmethod
    def from_hex(cls, text: str) -> MUUID:
        return cls(bytes.fromhex(text))

    def __str__(self) -> str:
        return self.hex()

    def __repr__(self) -> str:
        return f"MUUID('{self.hex()}')"

    @property
    def timestamp_ms(self) -> int:
        return int.from_bytes(self[0:6], "big")

    @property
    def node_id(self) -> bytes:
        return bytes(self[6:12])

    @property
    def instance_id(self) -> int:
        return self[12] >> 4

    @property
    def sequence(self) -> int:
        return int.from_bytes(self[12:16], "big") & SEQUENCE_MASK


def timestamp_from_id(id_str: str) -> int:
    """Generation time (ms since epoch) embedded in an identifier string."""
    return MUUID.from_hex(id_str).timestamp_ms


def mac_address(interface: str) -> bytes:
    """
    Hardware address of a network interface.

    Raises:
        NodeIdentityUnavailable: If the interface is missing or has no MAC
    """
    try:
        addresses = psutil.net_if_addrs()
    except OSError as e:
        raise NodeIdentityUnavailable(f"Could not list network interfaces: {e}") from e

    for addr in addresses.get(interface, []):
        if addr.family == psutil.AF_LINK and addr.address:
            raw = bytes.fromhex(addr.address.replace(":", "").replace("-", ""))
            if len(raw) == NODE_ID_BYTES:
                return raw

    raise NodeIdentityUnavailable(
        f"Could not retrieve a MAC address from interface '{interface}'"
    )


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class MUUIDGenerator:
    """
    Lock-guarded identifier generator.

    Create one per process and pass it to the code that assigns ids. The lock
    covers only the timestamp/sequence assignment.
    """

    def __init__(
        self,
        node_id: bytes,
        instance_id: int = 0,
        clock: Callable[[], int] = _now_ms,
    ):
        if len(node_id) != NODE_ID_BYTES:
            raise ValueError(f"node_id must be {NODE_ID_BYTES} bytes, got {len(node_id)}")
        if not 0 <= instance_id <= MAX_INSTANCE_ID:
            raise ValueError(f"instance_id must be between 0 and {MAX_INSTANCE_ID}")

        self._node_id = bytes(node_id)
        self._instance_id = instance_id
        self._clock = clock
        self._last_ms = -1
        self._sequence = 0
        self._lock = threading.Lock()

    @classmethod
    def from_interface(cls, interface: str, instance_id: int = 0) -> MUUIDGenerator:
        """
        Build a generator whose node identity is the MAC of `interface`.

        Raises:
            NodeIdentityUnavailable: If the interface cannot be resolved
        """
        node_id = mac_address(interface)
        logger.info(
            f"Identifier generator using interface {interface} "
            f"({node_id.hex(':')}), instance {instance_id}"
        )
        return cls(node_id, instance_id=instance_id)

    @property
    def node_id(self) -> bytes:
        return self._node_id

    @property
    def instance_id(self) -> int:
        return self._instance_id

    def next(self) -> MUUID:
        """Issue the next identifier."""
        with self._lock:
            now = self._clock()
            # A clock stepping backwards keeps the last millisecond
            if now <= self._last_ms:
                self._sequence = (self._sequence + 1) & SEQUENCE_MASK
            else:
                self._sequence = 0
                self._last_ms = now
            ms = self._last_ms
            sequence = self._sequence

        tail = (self._instance_id << SEQUENCE_BITS) | sequence
        return MUUID(
            ms.to_bytes(6, "big") + self._node_id + tail.to_bytes(4, "big")
        )
