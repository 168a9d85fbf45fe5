"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gwtrace.muuid.generator import MUUIDGenerator
from gwtrace.storage.memory import InMemorySearchBackend
from gwtrace.trace.models import Trace
from gwtrace.trace.store import TraceStore


SEARCH_ALIAS = "device-trace-search"
ACTIVE_ALIAS = "device-trace-active"
NODE_ID = bytes.fromhex("0242ac110002")

# 2023-01-01T00:00:00Z
BASE_TS = 1672531200000


@pytest.fixture
def generator():
    """Id generator with a fixed node identity."""
    return MUUIDGenerator(NODE_ID, instance_id=1)


@pytest.fixture
def backend():
    """In-memory backend with the search alias spanning the active partition."""
    return InMemorySearchBackend(aliases={SEARCH_ALIAS: [ACTIVE_ALIAS]})


@pytest.fixture
def store(backend):
    """TraceStore over the in-memory backend."""
    return TraceStore(backend, search_alias=SEARCH_ALIAS, active_alias=ACTIVE_ALIAS)


@pytest.fixture
def make_traces(generator):
    """Build n traces with fresh ids, one second apart."""

    def _make(
        n: int,
        device_id: str = "d1",
        account_id: str = "a1",
        type: str = "x",
        start: int = BASE_TS,
    ) -> list[Trace]:
        traces = []
        for i in range(n):
            muuid = generator.next()
            traces.append(Trace(
                id=str(muuid),
                device_id=device_id,
                account_id=account_id,
                timestamp=start + i * 1000,
                cloud_timestamp=muuid.timestamp_ms,
                trace={"seq": i, "payload": {"level": "info", "tags": ["a", "b"]}},
                type=type,
            ))
        return traces

    return _make
