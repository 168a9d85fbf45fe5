#!/usr/bin/env python3
"""
Trace Store Demo Script

Walks a posted trace body through ingestion, storage and paginated search.

Usage:
    python scripts/demo_trace_store.py
    GWTRACE_BACKEND_URL=sqlite:///./traces.db python scripts/demo_trace_store.py

This script:
1. Builds a trace store from GWTRACE_* settings (in-memory by default)
2. Ingests a batch of traces for two devices
3. Pages through one device's traces with the after cursor
4. Shows the empty page returned for an out-of-range time filter
"""

import asyncio
import json
import logging
import sys

# Add project root to path
sys.path.insert(0, ".")

from gwtrace.logging_config import setup_logging
from gwtrace.muuid.generator import MUUIDGenerator
from gwtrace.query.params import parse_query_params
from gwtrace.storage.factory import create_trace_store, settings_from_env
from gwtrace.storage.ports import StorageError
from gwtrace.trace.ingest import IngestError, ingest_body
from gwtrace.trace.models import MAX_TIMESTAMP, TraceQuery


logger = logging.getLogger("demo_trace_store")

ACCOUNT = "acct-demo"

# Locally administered MAC so the demo runs without a real interface
DEMO_NODE_ID = bytes.fromhex("020000000001")


def sample_body(count: int) -> str:
    return json.dumps([
        {
            "timestamp": f"2023-01-01T00:00:{i:02d}Z",
            "type": "boot" if i % 3 == 0 else "heartbeat",
            "trace": {"seq": i, "uptime_s": i * 10},
        }
        for i in range(count)
    ])


async def demo_ingest(store, generator):
    """Ingest traces for two gateways."""
    logger.info("=" * 60)
    logger.info("Demo: Ingest")
    logger.info("=" * 60)

    for device_id, count in (("gw-001", 7), ("gw-002", 3)):
        traces = ingest_body(sample_body(count), device_id, ACCOUNT, generator)
        await store.add(traces)
        logger.info(f"Stored {len(traces)} traces for {device_id}")

    try:
        ingest_body(sample_body(1), "", ACCOUNT, generator)
    except IngestError as e:
        logger.info(f"Rejected as expected: {e} (field={e.field})")


async def demo_paging(store, ctx):
    """Page through one device's traces."""
    logger.info("=" * 60)
    logger.info("Demo: Paging")
    logger.info("=" * 60)

    params = {"limit": "3", "order": "asc", "include": "total_count"}
    pages = 0
    while True:
        query, include = parse_query_params(params, ACCOUNT, devices=["gw-001"])
        page = await store.search(query, include_total_count=include, ctx=ctx)
        pages += 1

        logger.info(
            f"Page {pages}: {[r.trace['seq'] for r in page.data]} "
            f"(has_more={page.has_more}, total_count={page.total_count})"
        )
        if not page.has_more:
            break
        params["after"] = page.data[-1].id


async def demo_out_of_range(store, ctx):
    """A lower bound past the supported range never reaches the backend."""
    logger.info("=" * 60)
    logger.info("Demo: Out-of-range filter")
    logger.info("=" * 60)

    query = TraceQuery(account_id=ACCOUNT, after=MAX_TIMESTAMP + 1)
    page = await store.search(query, include_total_count=True, ctx=ctx)
    logger.info(json.dumps(page.to_dict()))


async def main():
    """Run the demo."""
    setup_logging()
    settings = settings_from_env()
    generator = MUUIDGenerator(DEMO_NODE_ID, instance_id=settings.instance_id)

    try:
        store = await create_trace_store(settings)
    except StorageError as e:
        logger.error(f"Could not start the trace store: {e}")
        sys.exit(1)

    ctx = settings.context(request_id="demo", account_id=ACCOUNT)
    try:
        await demo_ingest(store, generator)
        await demo_paging(store, ctx)
        await demo_out_of_range(store, ctx)
    except StorageError as e:
        logger.error(f"Store call failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await store.backend.close()


if __name__ == "__main__":
    asyncio.run(main())
