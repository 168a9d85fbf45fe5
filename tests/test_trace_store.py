"""Tests for TraceStore over the in-memory backend."""

import asyncio

import pytest

from gwtrace.storage.memory import InMemorySearchBackend
from gwtrace.storage.ports import (
    BatchCountMismatch,
    BulkWriteFailed,
    DecodeFailed,
    IndexIntent,
    QueryExecutionFailed,
    StorageTimeout,
)
from gwtrace.trace.ingest import ingest_body
from gwtrace.trace.models import (
    MAX_TIMESTAMP,
    Order,
    RequestContext,
    Trace,
    TraceQuery,
)
from gwtrace.trace.store import TraceStore

from conftest import ACTIVE_ALIAS, BASE_TS, SEARCH_ALIAS


class FailingBackend(InMemorySearchBackend):
    """Backend whose calls raise."""

    async def bulk_write(self, target, intents):
        raise ConnectionError("connection refused")

    async def search(self, request):
        raise ConnectionError("connection refused")


class SlowBackend(InMemorySearchBackend):
    """Backend that never answers in time."""

    async def search(self, request):
        await asyncio.sleep(5)
        return await super().search(request)


class TestAdd:
    """Batched writes."""

    async def test_scenario_ingest_then_search(self, store, generator):
        body = '[{"timestamp": "2023-01-01T00:00:00Z", "type": "x", "trace": {"a": 1}}]'
        traces = ingest_body(body, device_id="d1", account_id="a1", generator=generator)

        await store.add(traces)
        page = await store.search(TraceQuery(account_id="a1"), include_total_count=True)

        assert page.total_count == 1
        assert page.data[0].device_id == "d1"
        assert page.data[0].timestamp == "2023-01-01T00:00:00.000Z"
        assert page.data[0].trace == {"a": 1}

    async def test_round_trip_preserves_fields(self, store, make_traces):
        traces = make_traces(3)
        await store.add(traces)

        page = await store.search(TraceQuery(account_id="a1", order=Order.ASC))

        assert [r.id for r in page.data] == [t.id for t in traces]
        for response, trace in zip(page.data, traces):
            assert response.device_id == trace.device_id
            assert response.account_id == trace.account_id
            assert response.type == trace.type
            assert response.trace == trace.trace
            assert response.object == "device-trace"

    async def test_display_fields_come_from_stored_timestamps(self, store):
        trace = Trace(
            id="00000000000102030405060000000001",
            device_id="d1",
            account_id="a1",
            timestamp=BASE_TS,
            cloud_timestamp=BASE_TS + 1234,
            trace={},
            type="x",
        )
        await store.add([trace])

        page = await store.search(TraceQuery(account_id="a1"))
        response = page.data[0]

        assert response.timestamp == "2023-01-01T00:00:00.000Z"
        assert response.created_at == "2023-01-01T00:00:01.234Z"
        assert response.etag == response.created_at

    async def test_empty_batch_makes_no_call(self, store, backend):
        await store.add([])
        assert backend.bulk_calls == 0

    async def test_count_mismatch_makes_no_call(self, store, backend, make_traces, monkeypatch):
        traces = make_traces(3)
        build = store._build_intents
        monkeypatch.setattr(store, "_build_intents", lambda ts: build(ts)[:-1])

        with pytest.raises(BatchCountMismatch):
            await store.add(traces)

        assert backend.bulk_calls == 0

    async def test_item_failure_fails_call_without_rollback(
        self, store, backend, make_traces, monkeypatch, caplog
    ):
        traces = make_traces(3)
        build = store._build_intents

        def with_malformed_first(ts):
            intents = build(ts)
            intents[0] = IndexIntent(document={"trace": {}})
            return intents

        monkeypatch.setattr(store, "_build_intents", with_malformed_first)

        with pytest.raises(BulkWriteFailed) as exc_info:
            await store.add(traces)

        assert [f.position for f in exc_info.value.failures] == [0]
        assert exc_info.value.failures[0].doc_id is None
        # The accepted items of the failed batch stay written
        assert await backend.count(SEARCH_ALIAS) == 2
        assert "document has no id" in caplog.text

    async def test_retry_after_partial_write_succeeds(self, store, backend, make_traces):
        traces = make_traces(4)
        await store.add(traces[:2])

        await store.add(traces)
        await store.add(traces)

        assert await backend.count(SEARCH_ALIAS) == 4
        page = await store.search(TraceQuery(account_id="a1"), include_total_count=True)
        assert page.total_count == 4

    async def test_resent_id_replaces_document(self, store, make_traces):
        (trace,) = make_traces(1)
        await store.add([trace])
        await store.add([trace.model_copy(update={"type": "corrected"})])

        page = await store.search(TraceQuery(id=trace.id), include_total_count=True)
        assert page.total_count == 1
        assert page.data[0].type == "corrected"

    async def test_backend_error_becomes_bulk_write_failed(self, make_traces):
        store = TraceStore(FailingBackend(), SEARCH_ALIAS, ACTIVE_ALIAS)

        with pytest.raises(BulkWriteFailed) as exc_info:
            await store.add(make_traces(1))

        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestSearch:
    """Paginated search."""

    async def test_over_fetch_sets_has_more(self, store, make_traces):
        await store.add(make_traces(5))

        page = await store.search(TraceQuery(account_id="a1", limit=4))
        assert page.has_more is True
        assert len(page.data) == 4

        page = await store.search(TraceQuery(account_id="a1", limit=5))
        assert page.has_more is False
        assert len(page.data) == 5

        page = await store.search(TraceQuery(account_id="a1", limit=10))
        assert page.has_more is False
        assert len(page.data) == 5

    async def test_cursor_paging_has_no_overlap(self, store, make_traces):
        traces = make_traces(5)
        await store.add(traces)

        first = await store.search(TraceQuery(account_id="a1", limit=2))
        assert len(first.data) == 2
        assert first.has_more is True
        assert first.after is None

        cursor = first.data[-1].id
        second = await store.search(TraceQuery(account_id="a1", limit=2, cursor=cursor))
        assert second.after == cursor
        assert second.has_more is True
        assert not {r.id for r in first.data} & {r.id for r in second.data}

        third = await store.search(
            TraceQuery(account_id="a1", limit=2, cursor=second.data[-1].id)
        )
        assert len(third.data) == 1
        assert third.has_more is False

        seen = [r.id for p in (first, second, third) for r in p.data]
        assert seen == sorted((t.id for t in traces), reverse=True)

    async def test_ascending_order(self, store, make_traces):
        traces = make_traces(3)
        await store.add(traces)

        page = await store.search(TraceQuery(order=Order.ASC))

        assert page.order == Order.ASC
        assert [r.id for r in page.data] == sorted(t.id for t in traces)

    async def test_filters(self, store, make_traces):
        await store.add(make_traces(2, device_id="d1", type="boot"))
        await store.add(make_traces(2, device_id="d2", type="crash"))
        await store.add(make_traces(2, device_id="d3", account_id="other"))

        page = await store.search(TraceQuery(account_id="a1", devices=["d1", "d2"]))
        assert {r.device_id for r in page.data} == {"d1", "d2"}
        assert len(page.data) == 4

        page = await store.search(TraceQuery(account_id="a1", type="crash"))
        assert {r.device_id for r in page.data} == {"d2"}

    async def test_single_id(self, store, make_traces):
        traces = make_traces(3)
        await store.add(traces)

        page = await store.search(TraceQuery(id=traces[1].id))
        assert [r.id for r in page.data] == [traces[1].id]

    async def test_time_range_is_inclusive(self, store, make_traces):
        await store.add(make_traces(5))

        page = await store.search(
            TraceQuery(after=BASE_TS + 1000, before=BASE_TS + 3000, order=Order.ASC),
            include_total_count=True,
        )

        assert page.total_count == 3
        assert [r.trace["seq"] for r in page.data] == [1, 2, 3]

    async def test_total_count_ignores_cursor_and_limit(self, store, make_traces):
        await store.add(make_traces(5))

        first = await store.search(TraceQuery(limit=2), include_total_count=True)
        second = await store.search(
            TraceQuery(limit=2, cursor=first.data[-1].id), include_total_count=True
        )

        assert first.total_count == 5
        assert second.total_count == 5

    async def test_lower_bound_beyond_max_short_circuits(self, store, backend):
        page = await store.search(
            TraceQuery(after=MAX_TIMESTAMP + 1, cursor="ab" * 16, limit=5, order=Order.ASC),
            include_total_count=True,
        )

        assert backend.search_calls == 0
        assert page.data == []
        assert page.has_more is False
        assert page.limit == 5
        assert page.order == Order.ASC
        assert page.after == "ab" * 16
        assert page.total_count == 0

    async def test_upper_bound_before_epoch_short_circuits(self, store, backend):
        page = await store.search(TraceQuery(before=-1))

        assert backend.search_calls == 0
        assert page.data == []
        assert page.total_count is None

    async def test_out_of_range_bounds_are_opened(self, store, make_traces):
        await store.add(make_traces(3))

        page = await store.search(TraceQuery(after=-5000, before=MAX_TIMESTAMP + 1))
        assert len(page.data) == 3

    async def test_undecodable_hit_fails_page(self, store, backend, make_traces):
        await store.add(make_traces(2))
        await backend.bulk_write(ACTIVE_ALIAS, [IndexIntent(document={
            "id": "f" * 32,
            "account_id": "a1",
            "device_id": "d1",
            "timestamp": "not a number",
        })])

        with pytest.raises(DecodeFailed):
            await store.search(TraceQuery(account_id="a1"))

    async def test_backend_error_becomes_query_failure(self):
        store = TraceStore(FailingBackend(), SEARCH_ALIAS, ACTIVE_ALIAS)

        with pytest.raises(QueryExecutionFailed):
            await store.search(TraceQuery())

    async def test_deadline(self):
        store = TraceStore(SlowBackend(), SEARCH_ALIAS, ACTIVE_ALIAS)

        with pytest.raises(StorageTimeout):
            await store.search(TraceQuery(), ctx=RequestContext(request_id="r1", timeout=0.01))

    async def test_concurrent_calls(self, store, make_traces):
        batches = [make_traces(3, device_id=f"d{i}") for i in range(5)]
        await asyncio.gather(*(store.add(b) for b in batches))

        pages = await asyncio.gather(*(
            store.search(TraceQuery(devices=[f"d{i}"])) for i in range(5)
        ))
        assert [len(p.data) for p in pages] == [3] * 5


class TestPageShape:
    """JSON shape of a page."""

    async def test_to_dict_without_total(self, store, make_traces):
        await store.add(make_traces(1))
        body = (await store.search(TraceQuery())).to_dict()

        assert body["object"] == "list"
        assert body["order"] == "DESC"
        assert body["has_more"] is False
        assert body["after"] is None
        assert "total_count" not in body
        assert set(body["data"][0]) == {
            "account_id", "device_id", "id", "object", "created_at",
            "etag", "timestamp", "trace", "type",
        }

    async def test_to_dict_with_total(self, store):
        body = (await store.search(TraceQuery(), include_total_count=True)).to_dict()
        assert body["total_count"] == 0
