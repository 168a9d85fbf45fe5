"""Tests for trace body ingestion."""

from unittest.mock import MagicMock

import pytest

from gwtrace.muuid.generator import MUUIDGenerator
from gwtrace.trace.ingest import (
    IngestError,
    build_traces,
    ingest_body,
    parse_post_body,
    parse_timestamp,
)
from gwtrace.trace.models import MAX_TIMESTAMP

from conftest import BASE_TS, NODE_ID


class TestParseBody:
    def test_array_of_traces(self):
        posts = parse_post_body(
            b'[{"timestamp": "2023-01-01T00:00:00Z", "type": "boot", "trace": {"k": "v"}},'
            b' {"timestamp": "2023-01-01T00:00:01Z"}]'
        )

        assert len(posts) == 2
        assert posts[0].type == "boot"
        assert posts[0].trace == {"k": "v"}
        assert posts[1].type == ""
        assert posts[1].trace == {}

    @pytest.mark.parametrize("body", [
        "not json",
        '{"timestamp": "2023-01-01T00:00:00Z"}',
        '[{"timestamp": "2023-01-01T00:00:00Z", "extra": 1}]',
        '[{"trace": {}}]',
    ])
    def test_rejected_bodies(self, body):
        with pytest.raises(IngestError):
            parse_post_body(body)


class TestTimestamp:
    def test_offsets_are_normalized(self):
        assert parse_timestamp("2023-01-01T00:00:00Z") == BASE_TS
        assert parse_timestamp("2023-01-01T02:00:00.250+02:00") == BASE_TS + 250

    def test_unparsable(self):
        with pytest.raises(IngestError) as exc_info:
            parse_timestamp("yesterday")
        assert exc_info.value.field == "timestamp"

    def test_missing_zone(self):
        with pytest.raises(IngestError):
            parse_timestamp("2023-01-01T00:00:00")

    def test_before_epoch(self):
        with pytest.raises(IngestError, match="not in range"):
            parse_timestamp("1969-12-31T23:59:59Z")

    def test_upper_bound_accepted(self):
        assert parse_timestamp("2262-04-11T23:47:16.854Z") == MAX_TIMESTAMP

    def test_beyond_upper_bound(self):
        with pytest.raises(IngestError, match="not in range") as exc_info:
            parse_timestamp("2262-04-11T23:47:16.855Z")
        assert exc_info.value.field == "timestamp"


class TestBuildTraces:
    def test_ids_and_cloud_timestamp(self, generator):
        traces = ingest_body(
            '[{"timestamp": "2023-01-01T00:00:00Z"}, {"timestamp": "2023-01-01T00:00:05Z"}]',
            device_id="d1",
            account_id="a1",
            generator=generator,
        )

        assert [t.timestamp for t in traces] == [BASE_TS, BASE_TS + 5000]
        assert traces[0].id < traces[1].id
        for trace in traces:
            assert len(trace.id) == 32
            assert trace.cloud_timestamp == int(trace.id[:12], 16)
            assert trace.device_id == "d1"
            assert trace.account_id == "a1"

    def test_empty_device_consumes_no_ids(self):
        generator = MagicMock(spec=MUUIDGenerator)
        posts = parse_post_body('[{"timestamp": "2023-01-01T00:00:00Z"}]')

        with pytest.raises(IngestError) as exc_info:
            build_traces(posts, device_id="", account_id="a1", generator=generator)

        assert exc_info.value.field == "device_id"
        generator.next.assert_not_called()

    def test_bad_timestamp_consumes_no_ids(self):
        generator = MagicMock(spec=MUUIDGenerator)
        posts = parse_post_body(
            '[{"timestamp": "2023-01-01T00:00:00Z"}, {"timestamp": "nope"}]'
        )

        with pytest.raises(IngestError):
            build_traces(posts, device_id="d1", account_id="a1", generator=generator)

        generator.next.assert_not_called()

    def test_empty_batch(self, generator):
        assert build_traces([], device_id="d1", account_id="a1", generator=generator) == []

    def test_node_identity_in_ids(self, generator):
        (trace,) = ingest_body(
            '[{"timestamp": "2023-01-01T00:00:00Z"}]',
            device_id="d1",
            account_id="a1",
            generator=generator,
        )
        assert bytes.fromhex(trace.id)[6:12] == NODE_ID
