import pytest

from milvus_dataplane.client.constants import (
    GUARANTEE_TIMESTAMP,
    ITER_SEARCH_ID_KEY,
    ITER_SEARCH_LAST_BOUND_KEY,
    MAX_BATCH_SIZE,
)
from milvus_dataplane.client.iterator import (
    IteratorCursor,
    IteratorState,
    QueryIterator,
    SearchIterator,
    _PaginatedIterator,
    check_batch_size,
)
from milvus_dataplane.client.schema import CollectionSchema, FieldSchema
from milvus_dataplane.client.search_result import Hit
from milvus_dataplane.client.transport import RequestKind
from milvus_dataplane.client.types import DataType
from milvus_dataplane.exceptions import MilvusException, ParamError
from milvus_dataplane.settings import Config


def _query_iterator(transport, **kwargs):
    kwargs.setdefault("batch_size", 4)
    return QueryIterator(transport, transport.schema, "books", **kwargs)


def _search_iterator(transport, **kwargs):
    kwargs.setdefault("batch_size", 4)
    return SearchIterator(
        transport,
        transport.schema,
        "books",
        [[0.1, 0.2, 0.3, 0.4]],
        search_params={"metric_type": "L2"},
        **kwargs,
    )


class TestCheckBatchSize:
    def test_default(self):
        assert check_batch_size(None) == Config.ITERATOR_BATCH_SIZE

    @pytest.mark.parametrize("batch_size", [0, -1, 1.5, "10", True])
    def test_invalid(self, batch_size):
        with pytest.raises(ParamError):
            check_batch_size(batch_size)

    def test_capped(self):
        assert check_batch_size(MAX_BATCH_SIZE + 1) == MAX_BATCH_SIZE


class TestQueryIterator:
    def test_pages_in_pk_order(self, transport):
        it = _query_iterator(transport)
        batches = [it.advance(), it.advance(), it.advance()]
        assert [[r["id"] for r in b] for b in batches] == [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9]]
        assert it.state == IteratorState.EXHAUSTED
        assert it.cursor.exhausted
        assert it.cursor.emitted_total == 10
        assert it.cursor.last_returned_count == 2
        assert it.advance() == []
        assert len(transport.requests) == 3

    def test_every_request_asks_for_batch_size(self, transport):
        it = _query_iterator(transport, filter="year > 1")
        list(it)
        filters = [req["filter"] for _, req in transport.requests]
        assert filters == ["year > 1", "(year > 1) and id > 3", "(year > 1) and id > 7"]
        assert all(req["limit"] == 4 for _, req in transport.requests)
        assert all(req["iterator"] for _, req in transport.requests)

    def test_session_ts_is_pinned(self, transport):
        it = _query_iterator(transport)
        assert it.next_request()[GUARANTEE_TIMESTAMP] == 0
        it.advance()
        assert it.cursor.session_ts == transport.session_ts
        assert it.next_request()[GUARANTEE_TIMESTAMP] == transport.session_ts

    def test_filter_func(self, transport):
        it = _query_iterator(transport, filter_func=lambda row: row["id"] % 2 == 0)
        rows = list(it)
        assert [r["id"] for r in rows] == [0, 2, 4, 6, 8]
        assert it.state == IteratorState.EXHAUSTED

    def test_next_skips_empty_batches(self, transport):
        it = _query_iterator(transport, filter_func=lambda row: row["id"] >= 8)
        assert [r["id"] for r in it.next()] == [8, 9]
        assert it.next() == []

    def test_limit(self, transport):
        it = _query_iterator(transport, limit=6)
        assert len(it.advance()) == 4
        assert [r["id"] for r in it.advance()] == [4, 5]
        assert it.state == IteratorState.EXHAUSTED
        assert it.advance() == []
        assert len(transport.requests) == 2

    def test_limit_zero(self, transport):
        it = _query_iterator(transport, limit=0)
        assert it.advance() == []
        assert transport.requests == []

    def test_invalid_limit(self, transport):
        with pytest.raises(ParamError):
            _query_iterator(transport, limit=-2)

    def test_retry_after_failure_returns_same_rows(self, transport):
        it = _query_iterator(transport)
        it.advance()
        cursor = it.cursor
        request = it.next_request()
        transport.fail_next = 1
        with pytest.raises(MilvusException):
            it.advance()
        assert it.cursor == cursor
        assert it.state == IteratorState.READY
        assert [r["id"] for r in it.advance()] == [4, 5, 6, 7]
        assert transport.requests[-1] == (RequestKind.QUERY, request)
        assert transport.requests[-2] == (RequestKind.QUERY, request)

    def test_failing_filter_keeps_cursor(self, transport):
        def boom(row):
            raise RuntimeError("bad predicate")

        it = _query_iterator(transport, filter_func=boom)
        with pytest.raises(RuntimeError):
            it.advance()
        assert it.cursor == IteratorCursor()
        assert it.state == IteratorState.CREATED

    def test_close(self, transport):
        it = _query_iterator(transport)
        it.advance()
        it.close()
        assert it.state == IteratorState.CLOSED
        assert it.advance() == []
        assert list(it) == []

    def test_resume_from_cursor(self, transport):
        it = _query_iterator(transport)
        it.advance()
        resumed = _query_iterator(transport, cursor=it.cursor)
        assert [r["id"] for r in resumed.advance()] == [4, 5, 6, 7]

    def test_pk_added_to_output_fields(self, transport):
        it = _query_iterator(transport, output_fields=["title"])
        assert it.next_request()["output_fields"] == ["title", "id"]

    def test_offset_rejected(self, transport):
        with pytest.raises(ParamError):
            _query_iterator(transport, offset=3)


class TestSearchIterator:
    def test_pages_by_distance(self, transport):
        it = _search_iterator(transport)
        rows = list(it)
        assert [h.id for h in rows] == list(range(10))
        assert all(isinstance(h, Hit) for h in rows)
        assert len(transport.requests) == 3

    def test_bound_and_token_carried(self, transport):
        it = _search_iterator(transport)
        it.advance()
        request = it.next_request()
        assert request["search_params"][ITER_SEARCH_LAST_BOUND_KEY] == 0.75
        assert request["search_params"][ITER_SEARCH_ID_KEY] == "tok-1"
        assert request["search_params"]["topk"] == 4

    def test_filter_func_gets_hits(self, transport):
        it = _search_iterator(transport, filter_func=lambda hit: hit["title"] != "t1")
        assert [h.id for h in it.next()] == [0, 2, 3]

    def test_multiple_vectors_rejected(self, transport):
        with pytest.raises(ParamError):
            SearchIterator(transport, transport.schema, "books", [[0.1] * 4, [0.2] * 4], batch_size=4)

    def test_empty_vectors_rejected(self, transport):
        with pytest.raises(ParamError):
            SearchIterator(transport, transport.schema, "books", [], batch_size=4)


def test_varchar_boundary_keeps_slashes():
    schema = CollectionSchema(
        [
            FieldSchema("pk", DataType.VARCHAR, is_primary=True, max_length=64),
            FieldSchema("vec", DataType.FLOAT_VECTOR, dim=2),
        ],
        collection_name="docs",
    )
    it = QueryIterator(None, schema, "docs", batch_size=4, cursor=IteratorCursor(boundary="docs/a.md"))
    assert it.next_request()["filter"] == 'pk > "docs/a.md"'


def test_paginated_base_is_abstract(transport):
    with pytest.raises(TypeError):
        _PaginatedIterator(transport)
