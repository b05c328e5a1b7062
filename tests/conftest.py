import re
from typing import Any, Dict, List

import pytest

from milvus_dataplane.client.columnar import (
    FieldColumn,
    MutationResultData,
    QueryResultData,
    SearchIteratorInfo,
    SearchResultData,
)
from milvus_dataplane.client.constants import ITER_SEARCH_LAST_BOUND_KEY
from milvus_dataplane.client.schema import CollectionSchema, FieldSchema
from milvus_dataplane.client.transport import RequestKind, Transport
from milvus_dataplane.client.types import DataType
from milvus_dataplane.exceptions import MilvusException

_PK_BOUNDARY = re.compile(r"id > (-?\d+)")


def make_books_schema(**kwargs) -> CollectionSchema:
    return CollectionSchema(
        [
            FieldSchema("id", DataType.INT64, is_primary=True),
            FieldSchema("vec", DataType.FLOAT_VECTOR, dim=4),
            FieldSchema("title", DataType.VARCHAR, max_length=32, nullable=True),
            FieldSchema("year", DataType.INT64, default_value=2000),
        ],
        enable_dynamic_field=kwargs.get("enable_dynamic_field", True),
        collection_name="books",
    )


@pytest.fixture
def books_schema():
    return make_books_schema()


class FakeTransport(Transport):
    """In-memory collection behind the transport seam.

    Rows are kept in primary key order. Query requests honor ``id > N`` in the
    filter and the ``limit`` key; search requests return every row ordered by
    ascending ``distance`` field, paged by the last bound.
    """

    def __init__(self, schema: CollectionSchema, rows: List[Dict[str, Any]] = ()):
        self.schema = schema
        self.rows = sorted(rows, key=lambda r: r["id"])
        self.requests = []
        self.fail_next = 0
        self.session_ts = 4242

    def _maybe_fail(self):
        if self.fail_next > 0:
            self.fail_next -= 1
            raise MilvusException(message="transport unavailable")

    def execute(self, kind: RequestKind, request: Dict[str, Any]) -> Any:
        self.requests.append((kind, request))
        self._maybe_fail()
        if kind == RequestKind.DESCRIBE_COLLECTION:
            if request["collection_name"] != self.schema.collection_name:
                return None
            return self.schema.to_dict()
        if kind in (RequestKind.INSERT, RequestKind.UPSERT):
            pks = list(range(request["num_rows"]))
            res = MutationResultData(primary_keys=pks, timestamp=self.session_ts)
            if kind == RequestKind.INSERT:
                res.insert_count = request["num_rows"]
            else:
                res.upsert_count = request["num_rows"]
            return res
        if kind == RequestKind.DELETE:
            return MutationResultData(delete_count=1)
        if kind == RequestKind.QUERY:
            return self._query(request)
        if kind == RequestKind.SEARCH:
            return self._search(request)
        raise AssertionError(f"unexpected request kind {kind}")

    def _query(self, request):
        match = _PK_BOUNDARY.search(request.get("filter", ""))
        rows = self.rows
        if match:
            bound = int(match.group(1))
            rows = [r for r in rows if r["id"] > bound]
        limit = request.get("limit")
        if limit is not None:
            rows = rows[:limit]
        return QueryResultData(
            fields_data=[
                FieldColumn("id", DataType.INT64, [r["id"] for r in rows]),
                FieldColumn("title", DataType.VARCHAR, [r["title"] for r in rows], [True] * len(rows)),
            ],
            output_fields=["id", "title"],
            collection_name=request["collection_name"],
            session_ts=self.session_ts,
        )

    def _search(self, request):
        bound = request["search_params"].get(ITER_SEARCH_LAST_BOUND_KEY)
        hits = sorted(self.rows, key=lambda r: r["distance"])
        if bound is not None:
            hits = [r for r in hits if r["distance"] > bound]
        hits = hits[: request["search_params"]["topk"]]
        return SearchResultData(
            num_queries=1,
            top_k=request["search_params"]["topk"],
            topks=[len(hits)],
            ids=[r["id"] for r in hits],
            scores=[r["distance"] for r in hits],
            fields_data=[
                FieldColumn("title", DataType.VARCHAR, [r["title"] for r in hits], [True] * len(hits)),
            ],
            output_fields=["title"],
            primary_field_name="id",
            metric_type="L2",
            search_iterator_v2_results=SearchIteratorInfo(
                token="tok-1", last_bound=hits[-1]["distance"] if hits else 0.0
            ),
            session_ts=self.session_ts,
        )


@pytest.fixture
def ten_rows():
    return [{"id": i, "title": f"t{i}", "distance": 0.25 * i} for i in range(10)]


@pytest.fixture
def transport(books_schema, ten_rows):
    return FakeTransport(books_schema, ten_rows)


@pytest.fixture
def books_schema_factory():
    return make_books_schema
