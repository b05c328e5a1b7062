"""
Paginated iteration over query and search results.

The position of an iteration is an immutable ``IteratorCursor``. ``advance``
derives one request from the current cursor, and only once the transport call
and the row filtering succeeded is the next cursor committed, so a failed
``advance`` can be retried and re-issues the very same request.

Examples:
    >>> it = client.query_iterator("books", batch_size=100, filter="year > 2000")
    >>> while True:
    ...     rows = it.next()
    ...     if not rows:
    ...         break
    ...     handle(rows)
    >>> it.close()
"""

import abc
import copy
import dataclasses
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from milvus_dataplane.exceptions import ExceptionsMessage, ParamError, PrimaryKeyException
from milvus_dataplane.settings import Config

from .constants import (
    FILTER,
    GUARANTEE_TIMESTAMP,
    ITER_SEARCH_BATCH_SIZE_KEY,
    ITER_SEARCH_ID_KEY,
    ITER_SEARCH_LAST_BOUND_KEY,
    ITER_SEARCH_V2_KEY,
    ITERATOR_FIELD,
    MAX_BATCH_SIZE,
    MILVUS_LIMIT,
    OFFSET,
    REDUCE_STOP_FOR_BEST,
    UNLIMITED,
)
from .entity_helper import get_input_num_rows
from .prepare import Prepare
from .schema import CollectionSchema
from .search_result import Hits, QueryResult, SearchResult
from .transformers import Transformers
from .transport import RequestKind, Transport

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
RowFilter = Callable[[Row], bool]


class IteratorState(Enum):
    CREATED = "created"
    FETCHING = "fetching"
    READY = "ready"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


@dataclasses.dataclass(frozen=True)
class IteratorCursor:
    """Where an iteration stands.

    ``boundary`` is the last primary key seen (query) or the last distance
    bound reported by the server (search); None before the first batch.
    """

    boundary: Any = None
    token: str = ""
    session_ts: int = 0
    last_returned_count: int = 0
    emitted_total: int = 0
    exhausted: bool = False

    def advanced(self, **changes) -> "IteratorCursor":
        return dataclasses.replace(self, **changes)


def check_batch_size(batch_size: Optional[int]) -> int:
    if batch_size is None:
        batch_size = Config.ITERATOR_BATCH_SIZE
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise ParamError(message=ExceptionsMessage.BatchSizeInvalid % (batch_size,))
    if batch_size > MAX_BATCH_SIZE:
        logger.warning(f"batch size {batch_size} is larger than {MAX_BATCH_SIZE}, capped to it")
        batch_size = MAX_BATCH_SIZE
    return batch_size


def check_limit(limit: Optional[int]) -> int:
    if limit is None:
        return UNLIMITED
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < UNLIMITED:
        raise ParamError(message=ExceptionsMessage.IteratorLimitInvalid % (limit,))
    return limit


class _PaginatedIterator(abc.ABC):
    """State machine shared by the query and search iterators.

    CREATED -> FETCHING -> READY -> (FETCHING | EXHAUSTED) -> CLOSED

    Not safe for concurrent ``advance`` calls, one consumer per iterator.
    """

    def __init__(
        self,
        transport: Transport,
        batch_size: Optional[int] = None,
        limit: Optional[int] = UNLIMITED,
        filter_func: Optional[RowFilter] = None,
        cursor: Optional[IteratorCursor] = None,
    ):
        if filter_func is not None and not callable(filter_func):
            raise ParamError(message=f"filter_func must be callable, got {type(filter_func)}")
        self._transport = transport
        self._batch_size = check_batch_size(batch_size)
        self._limit = check_limit(limit)
        self._filter_func = filter_func
        self._cursor = cursor or IteratorCursor()
        self._state = IteratorState.EXHAUSTED if self._cursor.exhausted else IteratorState.CREATED

    @property
    def state(self) -> IteratorState:
        return self._state

    @property
    def cursor(self) -> IteratorCursor:
        return self._cursor

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def limit(self) -> int:
        return self._limit

    def _limit_reached(self, emitted: int) -> bool:
        return self._limit != UNLIMITED and emitted >= self._limit

    @abc.abstractmethod
    def next_request(self) -> Dict[str, Any]:
        """The request the next ``advance`` issues."""

    @abc.abstractmethod
    def _fetch(self, request: Dict[str, Any]) -> Tuple[List[Row], Dict[str, Any]]:
        """Run one round trip, return the raw rows and the cursor fields they move."""

    def advance(self) -> List[Row]:
        """Fetch one batch, filter it and move the cursor past it.

        Returns an empty list at once when the iterator is exhausted or closed.
        A transport error propagates and leaves the cursor where it was.
        """
        if self._state in (IteratorState.EXHAUSTED, IteratorState.CLOSED):
            return []
        if self._limit_reached(self._cursor.emitted_total):
            self._cursor = self._cursor.advanced(exhausted=True, last_returned_count=0)
            self._state = IteratorState.EXHAUSTED
            return []

        request = self.next_request()
        previous_state = self._state
        self._state = IteratorState.FETCHING
        try:
            raw_rows, moved = self._fetch(request)
            rows = [r for r in raw_rows if self._filter_func(r)] if self._filter_func else list(raw_rows)
        except Exception:
            self._state = previous_state
            logger.warning(f"{type(self).__name__} advance failed, cursor kept at {self._cursor}")
            raise

        limit_hit = False
        if self._limit != UNLIMITED:
            left = self._limit - self._cursor.emitted_total
            if len(rows) >= left:
                rows = rows[:left]
                limit_hit = True

        exhausted = limit_hit or len(raw_rows) < self._batch_size
        self._cursor = self._cursor.advanced(
            last_returned_count=len(rows),
            emitted_total=self._cursor.emitted_total + len(rows),
            exhausted=exhausted,
            **moved,
        )
        self._state = IteratorState.EXHAUSTED if exhausted else IteratorState.READY
        logger.debug(
            f"{type(self).__name__} fetched {len(raw_rows)} rows, returned {len(rows)}, cursor {self._cursor}"
        )
        return rows

    def next(self) -> List[Row]:
        """Return the next non-empty batch, or an empty list once iteration is over."""
        while True:
            rows = self.advance()
            if rows or self._state in (IteratorState.EXHAUSTED, IteratorState.CLOSED):
                return rows

    def __iter__(self):
        while self._state not in (IteratorState.EXHAUSTED, IteratorState.CLOSED):
            yield from self.advance()

    def close(self) -> None:
        self._state = IteratorState.CLOSED


class QueryIterator(_PaginatedIterator):
    """Pages through a query in primary key order.

    Each request asks for ``pk > <last pk>`` ANDed with the caller's filter.
    """

    def __init__(
        self,
        transport: Transport,
        schema: CollectionSchema,
        collection_name: str,
        batch_size: Optional[int] = None,
        limit: Optional[int] = UNLIMITED,
        filter: Optional[str] = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        filter_func: Optional[RowFilter] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        cursor: Optional[IteratorCursor] = None,
        **kwargs,
    ):
        super().__init__(transport, batch_size, limit, filter_func, cursor)
        if kwargs.get(OFFSET, 0) != 0:
            raise ParamError(message="Offset is not supported for query_iterator")
        self._schema = schema
        self._pk_field = schema.primary_field
        if self._pk_field is None:
            raise PrimaryKeyException(message=ExceptionsMessage.NoPrimaryKey)
        self._expr = filter or ""
        output_fields = list(output_fields or [])
        # the boundary is read from the primary key of the last row
        if output_fields and "*" not in output_fields and self._pk_field.name not in output_fields:
            output_fields.append(self._pk_field.name)
        self._transformers = Transformers.of(transformers)
        self._base_request = Prepare.query_request(
            collection_name,
            self._expr,
            output_fields,
            partition_names,
            expr_params=kwargs.get("expr_params", {}),
            **{MILVUS_LIMIT: self._batch_size, ITERATOR_FIELD: True, REDUCE_STOP_FOR_BEST: True},
        )

    def next_request(self) -> Dict[str, Any]:
        request = copy.deepcopy(self._base_request)
        if self._cursor.boundary is not None:
            request[FILTER] = Prepare.pk_boundary_expr(self._pk_field, self._cursor.boundary, self._expr)
        request[GUARANTEE_TIMESTAMP] = self._cursor.session_ts
        return request

    def _fetch(self, request: Dict[str, Any]) -> Tuple[List[Row], Dict[str, Any]]:
        res = self._transport.execute(RequestKind.QUERY, request)
        rows = QueryResult(res, self._schema, self._transformers)
        moved = {}
        if rows:
            moved["boundary"] = rows[-1][self._pk_field.name]
        if self._cursor.session_ts <= 0 and res.session_ts > 0:
            # later pages read the same snapshot as the first one
            moved["session_ts"] = res.session_ts
        return list(rows), moved


class SearchIterator(_PaginatedIterator):
    """Pages through the hits of one query vector, best hits first.

    Rows handed to ``filter_func`` and returned by ``advance`` are ``Hit`` objects.
    """

    def __init__(
        self,
        transport: Transport,
        schema: CollectionSchema,
        collection_name: str,
        data: Any,
        batch_size: Optional[int] = None,
        limit: Optional[int] = UNLIMITED,
        filter: Optional[str] = None,
        output_fields: Optional[List[str]] = None,
        search_params: Optional[Dict] = None,
        partition_names: Optional[List[str]] = None,
        anns_field: Optional[str] = None,
        round_decimal: Optional[int] = -1,
        filter_func: Optional[RowFilter] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        cursor: Optional[IteratorCursor] = None,
        **kwargs,
    ):
        super().__init__(transport, batch_size, limit, filter_func, cursor)
        if kwargs.get(OFFSET, 0) != 0:
            raise ParamError(message="Offset is not supported for search_iterator")
        # check num queries, heavy to check at server side
        rows = get_input_num_rows(data)
        if rows > 1:
            raise ParamError(message=ExceptionsMessage.SearchIteratorMultipleVectors)
        if rows == 0:
            raise ParamError(message=ExceptionsMessage.SearchIteratorEmptyVectors)

        self._schema = schema
        self._round_decimal = round_decimal
        self._transformers = Transformers.of(transformers)
        self._base_request = Prepare.search_requests_with_expr(
            collection_name,
            schema,
            data,
            anns_field,
            copy.deepcopy(search_params or {}),
            self._batch_size,
            expr=filter,
            partition_names=partition_names,
            output_fields=output_fields,
            round_decimal=round_decimal,
            transformers=self._transformers,
            expr_params=kwargs.get("expr_params", {}),
            **{
                ITERATOR_FIELD: True,
                ITER_SEARCH_V2_KEY: True,
                ITER_SEARCH_BATCH_SIZE_KEY: self._batch_size,
            },
        )

    def next_request(self) -> Dict[str, Any]:
        request = copy.deepcopy(self._base_request)
        search_params = request["search_params"]
        if self._cursor.boundary is not None:
            search_params[ITER_SEARCH_LAST_BOUND_KEY] = self._cursor.boundary
        # the token should not change during the lifetime of the iterator
        if self._cursor.token:
            search_params[ITER_SEARCH_ID_KEY] = self._cursor.token
        request[GUARANTEE_TIMESTAMP] = self._cursor.session_ts
        return request

    def _fetch(self, request: Dict[str, Any]) -> Tuple[List[Row], Dict[str, Any]]:
        res = self._transport.execute(RequestKind.SEARCH, request)
        result = SearchResult(
            res,
            schema=self._schema,
            round_decimal=self._round_decimal,
            transformers=self._transformers,
        )
        hits = result[0] if result else Hits()

        moved = {}
        iter_info = result.search_iterator_v2_results
        if iter_info is not None and iter_info.token:
            moved["boundary"] = iter_info.last_bound
            if not self._cursor.token:
                moved["token"] = iter_info.token
        elif hits:
            logger.warning("server returned no search iterator token, paging by the last distance")
            moved["boundary"] = hits[-1].distance
        if self._cursor.session_ts <= 0 and result.session_ts > 0:
            moved["session_ts"] = result.session_ts
        return list(hits), moved
