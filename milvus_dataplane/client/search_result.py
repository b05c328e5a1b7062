import logging
from collections import UserDict
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from .columnar import FieldColumn, QueryResultData, SearchIteratorInfo, SearchResultData
from .constants import DISTANCE, ENTITY
from .entity_helper import (
    check_columns_against_schema,
    extract_dynamic_fields,
    extract_field_value,
    extract_row_data,
    extract_rows,
)
from .schema import CollectionSchema
from .transformers import Transformers
from .types import metrics_positive_related

logger = logging.getLogger(__name__)


def truncate_score(score: float, round_decimal: Optional[int]) -> float:
    """Cut ``score`` to ``round_decimal`` digits, never rounding up.

    >>> truncate_score(0.123456, 3)
    0.123
    >>> truncate_score(-0.9999, 2)
    -0.99
    """
    if round_decimal is None or round_decimal < 0:
        return score
    exp = Decimal(1).scaleb(-round_decimal)
    return float(Decimal(str(score)).quantize(exp, rounding=ROUND_DOWN))


class Hit(UserDict):
    """Enhanced result in dict that can get data in dict[dict]

    Examples:
        >>> h = Hit({"my_id": 1, "distance": 0.3, "entity": {"desc": "a"}}, pk_name="my_id")
        >>> h["my_id"], h.id, h.score
        (1, 1, 0.3)
        >>> h["entity"]["desc"], h.get("desc")
        ('a', 'a')
    """

    def __init__(self, *args, pk_name: str = "id", **kwargs):
        super().__init__(*args, **kwargs)
        self._pk_name = pk_name

    def __getattr__(self, item: str):
        if item.startswith("_") or item == "data":
            raise AttributeError(item)
        if item == ENTITY:
            return self
        try:
            return self.__getitem__(item)
        except KeyError as exc:
            raise AttributeError(item) from exc

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)

    @property
    def pk_name(self) -> str:
        return self._pk_name

    @property
    def id(self) -> Union[str, int]:
        return self.data.get(self._pk_name)

    @property
    def distance(self) -> float:
        return self.data.get(DISTANCE)

    @property
    def pk(self) -> Union[str, int]:
        """Alias of id"""
        return self.id

    @property
    def score(self) -> float:
        """Alias of distance"""
        return self.distance

    @property
    def fields(self) -> Dict[str, Any]:
        return self.data.get(ENTITY, {})

    def __getitem__(self, key: str):
        try:
            return self.data[key]
        except KeyError:
            pass
        return self.data[ENTITY][key]

    def get(self, key: Any, default: Any = None):
        try:
            return self.__getitem__(key)
        except KeyError:
            pass
        return default


class Group:
    """Hits sharing one value of the group-by field.

    ``best_score`` is the score of the group's first hit, hits keep the order
    the server returned them in.
    """

    def __init__(self, group_by_value: Any, hits: "Hits"):
        self.group_by_value = group_by_value
        self.hits = hits

    @property
    def best_score(self) -> float:
        return self.hits[0].distance if self.hits else float("-inf")

    @property
    def ids(self) -> List[Union[str, int]]:
        return self.hits.ids

    def __len__(self) -> int:
        return len(self.hits)

    def __iter__(self):
        return iter(self.hits)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Group):
            return False
        return self.group_by_value == other.group_by_value and list(self.hits) == list(other.hits)

    def __repr__(self) -> str:
        return f"Group(value={self.group_by_value!r}, best_score={self.best_score}, hits={list(self.hits)})"


def _group_key(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, dict):
        return tuple(sorted(value.items()))
    return value


class Hits(list):
    """List[Hit] topk search result with pks, distances, and output fields.

        [
            {"id": 1, "distance": 0.3, "entity": {"vector": [1, 2, 3]}},
            {"id": 2, "distance": 0.2, "entity": {"vector": [4, 5, 6]}},
        ]

    Attributes:
        metric_type(str): the metric the distances were computed with
        groups(List[Group]): filled only when the search grouped its results
    """

    def __init__(
        self,
        hits: Iterable[Hit] = (),
        metric_type: str = "",
        pk_name: str = "id",
    ):
        super().__init__(hits)
        self.metric_type = metric_type
        self.pk_name = pk_name
        self.groups: List[Group] = []

    @property
    def ids(self) -> List[Union[str, int]]:
        return [hit.id for hit in self]

    @property
    def distances(self) -> List[float]:
        return [hit.distance for hit in self]

    def group_by(self, field_name: str) -> List[Group]:
        """Split hits by their ``field_name`` value, best group first.

        Group order follows the group's best score, descending for similarity
        metrics and ascending for distance metrics. Groups with equal best
        scores keep the order of their first appearance.
        """
        groups: Dict[Any, Group] = {}
        for hit in self:
            value = hit.fields.get(field_name)
            key = _group_key(value)
            if key not in groups:
                groups[key] = Group(value, Hits(metric_type=self.metric_type, pk_name=self.pk_name))
            groups[key].hits.append(hit)

        descending = metrics_positive_related(self.metric_type)
        # sorted() is stable, so ties keep first appearance
        return sorted(
            groups.values(),
            key=lambda g: -g.best_score if descending else g.best_score,
        )

    def __str__(self) -> str:
        """Only print at most 10 query results"""
        reminder = f" ... and {len(self) - 10} entities remaining" if len(self) > 10 else ""
        return f"{list(self[:10])}{reminder}"

    __repr__ = __str__


class SearchResult(list):
    """A list[Hits] containing nq * limit results.

    The first level is the results for each nq, and the second level
    is the top-k(limit) results for each query.

    Examples:
        >>> nq_res = client.search(...)
        >>> for topk_res in nq_res:
        >>>     for one_res in topk_res:
        >>>         print(one_res)
        {"id": 1, "distance": 0.1, "entity": {"vector": [1.0, 2.0, 3.0], "name": "a"}}
    """

    def __init__(
        self,
        res: SearchResultData,
        schema: Optional[CollectionSchema] = None,
        round_decimal: Optional[int] = -1,
        transformers: Optional[Union[Transformers, Dict]] = None,
        group_by_field: Optional[str] = None,
        sparse_format: str = "dict",
    ):
        if schema is not None:
            check_columns_against_schema(schema, res.fields_data)
        self._transformers = Transformers.of(transformers)
        self._sparse_format = sparse_format
        self.metric_type = res.metric_type
        self.group_by_field = group_by_field
        super().__init__(self._parse_search_result_data(res, round_decimal))

        self._session_ts = res.session_ts
        self._search_iterator_v2_results = res.search_iterator_v2_results

    def _parse_search_result_data(
        self, res: SearchResultData, round_decimal: Optional[int]
    ) -> List[Hits]:
        pk_name = res.primary_field_name or "id"
        scores = [truncate_score(s, round_decimal) for s in res.scores]
        output_fields = res.output_fields or [
            c.field_name for c in res.fields_data if not c.is_dynamic
        ]
        _, dynamic_fields = extract_dynamic_fields(res.fields_data, output_fields)
        group_column = res.group_by_field_value
        group_name = self.group_by_field or (group_column.field_name if group_column else None)

        data = []
        nq_thres = 0
        for topk in res.topks:
            hits = Hits(metric_type=res.metric_type, pk_name=pk_name)
            for pos in range(nq_thres, nq_thres + topk):
                entity = extract_row_data(
                    res.fields_data, pos, dynamic_fields, self._transformers, self._sparse_format
                )
                if group_column is not None and group_name not in entity:
                    entity[group_name] = self._group_value(group_column, pos)
                hits.append(
                    Hit(
                        {pk_name: res.ids[pos], DISTANCE: scores[pos], ENTITY: entity},
                        pk_name=pk_name,
                    )
                )
            if group_column is not None:
                hits.groups = hits.group_by(group_name)
            data.append(hits)
            nq_thres += topk
        return data

    def _group_value(self, column: FieldColumn, pos: int) -> Any:
        return extract_field_value(column, pos, self._transformers, self._sparse_format)

    @property
    def session_ts(self) -> int:
        return self._session_ts

    @property
    def search_iterator_v2_results(self) -> Optional[SearchIteratorInfo]:
        return self._search_iterator_v2_results

    @property
    def groups(self) -> List[List[Group]]:
        return [hits.groups for hits in self]

    def __str__(self) -> str:
        """Only print at most 10 results"""
        reminder = f" ... and {len(self) - 10} results remaining" if len(self) > 10 else ""
        return f"data: {list(self[:10])}{reminder}"

    __repr__ = __str__


class QueryResult(list):
    """Rows returned by a query, with the session timestamp of the read."""

    def __init__(
        self,
        res: QueryResultData,
        schema: CollectionSchema,
        transformers: Optional[Union[Transformers, Dict]] = None,
        sparse_format: str = "dict",
    ):
        rows = extract_rows(schema, res.fields_data, res.output_fields, transformers, sparse_format)
        super().__init__(rows)
        self.output_fields = res.output_fields
        self.session_ts = res.session_ts

    def __str__(self) -> str:
        reminder = f" ... and {len(self) - 10} entities remaining" if len(self) > 10 else ""
        return f"data: {list(self[:10])}{reminder}"

    __repr__ = __str__