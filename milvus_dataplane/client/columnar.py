"""
Columnar payload types.

These are the shapes handed to, and received from, the transport: one
``FieldColumn`` per field, each holding one wire value per row. Vector columns
hold the codec's wire values (``List[float]`` for float vectors, ``bytes`` for
the other subtypes).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .types import DataType


@dataclass
class FieldColumn:
    field_name: str
    type: DataType
    data: List[Any] = field(default_factory=list)
    # one flag per row for nullable fields, empty otherwise
    valid_data: List[bool] = field(default_factory=list)
    dim: int = 0
    element_type: Optional[DataType] = None
    is_dynamic: bool = False

    def __len__(self) -> int:
        return len(self.data)

    def is_valid(self, index: int) -> bool:
        if not self.valid_data:
            return True
        return index < len(self.valid_data) and self.valid_data[index]


@dataclass
class ColumnSet:
    num_rows: int
    fields_data: List[FieldColumn] = field(default_factory=list)

    def __iter__(self):
        return iter(self.fields_data)

    def __len__(self) -> int:
        return len(self.fields_data)

    def get(self, field_name: str) -> Optional[FieldColumn]:
        for column in self.fields_data:
            if column.field_name == field_name:
                return column
        return None

    @property
    def field_names(self) -> List[str]:
        return [c.field_name for c in self.fields_data]


@dataclass
class SearchIteratorInfo:
    token: str = ""
    last_bound: float = 0.0


@dataclass
class SearchResultData:
    """One search round trip: ``num_queries`` hit lists laid end to end.

    ``topks[i]`` is the number of hits of query ``i``; ``ids``, ``scores`` and
    each column of ``fields_data`` are indexed by the flattened hit position.
    """

    num_queries: int = 0
    top_k: int = 0
    topks: List[int] = field(default_factory=list)
    ids: List[Union[int, str]] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)
    fields_data: List[FieldColumn] = field(default_factory=list)
    output_fields: List[str] = field(default_factory=list)
    primary_field_name: str = ""
    group_by_field_value: Optional[FieldColumn] = None
    metric_type: str = ""
    search_iterator_v2_results: Optional[SearchIteratorInfo] = None
    session_ts: int = 0


@dataclass
class QueryResultData:
    fields_data: List[FieldColumn] = field(default_factory=list)
    output_fields: List[str] = field(default_factory=list)
    collection_name: str = ""
    session_ts: int = 0

    @property
    def num_rows(self) -> int:
        return max((len(c) for c in self.fields_data), default=0)


@dataclass
class MutationResultData:
    primary_keys: List[Union[int, str]] = field(default_factory=list)
    insert_count: int = 0
    delete_count: int = 0
    upsert_count: int = 0
    timestamp: int = 0
    succ_index: List[int] = field(default_factory=list)
    err_index: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insert_count": self.insert_count,
            "delete_count": self.delete_count,
            "upsert_count": self.upsert_count,
            "ids": list(self.primary_keys),
        }
