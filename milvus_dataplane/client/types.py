from enum import IntEnum
from typing import Optional


class DataType(IntEnum):
    """
    String of DataType is str of its value, e.g.: str(DataType.BOOL) == "1"

    Values are the ones of the server's schema.proto.
    """

    NONE = 0
    BOOL = 1
    INT8 = 2
    INT16 = 3
    INT32 = 4
    INT64 = 5

    FLOAT = 10
    DOUBLE = 11

    STRING = 20
    VARCHAR = 21
    ARRAY = 22
    JSON = 23

    BINARY_VECTOR = 100
    FLOAT_VECTOR = 101
    FLOAT16_VECTOR = 102
    BFLOAT16_VECTOR = 103
    SPARSE_FLOAT_VECTOR = 104
    INT8_VECTOR = 105

    UNKNOWN = 999

    def __str__(self) -> str:
        return str(self.value)


class MetricType(IntEnum):
    INVALID = 0
    L2 = 1
    IP = 2
    HAMMING = 3
    JACCARD = 4
    TANIMOTO = 5
    SUBSTRUCTURE = 6
    SUPERSTRUCTURE = 7
    COSINE = 8
    BM25 = 9

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self._name_}>"

    def __str__(self) -> str:
        return self._name_


# larger score means more similar for these metrics, smaller is better for the rest
_POSITIVE_RELATED_METRICS = {MetricType.IP, MetricType.COSINE, MetricType.BM25}


def metrics_positive_related(metric_type: Optional[str]) -> bool:
    """Whether a larger score is a better match for `metric_type`.

    Unknown or missing metrics are treated as similarity scores.
    """
    if metric_type is None or metric_type == "":
        return True
    try:
        metric = MetricType[str(metric_type).upper()]
    except KeyError:
        return True
    return metric in _POSITIVE_RELATED_METRICS


def get_data_type(dtype) -> DataType:
    """Resolve a DataType from a member, its int value or its name ("FloatVector" too)."""
    if isinstance(dtype, DataType):
        return dtype
    if isinstance(dtype, int):
        return DataType(dtype)
    if isinstance(dtype, str):
        key = dtype.upper()
        if key in DataType.__members__:
            return DataType[key]
        # server side names, e.g. "FloatVector", "BFloat16Vector", "VarChar"
        compact = {name.replace("_", ""): member for name, member in DataType.__members__.items()}
        if key in compact:
            return compact[key]
    msg = f"invalid data type: {dtype!r}"
    raise ValueError(msg)
