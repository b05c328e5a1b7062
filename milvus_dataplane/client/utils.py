import importlib.util
import struct
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple, Union

import ujson

from milvus_dataplane.exceptions import ParamError

from .types import DataType

# a sparse entry on the wire: little-endian uint32 index followed by float32 value
SPARSE_ENTRY = struct.Struct("<If")


def dumps(v: Union[dict, str]) -> str:
    return ujson.dumps(v) if isinstance(v, dict) else str(v)


class SciPyHelper:
    """Recognises scipy sparse rows without making scipy a hard dependency."""

    _sparse_module: Any = None
    _probed = False

    @classmethod
    def _sparse(cls):
        if not cls._probed:
            # find_spec("scipy.sparse") raises rather than returning None when scipy is absent
            if importlib.util.find_spec("scipy") is not None:
                cls._sparse_module = importlib.import_module("scipy.sparse")
            cls._probed = True
        return cls._sparse_module

    @classmethod
    def is_scipy_sparse(cls, data: Any) -> bool:
        sparse = cls._sparse()
        return sparse is not None and sparse.issparse(data)


# decoded sparse rows default to this shape, other shapes are produced on request
SparseRowOutputType = Dict[int, float]

if TYPE_CHECKING:
    from scipy.sparse import csr_array, spmatrix

# we accept the following shapes for a single sparse vector:
# - index/value pairs:      [(2, 0.33), (98, 0.72)]
# - positional array:       [None, None, 0.33, None, 0.72]
# - mapping:                {2: 0.33, 98: 0.72}, keys/values may be numeric strings
# - csr:                    {"indices": [2, 98], "values": [0.33, 0.72]}
# - coordinate list:        [{"index": 2, "value": 0.33}, {"index": 98, "value": 0.72}]
# - a single row scipy sparse array/matrix
SparseRowInputType = Union[
    SparseRowOutputType,
    Iterable[Tuple[int, float]],
    List[Union[float, None]],
    Dict[str, List],
    List[Dict[str, Any]],
    "csr_array",
    "spmatrix",
]


def sparse_row_to_bytes(indices: List[int], values: List[float]) -> bytes:
    """Pack already validated, index-sorted entries into the server's byte layout."""
    return b"".join(SPARSE_ENTRY.pack(i, v) for i, v in zip(indices, values))


def sparse_parse_single_row(data: bytes) -> Tuple[List[int], List[float]]:
    if len(data) % SPARSE_ENTRY.size != 0:
        raise ParamError(message=f"The length of data must be a multiple of 8, got {len(data)}")

    indices, values = [], []
    for index, value in SPARSE_ENTRY.iter_unpack(data):
        indices.append(index)
        values.append(value)
    return indices, values


def is_sparse_vector_type(data_type: DataType) -> bool:
    return data_type == DataType.SPARSE_FLOAT_VECTOR


vector_type_set = {
    DataType.FLOAT_VECTOR,
    DataType.FLOAT16_VECTOR,
    DataType.BFLOAT16_VECTOR,
    DataType.BINARY_VECTOR,
    DataType.INT8_VECTOR,
    DataType.SPARSE_FLOAT_VECTOR,
}


def is_vector_type(data_type: DataType):
    return data_type in vector_type_set


def is_legal_pk_type(data_type: DataType) -> bool:
    return data_type in (DataType.INT64, DataType.VARCHAR)
