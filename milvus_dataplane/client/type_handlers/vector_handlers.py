"""
Vector type handlers.

This module contains the codec of all vector types:
- FLOAT_VECTOR
- FLOAT16_VECTOR, BFLOAT16_VECTOR (IEEE half / bfloat16, 2 bytes per element)
- BINARY_VECTOR (1 bit per dimension, most significant bit first)
- INT8_VECTOR
- SPARSE_FLOAT_VECTOR

``encode_vector`` and ``decode_vector`` are the entry points; both dispatch over
the closed set of vector types and reject any other type.
"""

import math
from numbers import Integral, Real
from typing import Any, Callable, Dict, List, Optional, Tuple

import ml_dtypes
import numpy as np

from milvus_dataplane.client.constants import SPARSE_MAX_INDEX
from milvus_dataplane.client.types import DataType
from milvus_dataplane.client.utils import (
    SciPyHelper,
    is_vector_type,
    sparse_parse_single_row,
    sparse_row_to_bytes,
)
from milvus_dataplane.exceptions import (
    DataNotMatchException,
    DuplicateIndexException,
    ExceptionsMessage,
    InvalidDimensionException,
    NegativeIndexException,
    ParamError,
    ValueOutOfRangeException,
)

from .base import VectorHandler

BYTES_LIKE = (bytes, bytearray, memoryview)

SPARSE_FORMATS = ("dict", "csr", "coo", "pairs", "array")


def _check_dim(field_name: str, dim: int, got: int):
    if dim != got:
        raise InvalidDimensionException(
            message=ExceptionsMessage.DimensionMismatch % (field_name, dim, got)
        )


def _as_numeric_array(value: Any, dtype: Any, field_name: str, type_name: str) -> np.ndarray:
    try:
        arr = np.asarray(value, dtype=dtype)
    except (TypeError, ValueError) as e:
        raise DataNotMatchException(
            message=ExceptionsMessage.FieldDataInconsistent % (field_name, type_name, type(value))
            + f" Detail: {e!s}"
        ) from e
    if arr.ndim != 1:
        raise DataNotMatchException(
            message=ExceptionsMessage.FieldDataInconsistent
            % (field_name, type_name, f"array of shape {arr.shape}")
        )
    return arr


class FloatVectorHandler(VectorHandler):
    """Handler for FLOAT_VECTOR type."""

    @property
    def data_type(self):
        return DataType.FLOAT_VECTOR

    def encode(self, value: Any, field_name: str = "", dim: int = 0, **kwargs) -> List[float]:
        if isinstance(value, np.ndarray) and value.dtype not in ("float32", "float64"):
            raise ParamError(
                message="invalid input for float32 vector. Expected an np.ndarray with dtype=float32"
            )
        arr = _as_numeric_array(value, np.float32, field_name, "float_vector")
        _check_dim(field_name, dim, len(arr))
        return arr.tolist()

    def decode(self, wire: Any, **kwargs) -> List[float]:
        return list(wire)

    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> List[float]:
        _check_dim(field_name, dim, len(wire))
        return list(wire)

    def get_numpy_dtype(self) -> Optional[np.dtype]:
        return np.dtype(np.float32)

    def get_bytes_per_vector(self, dim: int) -> int:
        """Get bytes per vector for float vector (counted by elements)."""
        return dim


class HalfVectorHandler(VectorHandler):
    """Handler for FLOAT16_VECTOR and BFLOAT16_VECTOR, stored as 2 bytes per element."""

    def __init__(self, data_type: DataType):
        self._data_type = data_type
        if data_type == DataType.FLOAT16_VECTOR:
            self._np_dtype = np.dtype(np.float16)
        else:
            self._np_dtype = np.dtype(ml_dtypes.bfloat16)

    @property
    def data_type(self):
        return self._data_type

    def encode(self, value: Any, field_name: str = "", dim: int = 0, **kwargs) -> bytes:
        if isinstance(value, BYTES_LIKE):
            return self.check_wire(bytes(value), dim, field_name)

        type_name = self._data_type.name.lower()
        # floats are rounded to the target precision element by element
        arr = _as_numeric_array(value, self._np_dtype, field_name, type_name)
        _check_dim(field_name, dim, len(arr))
        return arr.view(np.uint16).astype("<u2", copy=False).tobytes()

    def decode(self, wire: Any, **kwargs) -> bytes:
        return bytes(wire)

    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> bytes:
        if not isinstance(wire, BYTES_LIKE):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent
                % (field_name, self._data_type.name.lower(), type(wire))
            )
        if len(wire) != self.get_bytes_per_vector(dim):
            raise InvalidDimensionException(
                message=ExceptionsMessage.DimensionMismatch % (field_name, dim, len(wire) / 2)
            )
        return bytes(wire)

    def to_floats(self, wire: bytes) -> List[float]:
        """Widen a wire buffer to python floats, for callers that want numbers back."""
        return np.frombuffer(wire, dtype="<u2").view(self._np_dtype).astype(np.float32).tolist()

    def get_numpy_dtype(self) -> Optional[np.dtype]:
        return self._np_dtype

    def get_bytes_per_vector(self, dim: int) -> int:
        return dim * 2


class BinaryVectorHandler(VectorHandler):
    """Handler for BINARY_VECTOR type."""

    @property
    def data_type(self):
        return DataType.BINARY_VECTOR

    def _check_positive_dim(self, dim: int, field_name: str):
        if dim <= 0:
            raise InvalidDimensionException(message=ExceptionsMessage.BinaryDimInvalid % (field_name, dim))

    def encode(self, value: Any, field_name: str = "", dim: int = 0, **kwargs) -> bytes:
        self._check_positive_dim(dim, field_name)
        if isinstance(value, BYTES_LIKE):
            return self.check_wire(bytes(value), dim, field_name)

        bits = _as_numeric_array(value, None, field_name, "binary_vector")
        _check_dim(field_name, dim, len(bits))
        invalid = (bits != 0) & (bits != 1)
        if invalid.any():
            bad = bits[np.argmax(invalid)]
            raise ValueOutOfRangeException(
                message=ExceptionsMessage.BinaryElementInvalid % (field_name, bad.item())
            )
        return np.packbits(bits.astype(np.uint8), bitorder="big").tobytes()

    def decode(self, wire: Any, **kwargs) -> bytes:
        return bytes(wire)

    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> bytes:
        if not isinstance(wire, BYTES_LIKE):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent
                % (field_name, "binary_vector", type(wire))
            )
        expected = self.get_bytes_per_vector(dim)
        if len(wire) != expected:
            raise InvalidDimensionException(
                message=ExceptionsMessage.BinaryLengthMismatch % (field_name, dim, expected, len(wire))
            )
        return bytes(wire)

    def to_bits(self, wire: bytes, dim: Optional[int] = None) -> List[int]:
        """Unpack ``wire`` MSB-first; ``dim`` drops the zero padding of the last byte."""
        bits = np.unpackbits(np.frombuffer(wire, dtype=np.uint8), bitorder="big", count=dim)
        return bits.tolist()

    def get_numpy_dtype(self) -> Optional[np.dtype]:
        return np.dtype(np.uint8)

    def get_bytes_per_vector(self, dim: int) -> int:
        return (dim + 7) // 8


class Int8VectorHandler(VectorHandler):
    """Handler for INT8_VECTOR type."""

    @property
    def data_type(self):
        return DataType.INT8_VECTOR

    def encode(self, value: Any, field_name: str = "", dim: int = 0, **kwargs) -> bytes:
        if isinstance(value, BYTES_LIKE):
            return self.check_wire(bytes(value), dim, field_name)

        arr = _as_numeric_array(value, None, field_name, "int8_vector")
        if arr.size and (arr.dtype == np.bool_ or not np.issubdtype(arr.dtype, np.integer)):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent
                % (field_name, "int8_vector", f"array of {arr.dtype}")
            )
        _check_dim(field_name, dim, len(arr))
        out_of_range = (arr < -128) | (arr > 127)
        if out_of_range.any():
            bad = arr[np.argmax(out_of_range)]
            raise ValueOutOfRangeException(
                message=ExceptionsMessage.Int8OutOfRange % (field_name, bad.item())
            )
        return arr.astype(np.int8).tobytes()

    def decode(self, wire: Any, **kwargs) -> List[int]:
        return np.frombuffer(bytes(wire), dtype=np.int8).tolist()

    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> bytes:
        if not isinstance(wire, BYTES_LIKE):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent
                % (field_name, "int8_vector", type(wire))
            )
        _check_dim(field_name, dim, len(wire))
        return bytes(wire)

    def get_numpy_dtype(self) -> Optional[np.dtype]:
        return np.dtype(np.int8)

    def get_bytes_per_vector(self, dim: int) -> int:
        return dim


def _is_int_like(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, (Integral, np.integer)):
        return True
    if isinstance(v, str):
        try:
            int(v)
        except ValueError:
            return False
        return True
    return False


def _is_float_like(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, (Real, np.floating, np.integer)):
        return True
    if isinstance(v, str):
        try:
            float(v)
        except ValueError:
            return False
        return True
    return False


def _sparse_entries(value: Any) -> List[Tuple[Any, Any]]:
    """Flatten any accepted sparse shape into raw (index, value) entries."""
    if SciPyHelper.is_scipy_sparse(value):
        if value.shape[0] != 1:
            raise ParamError(message="invalid input for sparse float vector: expect 1 row")
        csr = value.tocsr()
        return list(zip(csr.indices.tolist(), csr.data.tolist()))

    if isinstance(value, dict):
        if set(value.keys()) == {"indices", "values"}:
            indices, values = list(value["indices"]), list(value["values"])
            if len(indices) != len(values):
                raise ParamError(
                    message=f"length of indices and values must be the same, got {len(indices)} and {len(values)}"
                )
            return list(zip(indices, values))
        return list(value.items())

    if isinstance(value, np.ndarray):
        value = value.tolist()

    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            return []
        if all(isinstance(item, dict) for item in value):
            if not all(set(item.keys()) == {"index", "value"} for item in value):
                raise ParamError(message=ExceptionsMessage.SparseInvalidInput % "list of dict")
            return [(item["index"], item["value"]) for item in value]
        if all(isinstance(item, (list, tuple)) for item in value):
            if not all(len(item) == 2 for item in value):
                raise ParamError(message=ExceptionsMessage.SparseInvalidInput % "list of list")
            return [(item[0], item[1]) for item in value]
        if all(item is None or _is_float_like(item) for item in value):
            return [(i, v) for i, v in enumerate(value) if v is not None]

    raise ParamError(message=ExceptionsMessage.SparseInvalidInput % type(value).__name__)


def normalize_sparse_row(value: Any) -> Tuple[List[int], List[float]]:
    """Bring one sparse vector of any accepted shape to (indices, values) sorted by index."""
    entries = _sparse_entries(value)
    seen = {}
    for raw_index, raw_value in entries:
        if not _is_int_like(raw_index) or not _is_float_like(raw_value):
            raise ParamError(
                message=ExceptionsMessage.SparseInvalidInput % f"entry ({raw_index!r}, {raw_value!r})"
            )
        index, val = int(raw_index), float(raw_value)
        if index < 0:
            raise NegativeIndexException(message=ExceptionsMessage.SparseNegativeIndex % index)
        if index >= SPARSE_MAX_INDEX:
            raise ValueOutOfRangeException(message=ExceptionsMessage.SparseIndexTooLarge % index)
        if not math.isfinite(val):
            raise ValueOutOfRangeException(
                message=ExceptionsMessage.SparseValueNotFinite % (val, index)
            )
        if index in seen:
            raise DuplicateIndexException(message=ExceptionsMessage.SparseDuplicateIndex % index)
        seen[index] = val

    indices = sorted(seen)
    return indices, [seen[i] for i in indices]


def format_sparse_row(indices: List[int], values: List[float], sparse_format: str = "dict") -> Any:
    if sparse_format == "dict":
        return dict(zip(indices, values))
    if sparse_format == "csr":
        return {"indices": list(indices), "values": list(values)}
    if sparse_format == "coo":
        return [{"index": i, "value": v} for i, v in zip(indices, values)]
    if sparse_format == "pairs":
        return list(zip(indices, values))
    if sparse_format == "array":
        row = [None] * (indices[-1] + 1 if indices else 0)
        for i, v in zip(indices, values):
            row[i] = v
        return row
    raise ParamError(
        message=f"unknown sparse format {sparse_format!r}, expected one of {SPARSE_FORMATS}"
    )


class SparseFloatVectorHandler(VectorHandler):
    """Handler for SPARSE_FLOAT_VECTOR type."""

    @property
    def data_type(self):
        return DataType.SPARSE_FLOAT_VECTOR

    def encode(self, value: Any, field_name: str = "", **kwargs) -> bytes:
        indices, values = normalize_sparse_row(value)
        return sparse_row_to_bytes(indices, values)

    def decode(self, wire: Any, sparse_format: str = "dict", **kwargs) -> Any:
        indices, values = sparse_parse_single_row(bytes(wire))
        return format_sparse_row(indices, values, sparse_format)

    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> bytes:
        if not isinstance(wire, BYTES_LIKE):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent
                % (field_name, "sparse_float_vector", type(wire))
            )
        # parsing validates the entry layout
        sparse_parse_single_row(bytes(wire))
        return bytes(wire)

    def row_dim(self, wire: bytes) -> int:
        indices, _ = sparse_parse_single_row(bytes(wire))
        return indices[-1] + 1 if indices else 0

    def get_numpy_dtype(self) -> Optional[np.dtype]:
        """Sparse vectors don't have a fixed numpy dtype."""
        return None

    def get_bytes_per_vector(self, dim: int) -> int:
        """Sparse vectors have variable length, return 0 to indicate special handling."""
        return 0


def _vector_handler(dtype: DataType) -> VectorHandler:
    from .registry import get_type_handler  # noqa: PLC0415

    if not isinstance(dtype, DataType) or not is_vector_type(dtype):
        raise ParamError(message=ExceptionsMessage.UnsupportedVectorType % dtype)
    return get_type_handler(dtype)


def encode_vector(
    dtype: DataType,
    dim: int,
    value: Any,
    transformer: Optional[Callable[[Any], Any]] = None,
    field_name: str = "",
) -> Any:
    """Convert one vector to its wire form.

    A transformer, when given, produces the wire value itself; the result is
    still checked against ``dim`` so a column never carries a malformed vector.
    """
    handler = _vector_handler(dtype)
    if transformer is not None:
        return handler.check_wire(transformer(value), dim, field_name)
    return handler.encode(value, field_name=field_name, dim=dim)


def decode_vector(
    dtype: DataType,
    dim: int,
    wire: Any,
    transformer: Optional[Callable[[Any], Any]] = None,
    sparse_format: str = "dict",
) -> Any:
    """Convert one wire vector back to its row form.

    The transformer's return value is handed back untouched. Sparse transformers
    receive the decoded ``{index: value}`` mapping, all others the raw wire value.
    """
    handler = _vector_handler(dtype)
    if transformer is None:
        return handler.decode(wire, dim=dim, sparse_format=sparse_format)
    if dtype == DataType.SPARSE_FLOAT_VECTOR:
        return transformer(handler.decode(wire, sparse_format="dict"))
    return transformer(wire)


def sparse_rows_to_bytes(rows: List[Any]) -> Tuple[List[bytes], int]:
    """Encode a batch of sparse rows; also returns the batch dim (max index + 1)."""
    handler = _vector_handler(DataType.SPARSE_FLOAT_VECTOR)
    if SciPyHelper.is_scipy_sparse(rows):
        csr = rows.tocsr()
        rows = [csr[i : i + 1] for i in range(csr.shape[0])]
    contents = [handler.encode(row) for row in rows]
    dim = max((handler.row_dim(c) for c in contents), default=0)
    return contents, dim


def sparse_bytes_to_rows(contents: List[bytes], sparse_format: str = "dict") -> List[Dict]:
    handler = _vector_handler(DataType.SPARSE_FLOAT_VECTOR)
    return [handler.decode(c, sparse_format=sparse_format) for c in contents]
