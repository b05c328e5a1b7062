"""
Type handler registry for data type processing.

This package provides a strategy pattern-based approach to convert field values
between their row form and their column (wire) form, one handler per data type.

Usage:
    from milvus_dataplane.client.type_handlers import encode_vector, get_type_handler

    handler = get_type_handler(DataType.VARCHAR)
    wire = encode_vector(DataType.FLOAT16_VECTOR, 4, [0.1, 0.2, 0.3, 0.4])
"""

from .base import (
    TypeHandler,
    VectorHandler,
)
from .complex_handlers import (
    ArrayHandler,
    JsonHandler,
    convert_to_json,
)
from .registry import (
    TypeHandlerRegistry,
    get_type_handler,
    get_type_registry,
)
from .scalar_handlers import (
    BoolHandler,
    DoubleHandler,
    FloatHandler,
    Int64Handler,
    IntHandler,
    VarcharHandler,
)
from .vector_handlers import (
    BinaryVectorHandler,
    FloatVectorHandler,
    HalfVectorHandler,
    Int8VectorHandler,
    SparseFloatVectorHandler,
    decode_vector,
    encode_vector,
    format_sparse_row,
    normalize_sparse_row,
    sparse_bytes_to_rows,
    sparse_rows_to_bytes,
)

__all__ = [
    "ArrayHandler",
    "BinaryVectorHandler",
    "BoolHandler",
    "DoubleHandler",
    "FloatHandler",
    "FloatVectorHandler",
    "HalfVectorHandler",
    "Int64Handler",
    "Int8VectorHandler",
    "IntHandler",
    "JsonHandler",
    "SparseFloatVectorHandler",
    "TypeHandler",
    "TypeHandlerRegistry",
    "VarcharHandler",
    "VectorHandler",
    "convert_to_json",
    "decode_vector",
    "encode_vector",
    "format_sparse_row",
    "get_type_handler",
    "get_type_registry",
    "normalize_sparse_row",
    "sparse_bytes_to_rows",
    "sparse_rows_to_bytes",
]
