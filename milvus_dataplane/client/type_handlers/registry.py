"""
Lookup table from DataType to the handler that encodes, decodes and validates it.

The default table is built on first use, since the handler modules import
helpers that in turn resolve handlers through this module.
"""

from typing import Dict, Iterable, Optional

import numpy as np

from milvus_dataplane.client.types import DataType

from .base import TypeHandler
from .complex_handlers import ArrayHandler, JsonHandler
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
)


def _default_handlers() -> Iterable[TypeHandler]:
    yield FloatVectorHandler()
    yield HalfVectorHandler(DataType.FLOAT16_VECTOR)
    yield HalfVectorHandler(DataType.BFLOAT16_VECTOR)
    yield BinaryVectorHandler()
    yield Int8VectorHandler()
    yield SparseFloatVectorHandler()

    yield BoolHandler()
    for int_type in (DataType.INT8, DataType.INT16, DataType.INT32):
        yield IntHandler(int_type)
    yield Int64Handler()
    yield FloatHandler()
    yield DoubleHandler()
    for str_type in (DataType.VARCHAR, DataType.STRING):
        yield VarcharHandler(str_type)

    yield JsonHandler()
    yield ArrayHandler()


class TypeHandlerRegistry:
    """Maps each DataType to exactly one handler; later registrations win."""

    def __init__(self, handlers: Optional[Iterable[TypeHandler]] = None):
        self._handlers: Dict[DataType, TypeHandler] = {}
        for handler in _default_handlers() if handlers is None else handlers:
            self.register(handler)

    def register(self, handler: TypeHandler):
        self._handlers[handler.data_type] = handler

    def get_handler(self, data_type: DataType) -> TypeHandler:
        try:
            return self._handlers[data_type]
        except KeyError:
            raise ValueError(f"No handler registered for {data_type}") from None

    def get_numpy_dtype(self, data_type: DataType) -> Optional[np.dtype]:
        """Element dtype of a vector type, None for scalars and sparse vectors."""
        handler = self._handlers.get(data_type)
        if handler is None or not handler.is_vector():
            return None
        return handler.get_numpy_dtype()


_type_registry: Optional[TypeHandlerRegistry] = None


def get_type_registry() -> TypeHandlerRegistry:
    global _type_registry  # noqa: PLW0603
    if _type_registry is None:
        _type_registry = TypeHandlerRegistry()
    return _type_registry


def get_type_handler(data_type: DataType) -> TypeHandler:
    return get_type_registry().get_handler(data_type)
