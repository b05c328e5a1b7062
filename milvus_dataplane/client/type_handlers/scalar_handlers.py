"""
Scalar type handlers.

This module contains handlers for scalar data types:
- BOOL, INT8, INT16, INT32, INT64
- FLOAT, DOUBLE
- VARCHAR, STRING
"""

from numbers import Integral, Real
from typing import Any

import numpy as np

from milvus_dataplane.client.types import DataType
from milvus_dataplane.exceptions import (
    DataNotMatchException,
    ExceptionsMessage,
    ParamError,
)
from milvus_dataplane.settings import Config

from .base import TypeHandler


def _mismatch(field_name: str, expected: str, value: Any) -> DataNotMatchException:
    return DataNotMatchException(
        message=ExceptionsMessage.FieldDataInconsistent % (field_name, expected, type(value))
    )


class BoolHandler(TypeHandler):
    """Handler for BOOL type."""

    @property
    def data_type(self):
        return DataType.BOOL

    def encode(self, value: Any, field_name: str = "", **kwargs) -> bool:
        if not isinstance(value, (bool, np.bool_)):
            raise _mismatch(field_name, "bool", value)
        return bool(value)

    def decode(self, wire: Any, **kwargs) -> bool:
        return bool(wire)


_INT_RANGES = {
    DataType.INT8: (-(2**7), 2**7 - 1),
    DataType.INT16: (-(2**15), 2**15 - 1),
    DataType.INT32: (-(2**31), 2**31 - 1),
    DataType.INT64: (-(2**63), 2**63 - 1),
}


class IntHandler(TypeHandler):
    """Handler for INT8, INT16, INT32 types."""

    def __init__(self, data_type: DataType):
        """
        Initialize int handler.

        Args:
            data_type: The DataType enum value (INT8, INT16, or INT32)
        """
        self._data_type = data_type

    @property
    def data_type(self):
        return self._data_type

    def encode(self, value: Any, field_name: str = "", **kwargs) -> int:
        type_name = self._data_type.name.lower()
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Integral, np.integer)):
            raise _mismatch(field_name, type_name, value)
        low, high = _INT_RANGES[self._data_type]
        value = int(value)
        if not low <= value <= high:
            raise ParamError(
                message=f"invalid input of field ({field_name}), {value} is out of {type_name} range [{low}, {high}]"
            )
        return value

    def decode(self, wire: Any, **kwargs) -> int:
        return int(wire)


class Int64Handler(IntHandler):
    """Handler for INT64 type."""

    def __init__(self):
        super().__init__(DataType.INT64)


class FloatHandler(TypeHandler):
    """Handler for FLOAT type."""

    @property
    def data_type(self):
        return DataType.FLOAT

    def encode(self, value: Any, field_name: str = "", **kwargs) -> float:
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Real, np.number)):
            raise _mismatch(field_name, "float", value)
        # stored as float32 by the server
        return float(np.float32(value))

    def decode(self, wire: Any, **kwargs) -> float:
        return float(wire)


class DoubleHandler(TypeHandler):
    """Handler for DOUBLE type."""

    @property
    def data_type(self):
        return DataType.DOUBLE

    def encode(self, value: Any, field_name: str = "", **kwargs) -> float:
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Real, np.number)):
            raise _mismatch(field_name, "double", value)
        return float(value)

    def decode(self, wire: Any, **kwargs) -> float:
        return float(wire)


class VarcharHandler(TypeHandler):
    """Handler for VARCHAR and STRING types."""

    def __init__(self, data_type: DataType = DataType.VARCHAR):
        self._data_type = data_type

    @property
    def data_type(self):
        return self._data_type

    def encode(self, value: Any, field_name: str = "", max_length: int = 0, **kwargs) -> str:
        if not isinstance(value, str):
            raise _mismatch(field_name, "varchar", value)
        max_length = max_length or Config.MaxVarCharLength
        # the server counts bytes, not characters
        length = len(value.encode(Config.EncodeProtocol))
        if length > max_length:
            raise ParamError(
                message=ExceptionsMessage.VarCharTooLong % (field_name, length, max_length)
            )
        return value

    def decode(self, wire: Any, **kwargs) -> str:
        return str(wire)
