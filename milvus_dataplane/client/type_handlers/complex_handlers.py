"""
Complex type handlers.

This module contains handlers for complex data types:
- JSON (also used for the dynamic ``$meta`` column)
- ARRAY
"""

import json
import logging
from typing import Any, List, Optional

import numpy as np
import orjson

from milvus_dataplane.client.types import DataType
from milvus_dataplane.exceptions import (
    DataNotMatchException,
    ExceptionsMessage,
    ParamError,
)
from milvus_dataplane.settings import Config

from .base import TypeHandler

logger = logging.getLogger(__name__)


def _native_scalar(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


def _to_native(obj: Any) -> Any:
    """Swap numpy values for python ones without recursing, so deep nesting is fine."""
    root = [obj]
    pending = [(root, 0)]
    while pending:
        container, key = pending.pop()
        value = _native_scalar(container[key])
        if isinstance(value, dict):
            value = dict(value)
            pending.extend((value, k) for k in value)
        elif isinstance(value, (list, tuple)):
            value = list(value)
            pending.extend((value, i) for i in range(len(value)))
        container[key] = value
    return root[0]


def _check_json_keys(obj: Any):
    if isinstance(obj, dict) and any(not isinstance(k, str) for k in obj):
        raise DataNotMatchException(message=ExceptionsMessage.JSONKeyMustBeStr)


def convert_to_json(obj: object) -> bytes:
    # a str is taken as already serialized JSON
    if isinstance(obj, str):
        try:
            _check_json_keys(orjson.loads(obj))
        except orjson.JSONDecodeError as e:
            shown = obj if len(obj) <= 200 else obj[:200] + "..."
            raise DataNotMatchException(message=f"Invalid JSON string: {e!s}. Input string: {shown!r}") from e
        return obj.encode(Config.EncodeProtocol)

    _check_json_keys(obj)
    native = _to_native(obj)
    try:
        return orjson.dumps(native)
    except RecursionError:
        return json.dumps(native).encode(Config.EncodeProtocol)
    except TypeError as e:
        # orjson stops at 255 levels of nesting and reports it as a TypeError
        if "Recursion limit" in str(e):
            return json.dumps(native).encode(Config.EncodeProtocol)
        raise DataNotMatchException(message=f"Value is not JSON serializable: {e!s}") from e


class JsonHandler(TypeHandler):
    """Handler for JSON type."""

    @property
    def data_type(self):
        return DataType.JSON

    def encode(self, value: Any, field_name: str = "", **kwargs) -> bytes:
        return convert_to_json(value)

    def decode(self, wire: Any, **kwargs) -> Any:
        try:
            return orjson.loads(wire)
        except orjson.JSONDecodeError as e:
            logger.error(f"Failed to load JSON data: {e}, original data: {wire!r}")
            raise


class ArrayHandler(TypeHandler):
    """Handler for ARRAY type, elements are encoded by the element type's handler."""

    @property
    def data_type(self):
        return DataType.ARRAY

    def encode(
        self,
        value: Any,
        field_name: str = "",
        element_type: Optional[DataType] = None,
        max_capacity: Optional[int] = None,
        max_length: int = 0,
        **kwargs,
    ) -> List[Any]:
        from .registry import get_type_handler  # noqa: PLC0415

        if isinstance(value, np.ndarray):
            value = value.tolist()
        if not isinstance(value, (list, tuple)):
            raise DataNotMatchException(
                message=ExceptionsMessage.FieldDataInconsistent % (field_name, "array", type(value))
            )
        if max_capacity is not None and len(value) > max_capacity:
            raise ParamError(
                message=ExceptionsMessage.ArrayTooLong % (field_name, len(value), max_capacity)
            )
        if element_type in (None, DataType.ARRAY, DataType.JSON) or element_type >= DataType.BINARY_VECTOR:
            raise ParamError(
                message=f"Unsupported element type: {element_type} for Array field: {field_name}"
            )
        handler = get_type_handler(element_type)
        return [handler.encode(v, field_name=field_name, max_length=max_length) for v in value]

    def decode(self, wire: Any, element_type: Optional[DataType] = None, **kwargs) -> List[Any]:
        if element_type is None:
            return list(wire)
        from .registry import get_type_handler  # noqa: PLC0415

        handler = get_type_handler(element_type)
        return [handler.decode(v) for v in wire]
