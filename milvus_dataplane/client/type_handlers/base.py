"""
Base classes for type handlers.

This module contains the abstract base classes shared by every handler: a
handler owns the conversion of one field's value between its row form and the
wire form stored in a ``FieldColumn``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np

from milvus_dataplane.client.types import DataType

logger = logging.getLogger(__name__)


class TypeHandler(ABC):
    """Base class for data type handlers.

    Handlers encapsulate type-specific logic for:
    - Writing a row value to its wire form (encode)
    - Reading a wire value back to its row form (decode)

    Non-type-specific logic (nullability, defaults, validity bitmaps, column
    lengths) is handled by the caller, not in handlers. Handlers hold no state
    and are safe to share between threads.
    """

    @property
    @abstractmethod
    def data_type(self) -> DataType:
        """The data type this handler supports."""

    @abstractmethod
    def encode(self, value: Any, field_name: str = "", **kwargs) -> Any:
        """
        Convert one row value into its wire form.

        Args:
            value: The row value, never None
            field_name: Used in error messages
            kwargs: Type parameters of the field (dim, max_length, element_type, ...)
        """

    @abstractmethod
    def decode(self, wire: Any, **kwargs) -> Any:
        """
        Convert one wire value back into its row form.

        Args:
            wire: The value stored in the column for one row
            kwargs: Type parameters of the field
        """

    def is_vector(self) -> bool:
        return False


class VectorHandler(TypeHandler):
    """Abstract base class for vector type handlers.

    Vector handlers must implement get_bytes_per_vector(), get_numpy_dtype() and
    check_wire(). A caller supplied transformer replaces encode/decode for one call.
    """

    def is_vector(self) -> bool:
        return True

    @abstractmethod
    def get_bytes_per_vector(self, dim: int) -> int:
        """
        Get the number of bytes (or elements for float) per vector.

        Args:
            dim: Vector dimension

        Returns:
            Number of bytes per vector (or number of elements for FLOAT_VECTOR),
            0 for variable length vectors
        """

    @abstractmethod
    def get_numpy_dtype(self) -> Optional[np.dtype]:
        """Return the numpy dtype of one element, None when there is none."""

    @abstractmethod
    def check_wire(self, wire: Any, dim: int, field_name: str = "") -> Any:
        """Validate a wire value against the field's dimension and return it."""
