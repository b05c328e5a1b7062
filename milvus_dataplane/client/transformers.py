"""
Per-call overrides of the built-in vector codec.

A ``Transformers`` maps a vector ``DataType`` to a user function. When a
function is present for a subtype it replaces the built-in conversion for that
subtype for the duration of one call; absent subtypes use the built-in codec.

Examples:
    >>> import ml_dtypes, numpy as np
    >>> insert_transformers = Transformers({
    ...     DataType.BFLOAT16_VECTOR: lambda v: np.asarray(v, dtype=ml_dtypes.bfloat16).tobytes(),
    ... })
    >>> output_transformers = Transformers({
    ...     DataType.FLOAT16_VECTOR: lambda b: np.frombuffer(b, dtype=np.float16).tolist(),
    ... })
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, Optional, Union

from milvus_dataplane.exceptions import ExceptionsMessage, ParamError

from .types import DataType, get_data_type
from .utils import is_vector_type

Transformer = Callable[[Any], Any]


class Transformers(Mapping):
    def __init__(self, transformers: Optional[Dict[Any, Transformer]] = None):
        self._transformers: Dict[DataType, Transformer] = {}
        for dtype, func in (transformers or {}).items():
            dtype = get_data_type(dtype)
            if not is_vector_type(dtype):
                raise ParamError(message=ExceptionsMessage.TransformerNotVector % dtype.name)
            if not callable(func):
                raise ParamError(
                    message=ExceptionsMessage.TransformerNotCallable % (dtype.name, type(func))
                )
            self._transformers[dtype] = func

    @classmethod
    def of(cls, transformers: Union[None, "Transformers", Dict]) -> "Transformers":
        if isinstance(transformers, Transformers):
            return transformers
        return cls(transformers)

    def __getitem__(self, dtype: DataType) -> Transformer:
        return self._transformers[dtype]

    def __iter__(self) -> Iterator[DataType]:
        return iter(self._transformers)

    def __len__(self) -> int:
        return len(self._transformers)

    def __repr__(self) -> str:
        return f"Transformers({sorted(d.name for d in self._transformers)})"

    def for_type(self, dtype: DataType) -> Optional[Transformer]:
        return self._transformers.get(dtype)
