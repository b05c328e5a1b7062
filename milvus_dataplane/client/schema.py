import copy
import logging
from typing import Any, Dict, List, Optional

from milvus_dataplane.exceptions import (
    DataTypeNotSupportException,
    ExceptionsMessage,
    ParamError,
    PrimaryKeyException,
)
from milvus_dataplane.settings import Config

from .types import DataType, get_data_type
from .utils import is_legal_pk_type, is_sparse_vector_type, is_vector_type

logger = logging.getLogger(__name__)


class FieldSchema:
    """Field descriptor of a loaded collection schema.

    Instances are read-only: every attribute is a property over values fixed at
    construction, so a schema can be shared by concurrent marshalling calls.
    """

    def __init__(self, name: str, dtype: Any, description: str = "", **kwargs) -> None:
        try:
            dtype = get_data_type(dtype)
        except ValueError:
            raise DataTypeNotSupportException(message=f"Field dtype must be of DataType, got {dtype!r}") from None
        if dtype in (DataType.UNKNOWN, DataType.NONE):
            raise DataTypeNotSupportException(message=f"Field dtype must be of DataType, got {dtype!r}")

        self._name = name
        self._dtype = dtype
        self._description = description
        self._is_primary = bool(kwargs.get("is_primary", False))
        self._auto_id = bool(kwargs.get("auto_id", False))
        if self._auto_id and not self._is_primary:
            raise PrimaryKeyException(message="The auto_id can only be specified on the primary key field")
        self._nullable = bool(kwargs.get("nullable", False))
        self._is_dynamic = bool(kwargs.get("is_dynamic", False))
        self._is_function_output = bool(kwargs.get("is_function_output", False))
        self._default_value = kwargs.get("default_value")

        element_type = kwargs.get("element_type")
        self._element_type = get_data_type(element_type) if element_type else None
        if dtype == DataType.ARRAY and self._element_type is None:
            raise ParamError(message=f"Array field `{name}` must specify an element_type")

        self._dim = None
        if is_vector_type(dtype) and not is_sparse_vector_type(dtype):
            dim = kwargs.get("dim")
            if dim is None:
                raise ParamError(message=f"Vector field `{name}` must specify dim")
            self._dim = int(dim)
        self._max_length = int(kwargs.get(Config.MaxVarCharLengthKey, Config.MaxVarCharLength))
        max_capacity = kwargs.get(Config.MaxCapacityKey)
        self._max_capacity = int(max_capacity) if max_capacity is not None else None

    @classmethod
    def construct_from_dict(cls, raw: Dict) -> "FieldSchema":
        kwargs = {}
        kwargs.update(raw.get("params", {}))
        for key in (
            "is_primary",
            "auto_id",
            "nullable",
            "is_dynamic",
            "is_function_output",
            "element_type",
        ):
            if raw.get(key) is not None:
                kwargs[key] = raw[key]
        if "default_value" in raw:
            kwargs["default_value"] = raw["default_value"]
        return cls(raw["name"], raw["type"], raw.get("description", ""), **kwargs)

    def to_dict(self) -> Dict:
        _dict = {
            "name": self._name,
            "description": self._description,
            "type": self._dtype,
        }
        params = {}
        if self._dim is not None:
            params["dim"] = self._dim
        if self._dtype in (DataType.VARCHAR, DataType.ARRAY):
            params[Config.MaxVarCharLengthKey] = self._max_length
        if self._max_capacity is not None:
            params[Config.MaxCapacityKey] = self._max_capacity
        if params:
            _dict["params"] = params
        if self._is_primary:
            _dict["is_primary"] = True
            _dict["auto_id"] = self._auto_id
        if self._nullable:
            _dict["nullable"] = True
        if self._default_value is not None:
            _dict["default_value"] = copy.deepcopy(self._default_value)
        if self._element_type is not None:
            _dict["element_type"] = self._element_type
        if self._is_dynamic:
            _dict["is_dynamic"] = True
        if self._is_function_output:
            _dict["is_function_output"] = True
        return _dict

    def __repr__(self) -> str:
        return str(self.to_dict())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldSchema):
            return False
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self._name, self._dtype))

    @property
    def name(self) -> str:
        return self._name

    @property
    def dtype(self) -> DataType:
        return self._dtype

    @property
    def description(self) -> str:
        return self._description

    @property
    def element_type(self) -> Optional[DataType]:
        return self._element_type

    @property
    def dim(self) -> Optional[int]:
        return self._dim

    @property
    def nullable(self) -> bool:
        return self._nullable

    @property
    def default_value(self) -> Any:
        return self._default_value

    @property
    def has_default_value(self) -> bool:
        return self._default_value is not None

    @property
    def is_primary(self) -> bool:
        return self._is_primary

    @property
    def auto_id(self) -> bool:
        return self._auto_id

    @property
    def is_dynamic(self) -> bool:
        return self._is_dynamic

    @property
    def is_function_output(self) -> bool:
        return self._is_function_output

    @property
    def max_length(self) -> int:
        return self._max_length

    @property
    def max_capacity(self) -> Optional[int]:
        return self._max_capacity


class CollectionSchema:
    def __init__(
        self,
        fields: List[FieldSchema],
        description: str = "",
        enable_dynamic_field: bool = False,
        collection_name: str = "",
    ) -> None:
        if not fields:
            raise ParamError(message="The field of the schema cannot be empty.")
        self._fields = tuple(fields)
        self._description = description
        self._enable_dynamic_field = bool(enable_dynamic_field)
        self._collection_name = collection_name
        self._by_name = {f.name: f for f in self._fields}
        if len(self._by_name) != len(self._fields):
            raise ParamError(message="Duplicate field names are not allowed in a schema.")

        primaries = [f for f in self._fields if f.is_primary]
        if len(primaries) > 1:
            raise PrimaryKeyException(
                message=f"Expected only one primary key field, got {[f.name for f in primaries]}."
            )
        self._primary_field = primaries[0] if primaries else None
        if self._primary_field is not None and not is_legal_pk_type(self._primary_field.dtype):
            raise PrimaryKeyException(message=ExceptionsMessage.PrimaryKeyType)

    @classmethod
    def construct_from_dict(cls, raw: Dict) -> "CollectionSchema":
        fields = [FieldSchema.construct_from_dict(f) for f in raw.get("fields", [])]
        # the dynamic $meta field is a storage detail, the flag is what callers care about
        fields = [f for f in fields if not f.is_dynamic]
        return cls(
            fields,
            description=raw.get("description", ""),
            enable_dynamic_field=raw.get("enable_dynamic_field", False),
            collection_name=raw.get("collection_name", ""),
        )

    def to_dict(self) -> Dict:
        return {
            "collection_name": self._collection_name,
            "description": self._description,
            "fields": [f.to_dict() for f in self._fields],
            "enable_dynamic_field": self._enable_dynamic_field,
        }

    def __repr__(self) -> str:
        return str(self.to_dict())

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    @property
    def fields(self) -> List[FieldSchema]:
        return list(self._fields)

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def description(self) -> str:
        return self._description

    @property
    def enable_dynamic_field(self) -> bool:
        return self._enable_dynamic_field

    @property
    def primary_field(self) -> Optional[FieldSchema]:
        return self._primary_field

    @property
    def vector_fields(self) -> List[FieldSchema]:
        return [f for f in self._fields if is_vector_type(f.dtype)]

    def get_field(self, name: str) -> Optional[FieldSchema]:
        return self._by_name.get(name)

    def input_fields(self) -> List[FieldSchema]:
        """Fields a write is expected to carry data for, in schema order."""
        return [
            f for f in self._fields if not (f.is_primary and f.auto_id) and not f.is_function_output
        ]
