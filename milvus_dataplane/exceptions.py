# Copyright (C) 2019-2021 Zilliz. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not use this file except
# in compliance with the License. You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software distributed under the License
# is distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express
# or implied. See the License for the specific language governing permissions and limitations under
# the License.

from enum import IntEnum


class ErrorCode(IntEnum):
    SUCCESS = 0
    UNEXPECTED_ERROR = 1
    ILLEGAL_ARGUMENT = 5
    COLLECTION_NOT_FOUND = 100
    SCHEMA_MISMATCH = 1100


class MilvusException(Exception):
    def __init__(
        self,
        code: int = ErrorCode.UNEXPECTED_ERROR,
        message: str = "",
    ) -> None:
        super().__init__()
        self._code = code
        self._message = message

    @property
    def code(self):
        return self._code

    @property
    def message(self):
        return self._message

    def __str__(self) -> str:
        return f"<{type(self).__name__}: (code={self.code}, message={self.message})>"


class ParamError(MilvusException):
    """Raise when params are incorrect"""

    def __init__(self, code: int = ErrorCode.ILLEGAL_ARGUMENT, message: str = "") -> None:
        super().__init__(code=code, message=message)


class CollectionNotExistException(MilvusException):
    """Raise when collections doesn't exist"""


class DataTypeNotMatchException(MilvusException):
    """Raise when datatype dosen't match"""


class DataTypeNotSupportException(MilvusException):
    """Raise when datatype isn't supported"""


class DataNotMatchException(MilvusException):
    """Raise when insert data isn't match with schema"""


class PrimaryKeyException(MilvusException):
    """Raise when primarykey are invalid"""


class EmptyInputException(ParamError):
    """Raise when no rows are given to a write"""


class MissingRequiredFieldException(ParamError):
    """Raise when a non-nullable field without default value has no data"""


class UnknownFieldException(ParamError):
    """Raise when a row carries a field the schema doesn't know"""


class AmbiguousInputShapeException(ParamError):
    """Raise when both or neither of rows and columns are given"""


class InvalidDimensionException(ParamError):
    """Raise when a vector doesn't match the declared dimension"""


class ValueOutOfRangeException(ParamError):
    """Raise when a vector element is outside of its subtype's range"""


class DuplicateIndexException(ParamError):
    """Raise when a sparse vector holds the same index twice"""


class NegativeIndexException(ParamError):
    """Raise when a sparse vector holds a negative index"""


class InvalidWeightsException(ParamError):
    """Raise when ranker weights don't fit the ranked lists"""


class SchemaColumnMismatchException(MilvusException):
    """Raise when a returned column disagrees with the collection schema"""

    def __init__(self, code: int = ErrorCode.SCHEMA_MISMATCH, message: str = "") -> None:
        super().__init__(code=code, message=message)


class ExceptionsMessage:
    EmptyInput = "Must pass in at least one row to insert or upsert."
    AmbiguousInputShape = (
        "Ambiguous input, exactly one of rows and columns should be specified, got %s."
    )
    InsertMissedField = (
        "Insert missed an field `%s` to collection without set nullable==true or set default_value"
    )
    InsertUnexpectedField = (
        "Attempt to insert an unexpected field `%s` to collection without enabling dynamic field"
    )
    InsertUnexpectedFunctionOutputField = (
        "Attempt to insert an unexpected function output field `%s` to collection"
    )
    AutoIDWithData = "Auto_id is True, primary field `%s` should not have data."
    DataLengthsInconsistent = "Arrays must all be same length."
    FieldsNumInconsistent = (
        "The data fields number is not match with schema, expected %d columns, got %d."
    )
    ColumnLengthInconsistent = "Column `%s` holds %d values but %d rows were marshalled."
    FieldDataInconsistent = "The Input data type is inconsistent with defined schema, {%s} field should be a %s, but got a {%s} instead."
    DimensionMismatch = "Vector field `%s` expects dim %d, got %d."
    BinaryDimInvalid = "Binary vector field `%s` dim must be positive, got %d."
    BinaryLengthMismatch = "Binary vector field `%s` of dim %d packs into %d bytes, got %d."
    BinaryElementInvalid = "Binary vector field `%s` accepts only 0 or 1 elements, got %r."
    Int8OutOfRange = "Int8 vector field `%s` element %r is out of range [-128, 127]."
    SparseDuplicateIndex = "Sparse vector holds duplicate index %d."
    SparseNegativeIndex = "Sparse vector index must not be negative, got %d."
    SparseIndexTooLarge = "Sparse vector index must be less than 2^32-1, got %d."
    SparseValueNotFinite = "Sparse vector value must be finite, got %r at index %d."
    SparseInvalidInput = "Input must be a sparse vector in supported format, got %s."
    UnsupportedVectorType = "Data type %s is not a vector type."
    TransformerNotVector = "Transformers can only be registered for vector types, got %s."
    TransformerNotCallable = "Transformer for %s must be callable, got %s."
    JSONKeyMustBeStr = "JSON key must be str."
    VarCharTooLong = (
        "invalid input of field (%s), length of string exceeds max length. "
        "length: %d, max length: %d"
    )
    ArrayTooLong = "invalid input of field (%s), array length %d exceeds max capacity %d"
    SchemaColumnMismatch = "Column `%s` is typed %s but the schema declares %s."
    ColumnNotInSchema = "Column `%s` is not a field of collection `%s`."
    WeightsCountMismatch = "WeightedRanker expects %d weights for %d ranked lists, got %d."
    WeightsSumNotPositive = "WeightedRanker weights must sum to a positive value, got %r."
    WeightNotNumber = "Weight must be a number, got %s."
    RRFInvalidK = "RRFRanker k must be a positive number, got %r."
    LimitInvalid = "limit must be a positive integer, got %r."
    ExprType = "The type of expr must be string ,but %r is given."
    AmbiguousDeleteFilterParam = (
        "Ambiguous filter parameter, only one deletion condition can be specified."
    )
    AmbiguousQueryFilterParam = (
        "Ambiguous parameter, either ids or filter should be specified, cannot support both."
    )
    NoPrimaryKey = "Schema must have a primary key field."
    PrimaryKeyType = "Primary key type must be DataType.INT64 or DataType.VARCHAR."
    BatchSizeInvalid = "batch size cannot be less than or equal to zero, got %r."
    IteratorLimitInvalid = "iterator limit must be -1 (unlimited) or a non-negative integer, got %r."
    SearchIteratorMultipleVectors = "search_iterator does not support processing multiple vectors simultaneously"
    SearchIteratorEmptyVectors = "The vector data for search cannot be empty"
    AnnsFieldAmbiguous = (
        "Collection `%s` has multiple vector fields %s, anns_field must be specified."
    )
    NoVector = "No vector field is found."
    CollectionNotExist = "Collection %r does not exist."
