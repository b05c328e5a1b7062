import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import pandas as pd

from milvus_dataplane.exceptions import (
    AmbiguousInputShapeException,
    DataNotMatchException,
    EmptyInputException,
    ExceptionsMessage,
    MilvusException,
    MissingRequiredFieldException,
    ParamError,
    SchemaColumnMismatchException,
    UnknownFieldException,
)
from milvus_dataplane.settings import Config

from .columnar import ColumnSet, FieldColumn
from .schema import CollectionSchema, FieldSchema
from .transformers import Transformers
from .type_handlers import (
    convert_to_json,
    decode_vector,
    encode_vector,
    get_type_handler,
)
from .types import DataType
from .utils import SciPyHelper, is_sparse_vector_type, is_vector_type

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def get_input_num_rows(entity: Any) -> int:
    if SciPyHelper.is_scipy_sparse(entity):
        return entity.shape[0]
    return len(entity)


def _is_dynamic_column(column: FieldColumn) -> bool:
    return column.is_dynamic or column.field_name == Config.DynamicFieldName


def pack_field_value(
    value: Any,
    field: FieldSchema,
    transformers: Optional[Transformers] = None,
) -> Any:
    """Convert one non-null row value of ``field`` into its wire form."""
    if is_vector_type(field.dtype):
        transformer = transformers.for_type(field.dtype) if transformers else None
        return encode_vector(field.dtype, field.dim or 0, value, transformer, field.name)

    handler = get_type_handler(field.dtype)
    return handler.encode(
        value,
        field_name=field.name,
        max_length=field.max_length,
        element_type=field.element_type,
        max_capacity=field.max_capacity,
    )


def _new_column(field: FieldSchema) -> FieldColumn:
    return FieldColumn(
        field_name=field.name,
        type=field.dtype,
        dim=field.dim or 0,
        element_type=field.element_type,
    )


def _columns_to_rows(
    schema: CollectionSchema,
    columns: Any,
    input_fields: List[FieldSchema],
) -> List[Row]:
    """Turn column-oriented input into rows so both shapes share one marshalling path."""
    if isinstance(columns, pd.DataFrame):
        named = {}
        for name in columns.columns:
            values = columns[name].tolist()
            field = schema.get_field(name)
            if field is not None and (field.nullable or field.has_default_value):
                # pandas stores missing scalars as NaN
                values = [None if isinstance(v, float) and math.isnan(v) else v for v in values]
            named[name] = values
    elif isinstance(columns, Mapping):
        named = dict(columns)
    elif isinstance(columns, (list, tuple)):
        if len(columns) != len(input_fields):
            raise ParamError(
                message=ExceptionsMessage.FieldsNumInconsistent % (len(input_fields), len(columns))
            )
        named = {field.name: values for field, values in zip(input_fields, columns)}
    else:
        raise ParamError(
            message=f"columns should be a list of field values, a dict or a pandas.DataFrame, got '{type(columns).__name__}'"
        )

    num_rows = None
    for name, values in named.items():
        if values is None:
            continue
        size = get_input_num_rows(values)
        if num_rows not in (None, size):
            raise ParamError(
                message=f"{ExceptionsMessage.DataLengthsInconsistent} Field [{name}] got size={size}, alignment size={num_rows}"
            )
        num_rows = size

    rows = [{} for _ in range(num_rows or 0)]
    for name, values in named.items():
        if values is None:
            continue
        if SciPyHelper.is_scipy_sparse(values):
            csr = values.tocsr()
            values = [csr[i : i + 1] for i in range(csr.shape[0])]
        for row, value in zip(rows, values):
            row[name] = value
    return rows


def entities_to_columns(
    schema: CollectionSchema,
    rows: Optional[Union[Row, List[Row]]] = None,
    columns: Optional[Any] = None,
    transformers: Optional[Union[Transformers, Dict]] = None,
    is_upsert: bool = False,
) -> ColumnSet:
    """Marshal a write payload into one column per field.

    Exactly one of ``rows`` (a list of dicts) and ``columns`` (per-field value
    lists in schema order, a ``{name: values}`` dict or a ``pandas.DataFrame``)
    must be given. Nullable columns carry a ``valid_data`` flag for every row.
    """
    if (rows is None) == (columns is None):
        raise AmbiguousInputShapeException(
            message=ExceptionsMessage.AmbiguousInputShape
            % ("both" if rows is not None else "neither")
        )
    transformers = Transformers.of(transformers)

    primary = schema.primary_field
    input_fields = schema.input_fields()
    # upserts must name the row they replace, auto_id or not
    if is_upsert and primary is not None and primary.auto_id:
        input_fields = [primary, *input_fields]

    if columns is not None:
        rows = _columns_to_rows(schema, columns, input_fields)
    if isinstance(rows, dict):
        rows = [rows]
    if not isinstance(rows, (list, tuple)):
        raise ParamError(message=f"rows should be a list of dict, got '{type(rows).__name__}'")
    if len(rows) == 0:
        raise EmptyInputException(message=ExceptionsMessage.EmptyInput)

    function_output_names = {f.name for f in schema.fields if f.is_function_output}
    input_names = {f.name for f in input_fields}
    enable_dynamic = schema.enable_dynamic_field

    fields_data = {field.name: _new_column(field) for field in input_fields}
    dynamic_column = None
    if enable_dynamic:
        dynamic_column = FieldColumn(
            field_name=Config.DynamicFieldName, type=DataType.JSON, is_dynamic=True
        )

    for row in rows:
        if not isinstance(row, dict):
            raise DataNotMatchException(
                message=f"expected Dict, got '{type(row).__name__}'"
            )
        extra = {}
        for key, value in row.items():
            if key in input_names:
                continue
            if primary is not None and key == primary.name and primary.auto_id:
                raise ParamError(message=ExceptionsMessage.AutoIDWithData % key)
            if key in function_output_names:
                raise DataNotMatchException(
                    message=ExceptionsMessage.InsertUnexpectedFunctionOutputField % key
                )
            if not enable_dynamic:
                raise UnknownFieldException(message=ExceptionsMessage.InsertUnexpectedField % key)
            extra[key] = value

        for field in input_fields:
            column = fields_data[field.name]
            value = row.get(field.name)
            if value is None:
                if field.has_default_value:
                    value = field.default_value
                elif field.nullable:
                    column.data.append(None)
                    column.valid_data.append(False)
                    continue
                else:
                    raise MissingRequiredFieldException(
                        message=ExceptionsMessage.InsertMissedField % field.name
                    )
            column.data.append(pack_field_value(value, field, transformers))
            if field.nullable:
                column.valid_data.append(True)

        if dynamic_column is not None:
            dynamic_column.data.append(convert_to_json(extra))

    columns_out = list(fields_data.values())
    if dynamic_column is not None:
        columns_out.append(dynamic_column)

    for column in columns_out:
        if is_sparse_vector_type(column.type):
            sparse_handler = get_type_handler(column.type)
            column.dim = max(
                (sparse_handler.row_dim(w) for w in column.data if w is not None), default=0
            )

    column_set = ColumnSet(num_rows=len(rows), fields_data=columns_out)
    check_column_lengths(column_set)
    return column_set


def check_column_lengths(column_set: ColumnSet) -> None:
    for column in column_set:
        if len(column.data) != column_set.num_rows:
            raise ParamError(
                message=ExceptionsMessage.ColumnLengthInconsistent
                % (column.field_name, len(column.data), column_set.num_rows)
            )
        if column.valid_data and len(column.valid_data) != column_set.num_rows:
            raise ParamError(
                message=ExceptionsMessage.ColumnLengthInconsistent
                % (column.field_name, len(column.valid_data), column_set.num_rows)
            )


def check_columns_against_schema(
    schema: CollectionSchema, fields_data: Iterable[FieldColumn]
) -> None:
    """Every returned column must be a schema field of the declared type."""
    for column in fields_data:
        if _is_dynamic_column(column):
            continue
        field = schema.get_field(column.field_name)
        if field is None:
            raise SchemaColumnMismatchException(
                message=ExceptionsMessage.ColumnNotInSchema
                % (column.field_name, schema.collection_name)
            )
        if column.type != field.dtype:
            raise SchemaColumnMismatchException(
                message=ExceptionsMessage.SchemaColumnMismatch
                % (column.field_name, DataType(column.type).name, field.dtype.name)
            )
        if field.dtype == DataType.ARRAY and column.element_type not in (None, field.element_type):
            got = f"ARRAY<{DataType(column.element_type).name}>"
            raise SchemaColumnMismatchException(
                message=ExceptionsMessage.SchemaColumnMismatch
                % (column.field_name, got, f"ARRAY<{field.element_type.name}>")
            )


def extract_dynamic_fields(
    fields_data: Iterable[FieldColumn], output_fields: Optional[List[str]]
) -> Tuple[Optional[str], Set[str]]:
    """Return the dynamic column name and which of its keys were asked for.

    An empty key set means every key of the dynamic column is returned.
    """
    dynamic_field_name = None
    field_names = set()
    for column in fields_data:
        field_names.add(column.field_name)
        if _is_dynamic_column(column):
            dynamic_field_name = column.field_name

    dynamic_fields = set()
    for name in output_fields or []:
        if name in (dynamic_field_name, "*"):
            dynamic_fields.clear()
            break
        if name not in field_names:
            dynamic_fields.add(name)
    return dynamic_field_name, dynamic_fields


def extract_field_value(
    column: FieldColumn,
    index: int,
    transformers: Optional[Transformers] = None,
    sparse_format: str = "dict",
) -> Any:
    if not column.is_valid(index):
        return None
    wire = column.data[index]
    if wire is None:
        return None

    dtype = DataType(column.type)
    if is_vector_type(dtype):
        transformer = transformers.for_type(dtype) if transformers else None
        return decode_vector(dtype, column.dim, wire, transformer, sparse_format)
    return get_type_handler(dtype).decode(wire, element_type=column.element_type)


def extract_row_data(
    fields_data: List[FieldColumn],
    index: int,
    dynamic_fields: Optional[Set[str]] = None,
    transformers: Optional[Transformers] = None,
    sparse_format: str = "dict",
) -> Row:
    row = {}
    for column in fields_data:
        if index >= len(column.data):
            continue
        value = extract_field_value(column, index, transformers, sparse_format)
        if not _is_dynamic_column(column):
            row[column.field_name] = value
            continue
        # dynamic keys never shadow a schema field of the same row
        if not value:
            continue
        if dynamic_fields:
            row.update({k: v for k, v in value.items() if k in dynamic_fields and k not in row})
        else:
            row.update({k: v for k, v in value.items() if k not in row})
    return row


def extract_rows(
    schema: CollectionSchema,
    column_set: Union[ColumnSet, List[FieldColumn]],
    output_fields: Optional[List[str]] = None,
    transformers: Optional[Union[Transformers, Dict]] = None,
    sparse_format: str = "dict",
) -> List[Row]:
    """Rebuild one row per position across the returned columns."""
    if isinstance(column_set, ColumnSet):
        fields_data, num_rows = column_set.fields_data, column_set.num_rows
    else:
        fields_data = list(column_set)
        num_rows = max((len(c) for c in fields_data), default=0)

    check_columns_against_schema(schema, fields_data)
    transformers = Transformers.of(transformers)
    _, dynamic_fields = extract_dynamic_fields(fields_data, output_fields)

    try:
        return [
            extract_row_data(fields_data, i, dynamic_fields, transformers, sparse_format)
            for i in range(num_rows)
        ]
    except MilvusException:
        raise
    except (TypeError, ValueError) as e:
        raise DataNotMatchException(message=f"Failed to extract rows from columns: {e!s}") from e
