import logging
from typing import Any, Dict, List, Optional, Union

import orjson
import ujson

from milvus_dataplane.exceptions import (
    DataTypeNotMatchException,
    ExceptionsMessage,
    ParamError,
    PrimaryKeyException,
)
from milvus_dataplane.settings import Config

from . import entity_helper, utils
from .constants import (
    ANNS_FIELD,
    COLLECTION_NAME,
    FILTER,
    GROUP_BY_FIELD,
    GROUP_SIZE,
    GUARANTEE_TIMESTAMP,
    ITER_SEARCH_BATCH_SIZE_KEY,
    ITER_SEARCH_ID_KEY,
    ITER_SEARCH_LAST_BOUND_KEY,
    ITER_SEARCH_V2_KEY,
    ITERATOR_FIELD,
    METRIC_TYPE,
    MILVUS_LIMIT,
    OFFSET,
    OUTPUT_FIELDS,
    PARAMS,
    PLACEHOLDER,
    REDUCE_STOP_FOR_BEST,
    ROUND_DECIMAL,
    STRICT_GROUP_SIZE,
)
from .schema import CollectionSchema, FieldSchema
from .transformers import Transformers
from .type_handlers import encode_vector
from .types import DataType

logger = logging.getLogger(__name__)

# search keywords forwarded as-is into the search params
_FORWARDED_SEARCH_KEYS = (
    ITERATOR_FIELD,
    ITER_SEARCH_V2_KEY,
    ITER_SEARCH_BATCH_SIZE_KEY,
    ITER_SEARCH_LAST_BOUND_KEY,
    ITER_SEARCH_ID_KEY,
    GROUP_BY_FIELD,
    GROUP_SIZE,
    STRICT_GROUP_SIZE,
)


def _check_expr(expr: Any):
    if expr is not None and not isinstance(expr, str):
        raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(expr))


class Prepare:
    """Builders of the request dicts handed to ``Transport.execute``."""

    @staticmethod
    def pk_literal(pk_field: FieldSchema, pk: Any) -> str:
        # Varchar pks need double quotes around the values
        if pk_field.dtype == DataType.VARCHAR:
            return orjson.dumps(str(pk)).decode(Config.EncodeProtocol)
        if isinstance(pk, bool) or not isinstance(pk, int):
            raise PrimaryKeyException(
                message=f"primary key `{pk_field.name}` expects int values, got {type(pk).__name__}"
            )
        return str(pk)

    @classmethod
    def pack_pks_expr(cls, schema: CollectionSchema, pks: List[Union[int, str]]) -> str:
        pk_field = schema.primary_field
        if pk_field is None:
            raise PrimaryKeyException(message=ExceptionsMessage.NoPrimaryKey)
        ids = [cls.pk_literal(pk_field, pk) for pk in pks]
        return f"{pk_field.name} in [{','.join(ids)}]"

    @classmethod
    def pk_boundary_expr(cls, pk_field: FieldSchema, last_pk: Any, expr: Optional[str]) -> str:
        """``expr`` narrowed to primary keys after ``last_pk``."""
        boundary = f"{pk_field.name} > {cls.pk_literal(pk_field, last_pk)}"
        if expr:
            return f"({expr}) and {boundary}"
        return boundary

    @classmethod
    def row_insert_param(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        rows: Optional[Union[Dict, List[Dict]]] = None,
        columns: Optional[Any] = None,
        partition_name: Optional[str] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        is_upsert: bool = False,
    ) -> Dict[str, Any]:
        column_set = entity_helper.entities_to_columns(
            schema, rows=rows, columns=columns, transformers=transformers, is_upsert=is_upsert
        )
        return {
            COLLECTION_NAME: collection_name,
            "partition_name": partition_name if isinstance(partition_name, str) else "",
            "fields_data": column_set.fields_data,
            "num_rows": column_set.num_rows,
        }

    @classmethod
    def delete_request(
        cls,
        collection_name: str,
        filter: str,
        partition_name: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        _check_expr(filter)
        return {
            COLLECTION_NAME: collection_name,
            "partition_name": partition_name or "",
            FILTER: filter,
            "expr_params": kwargs.get("expr_params", {}),
        }

    @classmethod
    def query_request(
        cls,
        collection_name: str,
        expr: str,
        output_fields: Optional[List[str]],
        partition_names: Optional[List[str]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        _check_expr(expr)
        req = {
            COLLECTION_NAME: collection_name,
            FILTER: expr or "",
            OUTPUT_FIELDS: list(output_fields or []),
            "partition_names": list(partition_names or []),
            "expr_params": kwargs.get("expr_params", {}),
            GUARANTEE_TIMESTAMP: kwargs.get(GUARANTEE_TIMESTAMP, 0),
        }
        for key in (MILVUS_LIMIT, OFFSET, ITERATOR_FIELD, REDUCE_STOP_FOR_BEST):
            if kwargs.get(key) is not None:
                req[key] = kwargs[key]
        return req

    @staticmethod
    def resolve_anns_field(schema: CollectionSchema, anns_field: Optional[str]) -> FieldSchema:
        if anns_field:
            field = schema.get_field(anns_field)
            if field is None or not utils.is_vector_type(field.dtype):
                raise ParamError(
                    message=f"anns_field `{anns_field}` is not a vector field of collection `{schema.collection_name}`"
                )
            return field
        vector_fields = schema.vector_fields
        if not vector_fields:
            raise ParamError(message=ExceptionsMessage.NoVector)
        if len(vector_fields) > 1:
            raise ParamError(
                message=ExceptionsMessage.AnnsFieldAmbiguous
                % (schema.collection_name, [f.name for f in vector_fields])
            )
        return vector_fields[0]

    @classmethod
    def placeholder(
        cls,
        field: FieldSchema,
        data: Any,
        transformers: Optional[Transformers] = None,
    ) -> Dict[str, Any]:
        """Encode the query vectors of a search the way the field stores them."""
        if utils.SciPyHelper.is_scipy_sparse(data):
            csr = data.tocsr()
            data = [csr[i : i + 1] for i in range(csr.shape[0])]
        elif isinstance(data, dict):
            data = [data]
        transformer = transformers.for_type(field.dtype) if transformers else None
        values = [encode_vector(field.dtype, field.dim or 0, v, transformer, field.name) for v in data]
        return {"type": field.dtype, "values": values}

    @classmethod
    def search_requests_with_expr(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        data: Any,
        anns_field: Optional[str],
        param: Dict,
        limit: int,
        expr: Optional[str] = None,
        partition_names: Optional[List[str]] = None,
        output_fields: Optional[List[str]] = None,
        round_decimal: int = -1,
        transformers: Optional[Union[Transformers, Dict]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        _check_expr(expr)
        field = cls.resolve_anns_field(schema, anns_field)
        params = param.get(PARAMS, {})
        if not isinstance(params, dict):
            raise ParamError(message=f"Search params must be a dict, got {type(params)}")

        search_params = {
            "topk": limit,
            ROUND_DECIMAL: round_decimal,
            "ignore_growing": param.get("ignore_growing", False) or kwargs.get("ignore_growing", False),
            PARAMS: utils.dumps(params),
        }
        metric_type = param.get(METRIC_TYPE)
        if metric_type:
            search_params[METRIC_TYPE] = metric_type

        if OFFSET in kwargs and OFFSET in param:
            raise ParamError(message="Provide offset both in kwargs and param, expect just one")
        offset = kwargs.get(OFFSET) or param.get(OFFSET)
        if offset is not None:
            if not isinstance(offset, int):
                raise ParamError(message=f"wrong type for offset, expect int, got {type(offset)}")
            search_params[OFFSET] = offset

        for key in _FORWARDED_SEARCH_KEYS:
            if kwargs.get(key) is not None:
                search_params[key] = kwargs[key]

        placeholder = cls.placeholder(field, data, Transformers.of(transformers))
        return {
            COLLECTION_NAME: collection_name,
            ANNS_FIELD: field.name,
            PLACEHOLDER: placeholder,
            "nq": len(placeholder["values"]),
            "search_params": search_params,
            FILTER: expr or "",
            OUTPUT_FIELDS: list(output_fields or []),
            "partition_names": list(partition_names or []),
            "expr_params": kwargs.get("expr_params", {}),
            GUARANTEE_TIMESTAMP: kwargs.get(GUARANTEE_TIMESTAMP, 0),
        }
