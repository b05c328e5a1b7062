import logging
from typing import Any, Callable, Dict, List, Optional, Union

from milvus_dataplane.client.abstract import AnnSearchRequest, BaseRanker, MutationResult
from milvus_dataplane.client.constants import DISTANCE, UNLIMITED
from milvus_dataplane.client.iterator import QueryIterator, SearchIterator
from milvus_dataplane.client.prepare import Prepare
from milvus_dataplane.client.schema import CollectionSchema
from milvus_dataplane.client.schema_cache import SchemaCache
from milvus_dataplane.client.search_result import Hits, QueryResult, SearchResult, truncate_score
from milvus_dataplane.client.transformers import Transformers
from milvus_dataplane.client.transport import RequestKind, Transport
from milvus_dataplane.exceptions import (
    CollectionNotExistException,
    DataTypeNotMatchException,
    ErrorCode,
    ExceptionsMessage,
    ParamError,
    SchemaColumnMismatchException,
)

logger = logging.getLogger(__name__)


class MilvusClient:
    """Row-oriented data plane of one Milvus database.

    Every network round trip goes through ``transport``; the client itself only
    marshals requests and demarshals responses, and caches collection schemas.
    """

    def __init__(
        self,
        transport: Transport,
        db_name: str = "",
        schema_cache: Optional[SchemaCache] = None,
    ) -> None:
        if not isinstance(transport, Transport):
            raise ParamError(message=f"transport must be a Transport, got {type(transport).__name__}")
        self._transport = transport
        self._db_name = db_name
        self._schema_cache = schema_cache if schema_cache is not None else SchemaCache()

    def _load_schema(self, collection_name: str) -> CollectionSchema:
        raw = self._transport.execute(
            RequestKind.DESCRIBE_COLLECTION, {"collection_name": collection_name}
        )
        if not raw:
            raise CollectionNotExistException(
                code=ErrorCode.COLLECTION_NOT_FOUND,
                message=ExceptionsMessage.CollectionNotExist % collection_name,
            )
        raw = dict(raw)
        raw.setdefault("collection_name", collection_name)
        return CollectionSchema.construct_from_dict(raw)

    def describe_collection(self, collection_name: str) -> CollectionSchema:
        try:
            return self._schema_cache.get_or_load(collection_name, self._load_schema, self._db_name)
        except Exception:
            logger.error("Failed to describe collection: %s", collection_name)
            raise

    def _demarshal(self, collection_name: str, build: Callable[[], Any]) -> Any:
        try:
            return build()
        except SchemaColumnMismatchException:
            # the cached schema is stale, the next call reloads it
            self._schema_cache.invalidate(collection_name, self._db_name)
            raise

    def _mutate(
        self,
        kind: RequestKind,
        collection_name: str,
        data: Optional[Union[Dict, List[Dict]]],
        columns: Optional[Any],
        partition_name: Optional[str],
        transformers: Optional[Union[Transformers, Dict]],
    ) -> MutationResult:
        schema = self.describe_collection(collection_name)
        request = Prepare.row_insert_param(
            collection_name,
            schema,
            rows=data,
            columns=columns,
            partition_name=partition_name,
            transformers=transformers,
            is_upsert=kind == RequestKind.UPSERT,
        )
        try:
            return MutationResult(self._transport.execute(kind, request))
        except Exception:
            logger.error("Failed to %s into collection: %s", kind.value, collection_name)
            raise

    def insert(
        self,
        collection_name: str,
        data: Optional[Union[Dict, List[Dict]]] = None,
        partition_name: Optional[str] = "",
        columns: Optional[Any] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
    ) -> Dict:
        """Insert rows, or pre-built columns, into the collection.

        Args:
            data (List[Dict[str, any]]): rows to insert, a single dict is taken as one row
            columns: per-field value lists in schema order, or a pandas.DataFrame,
                instead of ``data``
            transformers: per vector type functions producing the wire value of a vector

        Raises:
            ParamError: if the rows don't fit the collection schema

        Returns:
            Dict: Number of rows that were inserted and the inserted primary key list.
        """
        res = self._mutate(
            RequestKind.INSERT, collection_name, data, columns, partition_name, transformers
        )
        return {"insert_count": res.insert_count, "ids": res.primary_keys}

    def upsert(
        self,
        collection_name: str,
        data: Optional[Union[Dict, List[Dict]]] = None,
        partition_name: Optional[str] = "",
        columns: Optional[Any] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
    ) -> Dict:
        res = self._mutate(
            RequestKind.UPSERT, collection_name, data, columns, partition_name, transformers
        )
        return {"upsert_count": res.upsert_count, "primary_keys": res.primary_keys}

    def delete(
        self,
        collection_name: str,
        ids: Optional[Union[list, str, int]] = None,
        filter: Optional[str] = None,
        partition_name: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, int]:
        """Delete entries in the collection by their pk or by filter.

        Note: You need to pass in either ids or filter, and they cannot be used at the same time.
        """
        pks = []
        if ids is not None:
            pks = [ids] if isinstance(ids, (int, str)) else list(ids)
            for pk in pks:
                if not isinstance(pk, (int, str)):
                    msg = f"wrong type of argument ids, expect list, int or str, got '{type(pk).__name__}'"
                    raise ParamError(message=msg)

        if filter and pks:
            raise ParamError(message=ExceptionsMessage.AmbiguousDeleteFilterParam)

        if pks:
            expr = Prepare.pack_pks_expr(self.describe_collection(collection_name), pks)
        else:
            if not isinstance(filter, str):
                raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(filter))
            expr = filter

        request = Prepare.delete_request(
            collection_name, expr, partition_name, expr_params=kwargs.get("filter_params", {})
        )
        try:
            res = MutationResult(self._transport.execute(RequestKind.DELETE, request))
        except Exception:
            logger.error("Failed to delete primary keys in collection: %s", collection_name)
            raise
        return {"delete_count": res.delete_count}

    def query(
        self,
        collection_name: str,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        ids: Optional[Union[List, str, int]] = None,
        partition_names: Optional[List[str]] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        sparse_format: str = "dict",
        **kwargs,
    ) -> QueryResult:
        """Query for entries in the Collection.

        Args:
            filter (str): The filter to use for the query.
            output_fields (List[str], optional): fields to return, all fields when omitted
            ids: primary keys to fetch instead of a filter
            transformers: per vector type functions converting a wire vector for the caller
            sparse_format: shape of returned sparse vectors, one of
                "dict", "csr", "coo", "pairs" and "array"

        Returns:
            QueryResult: a list of row dicts
        """
        if filter and not isinstance(filter, str):
            raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(filter))

        if filter and ids is not None:
            raise ParamError(message=ExceptionsMessage.AmbiguousQueryFilterParam)

        if isinstance(ids, (int, str)):
            ids = [ids]

        schema = self.describe_collection(collection_name)
        if ids:
            filter = Prepare.pack_pks_expr(schema, ids)

        if not output_fields:
            output_fields = ["*"]

        request = Prepare.query_request(
            collection_name,
            filter,
            output_fields,
            partition_names,
            expr_params=kwargs.pop("filter_params", {}),
            **kwargs,
        )
        try:
            res = self._transport.execute(RequestKind.QUERY, request)
        except Exception:
            logger.error("Failed to query collection: %s", collection_name)
            raise
        return self._demarshal(
            collection_name, lambda: QueryResult(res, schema, transformers, sparse_format)
        )

    def get(
        self,
        collection_name: str,
        ids: Union[list, str, int],
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        **kwargs,
    ) -> List[dict]:
        """Grab the inserted rows using the primary key from the Collection."""
        if not isinstance(ids, list):
            ids = [ids]

        if len(ids) == 0:
            return []

        return self.query(
            collection_name,
            output_fields=output_fields,
            ids=ids,
            partition_names=partition_names,
            **kwargs,
        )

    def search(
        self,
        collection_name: str,
        data: Union[List[list], list],
        filter: str = "",
        limit: int = 10,
        output_fields: Optional[List[str]] = None,
        search_params: Optional[dict] = None,
        partition_names: Optional[List[str]] = None,
        anns_field: Optional[str] = None,
        round_decimal: int = -1,
        transformers: Optional[Union[Transformers, Dict]] = None,
        group_by_field: Optional[str] = None,
        sparse_format: str = "dict",
        **kwargs,
    ) -> SearchResult:
        """Search for a query vector/vectors.

        Args:
            data (Union[List[list], list]): The vector/vectors to search.
            limit (int, optional): How many results to return per search. Defaults to 10.
            filter(str, optional): A filter to use for the search. Defaults to None.
            output_fields (List[str], optional): List of which field values to return.
            search_params (dict, optional): The search params to use for the search.
            round_decimal (int, optional): digits to truncate returned distances to,
                -1 keeps them as the server reported them
            group_by_field (str, optional): group hits by this scalar field

        Returns:
            SearchResult: one Hits per query vector
        """
        schema = self.describe_collection(collection_name)
        transformers = Transformers.of(transformers)
        if group_by_field is not None:
            kwargs["group_by_field"] = group_by_field
        request = Prepare.search_requests_with_expr(
            collection_name,
            schema,
            data,
            anns_field,
            search_params or {},
            limit,
            expr=filter,
            partition_names=partition_names,
            output_fields=output_fields,
            round_decimal=round_decimal,
            transformers=transformers,
            expr_params=kwargs.pop("filter_params", {}),
            **kwargs,
        )
        try:
            res = self._transport.execute(RequestKind.SEARCH, request)
        except Exception:
            logger.error("Failed to search collection: %s", collection_name)
            raise
        return self._demarshal(
            collection_name,
            lambda: SearchResult(
                res,
                schema=schema,
                round_decimal=round_decimal,
                transformers=transformers,
                group_by_field=group_by_field,
                sparse_format=sparse_format,
            ),
        )

    def hybrid_search(
        self,
        collection_name: str,
        reqs: List[AnnSearchRequest],
        ranker: BaseRanker,
        limit: int = 10,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        round_decimal: int = -1,
        transformers: Optional[Union[Transformers, Dict]] = None,
        **kwargs,
    ) -> List[Hits]:
        """Conducts multi vector similarity search with a rerank for rearrangement.

        Each request is searched on its own, then the per-request hit lists of
        every query are fused by ``ranker``.

        Returns:
            List[Hits]: one fused hit list per query
        """
        if not reqs:
            raise ParamError(message="hybrid_search expects at least one AnnSearchRequest")
        if not isinstance(ranker, BaseRanker):
            raise ParamError(message=f"ranker must be a BaseRanker, got {type(ranker).__name__}")

        per_request = [
            self.search(
                collection_name,
                req.data,
                filter=req.expr or "",
                limit=req.limit,
                output_fields=output_fields,
                search_params=req.param,
                partition_names=partition_names,
                anns_field=req.anns_field,
                transformers=transformers,
                filter_params=req.expr_params or {},
                **kwargs,
            )
            for req in reqs
        ]
        nq = len(per_request[0])
        if any(len(res) != nq for res in per_request):
            raise ParamError(message="all AnnSearchRequests of a hybrid search must carry the same number of vectors")

        fused = []
        for q in range(nq):
            hits = ranker.rerank([res[q] for res in per_request], limit)
            if round_decimal is not None and round_decimal >= 0:
                for hit in hits:
                    hit.data[DISTANCE] = truncate_score(hit.distance, round_decimal)
            fused.append(hits)
        return fused

    def query_iterator(
        self,
        collection_name: str,
        batch_size: Optional[int] = None,
        limit: Optional[int] = UNLIMITED,
        filter: Optional[str] = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        filter_func: Optional[Callable[[Dict], bool]] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        **kwargs,
    ) -> QueryIterator:
        if filter is not None and not isinstance(filter, str):
            raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(filter))

        return QueryIterator(
            transport=self._transport,
            schema=self.describe_collection(collection_name),
            collection_name=collection_name,
            batch_size=batch_size,
            limit=limit,
            filter=filter,
            output_fields=output_fields,
            partition_names=partition_names,
            filter_func=filter_func,
            transformers=transformers,
            **kwargs,
        )

    def search_iterator(
        self,
        collection_name: str,
        data: Union[List[list], list],
        batch_size: Optional[int] = None,
        filter: Optional[str] = None,
        limit: Optional[int] = UNLIMITED,
        output_fields: Optional[List[str]] = None,
        search_params: Optional[Dict] = None,
        partition_names: Optional[List[str]] = None,
        anns_field: Optional[str] = None,
        round_decimal: int = -1,
        filter_func: Optional[Callable[[Dict], bool]] = None,
        transformers: Optional[Union[Transformers, Dict]] = None,
        **kwargs,
    ) -> SearchIterator:
        if filter is not None and not isinstance(filter, str):
            raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(filter))

        return SearchIterator(
            transport=self._transport,
            schema=self.describe_collection(collection_name),
            collection_name=collection_name,
            data=data,
            batch_size=batch_size,
            limit=limit,
            filter=filter,
            output_fields=output_fields,
            search_params=search_params,
            partition_names=partition_names,
            anns_field=anns_field,
            round_decimal=round_decimal,
            filter_func=filter_func,
            transformers=transformers,
            **kwargs,
        )

    def close(self):
        self._schema_cache.clear()
