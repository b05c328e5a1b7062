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

from .client import __version__
from .client.abstract import AnnSearchRequest, BaseRanker, MutationResult, RRFRanker, WeightedRanker
from .client.columnar import (
    ColumnSet,
    FieldColumn,
    MutationResultData,
    QueryResultData,
    SearchIteratorInfo,
    SearchResultData,
)
from .client.entity_helper import entities_to_columns, extract_rows
from .client.iterator import IteratorCursor, IteratorState, QueryIterator, SearchIterator
from .client.prepare import Prepare
from .client.schema import CollectionSchema, FieldSchema
from .client.schema_cache import SchemaCache
from .client.search_result import Group, Hit, Hits, QueryResult, SearchResult
from .client.transformers import Transformers
from .client.transport import RequestKind, Transport
from .client.type_handlers import decode_vector, encode_vector
from .client.types import DataType, MetricType
from .exceptions import (
    ExceptionsMessage,
    MilvusException,
    ParamError,
)
from .milvus_client import MilvusClient
from .settings import Config as DefaultConfig

__all__ = [
    "AnnSearchRequest",
    "BaseRanker",
    "CollectionSchema",
    "ColumnSet",
    "DataType",
    "DefaultConfig",
    "ExceptionsMessage",
    "FieldColumn",
    "FieldSchema",
    "Group",
    "Hit",
    "Hits",
    "IteratorCursor",
    "IteratorState",
    "MetricType",
    "MilvusClient",
    "MilvusException",
    "MutationResult",
    "MutationResultData",
    "ParamError",
    "Prepare",
    "QueryIterator",
    "QueryResult",
    "QueryResultData",
    "RRFRanker",
    "RequestKind",
    "SchemaCache",
    "SearchIterator",
    "SearchIteratorInfo",
    "SearchResult",
    "SearchResultData",
    "Transformers",
    "Transport",
    "WeightedRanker",
    "__version__",
    "decode_vector",
    "encode_vector",
    "entities_to_columns",
    "extract_rows",
]
