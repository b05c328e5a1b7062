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

COLLECTION_NAME = "collection_name"
GROUP_BY_FIELD = "group_by_field"
GROUP_SIZE = "group_size"
STRICT_GROUP_SIZE = "strict_group_size"
ITERATOR_FIELD = "iterator"
ITER_SEARCH_V2_KEY = "search_iter_v2"
ITER_SEARCH_BATCH_SIZE_KEY = "search_iter_batch_size"
ITER_SEARCH_LAST_BOUND_KEY = "search_iter_last_bound"
ITER_SEARCH_ID_KEY = "search_iter_id"
GUARANTEE_TIMESTAMP = "guarantee_timestamp"
REDUCE_STOP_FOR_BEST = "reduce_stop_for_best"

RANKER_TYPE_RRF = "rrf"
RANKER_TYPE_WEIGHTED = "weighted"
DEFAULT_RRF_K = 60

OFFSET = "offset"
MILVUS_LIMIT = "limit"
DISTANCE = "distance"
ENTITY = "entity"
METRIC_TYPE = "metric_type"
PARAMS = "params"
ROUND_DECIMAL = "round_decimal"
OUTPUT_FIELDS = "output_fields"
FILTER = "filter"
ANNS_FIELD = "anns_field"
PLACEHOLDER = "placeholder"

MAX_BATCH_SIZE: int = 16384
UNLIMITED: int = -1
SPARSE_MAX_INDEX: int = 2**32 - 1
