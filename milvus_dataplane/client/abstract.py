import abc
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Union

from milvus_dataplane.exceptions import (
    DataTypeNotMatchException,
    ExceptionsMessage,
    InvalidWeightsException,
    ParamError,
)

from .columnar import MutationResultData
from .constants import DEFAULT_RRF_K, DISTANCE, ENTITY, RANKER_TYPE_RRF, RANKER_TYPE_WEIGHTED
from .search_result import Hit, Hits
from .types import metrics_positive_related
from .utils import SparseRowInputType

logger = logging.getLogger(__name__)


class MutationResult:
    def __init__(self, raw: MutationResultData):
        self._raw = raw

    @property
    def primary_keys(self):
        return self._raw.primary_keys

    @property
    def insert_count(self):
        return self._raw.insert_count

    @property
    def delete_count(self):
        return self._raw.delete_count

    @property
    def upsert_count(self):
        return self._raw.upsert_count

    @property
    def timestamp(self):
        return self._raw.timestamp

    @property
    def succ_count(self):
        return len(self._raw.succ_index)

    @property
    def err_count(self):
        return len(self._raw.err_index)

    @property
    def succ_index(self):
        return self._raw.succ_index

    @property
    def err_index(self):
        return self._raw.err_index

    def __str__(self):
        return (
            f"(insert count: {self.insert_count}, delete count: {self.delete_count}, "
            f"upsert count: {self.upsert_count}, timestamp: {self.timestamp}, "
            f"success count: {self.succ_count}, err count: {self.err_count})"
        )

    __repr__ = __str__


def _check_limit(limit: Any):
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ParamError(message=ExceptionsMessage.LimitInvalid % (limit,))


def _unique_hits(hits: Sequence[Hit]) -> List[Hit]:
    """Keep the first, best ranked, occurrence of each id."""
    seen = set()
    out = []
    for hit in hits:
        if hit.id in seen:
            continue
        seen.add(hit.id)
        out.append(hit)
    return out


class BaseRanker(abc.ABC):
    """Fuses several ranked lists of one query into a single list.

    ``rerank`` is pure: the input lists are not modified and the output hits
    are new objects carrying the fused score as their distance.
    """

    _strategy = ""

    def dict(self) -> Dict[str, Any]:
        return {}

    def __str__(self):
        return self.dict().__str__()

    @abc.abstractmethod
    def _fused_scores(self, ranked_lists: List[List[Hit]], metric_types: List[str]) -> Dict[Any, float]:
        """Score every distinct id across ``ranked_lists``."""

    def _check(self, ranked_lists: Sequence[Sequence[Hit]]):
        pass

    def rerank(self, ranked_lists: Sequence[Sequence[Hit]], limit: int) -> Hits:
        """Fuse ``ranked_lists`` and keep the best ``limit`` candidates.

        Ties in the fused score are broken by ascending id. A single list is
        returned truncated to ``limit`` with its scores untouched.
        """
        _check_limit(limit)
        self._check(ranked_lists)
        metric_types = [getattr(hits, "metric_type", "") for hits in ranked_lists]
        lists = [_unique_hits(hits) for hits in ranked_lists]
        if not lists:
            return Hits()

        pk_name = getattr(ranked_lists[0], "pk_name", None) or (
            lists[0][0].pk_name if lists[0] else "id"
        )
        if len(lists) == 1:
            return Hits(
                [Hit(hit.to_dict(), pk_name=hit.pk_name) for hit in lists[0][:limit]],
                metric_type=metric_types[0],
                pk_name=pk_name,
            )

        fused = self._fused_scores(lists, metric_types)
        first_seen: Dict[Any, Hit] = {}
        for hits in lists:
            for hit in hits:
                first_seen.setdefault(hit.id, hit)

        ordered = sorted(fused.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
        logger.debug(f"{self._strategy} rerank fused {len(fused)} candidates, kept {len(ordered)}")
        return Hits(
            [
                Hit(
                    {pk_name: pk, DISTANCE: score, ENTITY: dict(first_seen[pk].fields)},
                    pk_name=pk_name,
                )
                for pk, score in ordered
            ],
            metric_type=self._strategy,
            pk_name=pk_name,
        )


class RRFRanker(BaseRanker):
    """Reciprocal rank fusion: a candidate scores ``sum(1 / (k + rank))`` over the lists it appears in.

    Ranks start at 1.
    """

    def __init__(
        self,
        k: int = DEFAULT_RRF_K,
    ):
        if isinstance(k, bool) or not isinstance(k, (int, float)) or k <= 0:
            raise ParamError(message=ExceptionsMessage.RRFInvalidK % (k,))
        self._strategy = RANKER_TYPE_RRF
        self._k = k

    def dict(self):
        params = {
            "k": self._k,
        }
        return {
            "strategy": self._strategy,
            "params": params,
        }

    def _fused_scores(self, ranked_lists: List[List[Hit]], metric_types: List[str]) -> Dict[Any, float]:
        fused = defaultdict(float)
        for hits in ranked_lists:
            for rank, hit in enumerate(hits, start=1):
                fused[hit.id] += 1.0 / (self._k + rank)
        return fused


class WeightedRanker(BaseRanker):
    """Weighted sum of per-list scores.

    With ``norm_score`` every list is min-max normalized to [0, 1] first, a list
    whose scores are all equal normalizes to 1.0. Scores of distance metrics
    (L2, HAMMING, ...) are negated so that a closer hit always weighs more.
    """

    def __init__(self, *nums, norm_score: bool = True):
        self._strategy = RANKER_TYPE_WEIGHTED
        weights = []
        for num in nums:
            # isinstance(True, int) is True, thus we need to check bool first
            if isinstance(num, bool) or not isinstance(num, (int, float)):
                raise InvalidWeightsException(
                    message=ExceptionsMessage.WeightNotNumber % type(num)
                )
            weights.append(num)
        self._weights = weights
        self._norm_score = norm_score

    def dict(self):
        params = {
            "weights": self._weights,
            "norm_score": self._norm_score,
        }
        return {
            "strategy": self._strategy,
            "params": params,
        }

    def _check(self, ranked_lists: Sequence[Sequence[Hit]]):
        if len(self._weights) != len(ranked_lists):
            raise InvalidWeightsException(
                message=ExceptionsMessage.WeightsCountMismatch
                % (len(ranked_lists), len(ranked_lists), len(self._weights))
            )
        total = sum(self._weights)
        if total <= 0:
            raise InvalidWeightsException(message=ExceptionsMessage.WeightsSumNotPositive % total)

    def _normalize(self, hits: List[Hit], metric_type: str) -> Dict[Any, float]:
        sign = 1.0 if metrics_positive_related(metric_type) else -1.0
        scores = {hit.id: sign * hit.distance for hit in hits}
        if not self._norm_score or not scores:
            return scores
        low, high = min(scores.values()), max(scores.values())
        if high == low:
            return dict.fromkeys(scores, 1.0)
        return {pk: (s - low) / (high - low) for pk, s in scores.items()}

    def _fused_scores(self, ranked_lists: List[List[Hit]], metric_types: List[str]) -> Dict[Any, float]:
        fused = defaultdict(float)
        for weight, hits, metric_type in zip(self._weights, ranked_lists, metric_types):
            for pk, score in self._normalize(hits, metric_type).items():
                fused[pk] += weight * score
        return fused


class AnnSearchRequest:
    def __init__(
        self,
        data: Union[List, SparseRowInputType],
        anns_field: str,
        param: Dict,
        limit: int,
        expr: Optional[str] = None,
        expr_params: Optional[dict] = None,
    ):
        _check_limit(limit)
        self._data = data
        self._anns_field = anns_field
        self._param = param
        self._limit = limit

        if expr is not None and not isinstance(expr, str):
            raise DataTypeNotMatchException(message=ExceptionsMessage.ExprType % type(expr))
        self._expr = expr
        self._expr_params = expr_params

    @property
    def data(self):
        return self._data

    @property
    def anns_field(self):
        return self._anns_field

    @property
    def param(self):
        return self._param

    @property
    def limit(self):
        return self._limit

    @property
    def expr(self):
        return self._expr

    @property
    def expr_params(self):
        return self._expr_params

    def __str__(self):
        return {
            "anns_field": self.anns_field,
            "param": self.param,
            "limit": self.limit,
            "expr": self.expr,
        }.__str__()
