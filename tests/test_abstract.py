# Copyright (C) 2019-2024 Zilliz. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not use this file except in compliance
# with the License. You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software distributed under the License
# is distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express
# or implied. See the License for the specific language governing permissions and limitations under the License.

"""Tests for milvus_dataplane/client/abstract.py"""

import pytest

from milvus_dataplane.client.abstract import (
    BaseRanker,
    AnnSearchRequest,
    MutationResult,
    RRFRanker,
    WeightedRanker,
)
from milvus_dataplane.client.columnar import MutationResultData
from milvus_dataplane.client.constants import RANKER_TYPE_RRF, RANKER_TYPE_WEIGHTED
from milvus_dataplane.client.search_result import Hit, Hits
from milvus_dataplane.exceptions import (
    DataTypeNotMatchException,
    InvalidWeightsException,
    ParamError,
)


def _hits(scores, metric_type="IP"):
    """Build Hits from an {id: score} dict, in the given order."""
    return Hits(
        [Hit({"id": pk, "distance": s, "entity": {"tag": f"e{pk}"}}) for pk, s in scores.items()],
        metric_type=metric_type,
    )


class TestRRFRanker:
    def test_dict(self):
        assert RRFRanker(10).dict() == {"strategy": RANKER_TYPE_RRF, "params": {"k": 10}}

    @pytest.mark.parametrize("k", [0, -1, "60", True])
    def test_invalid_k(self, k):
        with pytest.raises(ParamError):
            RRFRanker(k)

    def test_fused_scores(self):
        a = _hits({"A": 0.9, "B": 0.8, "C": 0.1})
        b = _hits({"C": 0.99, "A": 0.5})
        fused = RRFRanker(k=60).rerank([a, b], limit=10)
        assert fused.ids == ["A", "C", "B"]
        assert fused.distances[0] == pytest.approx(1 / 61 + 1 / 62)
        assert fused.distances[1] == pytest.approx(1 / 63 + 1 / 61)
        assert fused.metric_type == RANKER_TYPE_RRF
        # entity fields come from the first list that held the id
        assert fused[0]["tag"] == "eA"

    def test_ties_break_on_id(self):
        a = _hits({"y": 0.9})
        b = _hits({"x": 0.9})
        assert RRFRanker().rerank([a, b], limit=2).ids == ["x", "y"]

    def test_duplicates_within_a_list_keep_first(self):
        a = Hits(
            [
                Hit({"id": 1, "distance": 0.9, "entity": {}}),
                Hit({"id": 1, "distance": 0.1, "entity": {}}),
                Hit({"id": 2, "distance": 0.05, "entity": {}}),
            ]
        )
        fused = RRFRanker(k=1).rerank([a, _hits({3: 0.5})], limit=5)
        assert fused.distances[fused.ids.index(2)] == pytest.approx(1 / 3)

    def test_single_list_passes_through(self):
        a = _hits({"A": 0.9, "B": 0.8, "C": 0.1})
        fused = RRFRanker().rerank([a], limit=2)
        assert fused.ids == ["A", "B"]
        assert fused.distances == [0.9, 0.8]
        assert fused[0] is not a[0]

    def test_limit_and_inputs_untouched(self):
        a = _hits({"A": 0.9, "B": 0.8})
        b = _hits({"B": 0.7, "C": 0.6})
        fused = RRFRanker().rerank([a, b], limit=1)
        assert fused.ids == ["B"]
        assert a.distances == [0.9, 0.8]

    @pytest.mark.parametrize("limit", [0, -3, 1.5, None])
    def test_invalid_limit(self, limit):
        with pytest.raises(ParamError):
            RRFRanker().rerank([_hits({"A": 1.0})], limit=limit)

    def test_no_lists(self):
        assert list(RRFRanker().rerank([], limit=3)) == []


class TestWeightedRanker:
    def test_dict(self):
        assert WeightedRanker(0.3, 0.7).dict() == {
            "strategy": RANKER_TYPE_WEIGHTED,
            "params": {"weights": [0.3, 0.7], "norm_score": True},
        }

    def test_weights_favor_first_list(self):
        a = _hits({"A": 0.9, "B": 0.1})
        b = _hits({"B": 0.95, "A": 0.2})
        fused = WeightedRanker(0.9, 0.1).rerank([a, b], limit=2)
        assert fused.ids == ["A", "B"]
        assert fused.distances == pytest.approx([0.9, 0.1])
        assert fused.metric_type == RANKER_TYPE_WEIGHTED

    def test_distance_metric_is_inverted(self):
        a = _hits({"near": 0.1, "far": 2.0}, metric_type="L2")
        b = _hits({"far": 0.9, "near": 0.8}, metric_type="IP")
        fused = WeightedRanker(0.5, 0.5).rerank([a, b], limit=2)
        # near: 0.5 * 1 + 0.5 * 0, far: 0.5 * 0 + 0.5 * 1
        assert fused.distances == pytest.approx([0.5, 0.5])
        assert fused.ids == ["far", "near"]

    def test_equal_scores_normalize_to_one(self):
        a = _hits({"A": 0.4, "B": 0.4})
        b = _hits({"A": 0.3})
        fused = WeightedRanker(1, 1).rerank([a, b], limit=5)
        assert dict(zip(fused.ids, fused.distances)) == {"A": 2.0, "B": 1.0}

    def test_without_normalization(self):
        a = _hits({"A": 3.0, "B": 1.0})
        b = _hits({"B": 5.0})
        fused = WeightedRanker(1, 0.5, norm_score=False).rerank([a, b], limit=5)
        assert dict(zip(fused.ids, fused.distances)) == {"A": 3.0, "B": 3.5}

    def test_count_mismatch(self):
        with pytest.raises(InvalidWeightsException):
            WeightedRanker(0.5).rerank([_hits({"A": 1.0}), _hits({"A": 1.0})], limit=1)

    def test_sum_not_positive(self):
        with pytest.raises(InvalidWeightsException):
            WeightedRanker(0.5, -0.5).rerank([_hits({"A": 1.0}), _hits({"A": 1.0})], limit=1)

    @pytest.mark.parametrize("weight", ["0.5", None, True])
    def test_weight_not_number(self, weight):
        with pytest.raises(InvalidWeightsException):
            WeightedRanker(0.5, weight)


class TestAnnSearchRequest:
    def test_properties(self):
        req = AnnSearchRequest([[0.1, 0.2]], "vec", {"metric_type": "IP"}, 5, expr="year > 1")
        assert req.anns_field == "vec"
        assert req.limit == 5
        assert req.expr == "year > 1"
        assert "vec" in str(req)

    def test_bad_expr(self):
        with pytest.raises(DataTypeNotMatchException):
            AnnSearchRequest([[0.1]], "vec", {}, 5, expr=1)

    def test_bad_limit(self):
        with pytest.raises(ParamError):
            AnnSearchRequest([[0.1]], "vec", {}, 0)


def test_mutation_result():
    res = MutationResult(MutationResultData(primary_keys=[1, 2], insert_count=2, succ_index=[0, 1]))
    assert res.primary_keys == [1, 2]
    assert res.insert_count == 2
    assert res.succ_count == 2
    assert res.err_count == 0
    assert "insert count: 2" in str(res)


@pytest.mark.parametrize("ranker", [RRFRanker(), RRFRanker(k=1), WeightedRanker(0.3), WeightedRanker(2, norm_score=False)])
@pytest.mark.parametrize("limit", [1, 2, 5])
def test_single_list_degenerates_to_truncation(ranker, limit):
    hits = _hits({"C": 0.9, "A": 0.7, "B": 0.7, "D": 0.1})
    fused = ranker.rerank([hits], limit=limit)
    assert fused.ids == hits.ids[:limit]
    assert [h.to_dict() for h in fused] == [h.to_dict() for h in hits[:limit]]


def test_base_ranker_is_abstract():
    with pytest.raises(TypeError):
        BaseRanker()
