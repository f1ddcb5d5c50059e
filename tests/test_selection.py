"""
Tests for diversity-constrained selection and reason tagging.
"""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from recommendation_service.config import SelectionConfig
from recommendation_service.exceptions import InvalidConfiguration
from recommendation_service.models import ContentItem, ScoredCandidate
from recommendation_service.selection import (
    REASON_DEFAULT,
    REASON_EDITORIAL,
    REASON_HIGH_RELEVANCE,
    REASON_POPULAR,
    REASON_RECENT,
    DiversitySelector,
    ranking_key,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _candidate(item_id, category="1", score=0.5, hours_ago=48.0, popularity=0, featured=False):
    item = ContentItem(
        id=item_id,
        category_id=category,
        published_at=NOW - timedelta(hours=hours_ago),
        popularity=popularity,
        is_featured=featured,
    )
    return ScoredCandidate(item=item, score=score)


@pytest.fixture
def selector():
    return DiversitySelector(SelectionConfig(), clock=lambda: NOW)


class TestOrdering:
    """Ranking and tie-breaking."""

    def test_ties_prefer_newer_then_lower_id(self):
        candidates = [
            _candidate("c", score=0.5, hours_ago=5),
            _candidate("b", score=0.5, hours_ago=1),
            _candidate("a", score=0.5, hours_ago=5),
            _candidate("d", score=0.9, hours_ago=100),
        ]
        assert [c.item_id for c in sorted(candidates, key=ranking_key)] == ["d", "b", "a", "c"]

    def test_undated_items_rank_after_dated_ties(self):
        undated = ScoredCandidate(item=ContentItem(id="a"), score=0.5)
        dated = _candidate("z", score=0.5)
        assert sorted([undated, dated], key=ranking_key)[0] is dated

    def test_result_is_ordered_by_score(self, selector):
        candidates = [_candidate(str(i), category=str(i % 3), score=i / 10) for i in range(10)]
        result = selector.select(candidates, min_count=3, max_count=6)
        scores = [c.score for c in result.items]
        assert scores == sorted(scores, reverse=True)

    def test_selection_is_deterministic(self, selector):
        candidates = [_candidate(f"id{i}", category=str(i % 4), score=0.5) for i in range(12)]
        first = selector.select(candidates, 3, 5)
        second = selector.select(list(reversed(candidates)), 3, 5)
        assert first.item_ids == second.item_ids


class TestBounds:
    """Count bounds and edge cases."""

    def test_fills_to_max_count_when_enough_candidates(self, selector):
        candidates = [_candidate(str(i), score=i / 20) for i in range(20)]
        assert selector.select(candidates, 3, 10).total == 10

    def test_returns_all_when_fewer_than_min(self, selector):
        candidates = [_candidate("a"), _candidate("b")]
        result = selector.select(candidates, min_count=5, max_count=10)
        assert sorted(result.item_ids) == ["a", "b"]

    def test_empty_candidates_give_empty_recommendation(self, selector):
        result = selector.select([], 3, 10)
        assert list(result.items) == []
        assert result.total == 0

    @pytest.mark.parametrize("max_count", [0, -1])
    def test_non_positive_max_count_is_invalid(self, selector, max_count):
        with pytest.raises(InvalidConfiguration):
            selector.select([_candidate("a")], 0, max_count)

    def test_negative_min_count_is_invalid(self, selector):
        with pytest.raises(InvalidConfiguration):
            selector.select([_candidate("a")], -1, 3)

    def test_min_above_max_is_clamped(self, selector):
        candidates = [_candidate(str(i)) for i in range(8)]
        assert selector.select(candidates, min_count=6, max_count=4).total == 4


class TestDiversity:
    """Category coverage."""

    def test_low_scoring_category_is_still_represented(self, selector):
        candidates = [
            _candidate("x1", "x", 0.9),
            _candidate("x2", "x", 0.8),
            _candidate("x3", "x", 0.7),
            _candidate("x4", "x", 0.6),
            _candidate("y1", "y", 0.1),
        ]
        result = selector.select(candidates, min_count=2, max_count=4)

        assert result.item_ids == ["x1", "x2", "x3", "y1"]
        assert result.categories == frozenset({"x", "y"})

    def test_every_category_appears_when_room_allows(self, selector):
        candidates = [
            _candidate(f"{category}{rank}", category, score=(10 - rank) / 10 - (0.05 if category == "d" else 0))
            for category in "abcd"
            for rank in range(4)
        ]
        result = selector.select(candidates, min_count=2, max_count=5)

        assert result.total == 5
        assert result.categories == frozenset("abcd")

    def test_second_pass_fills_by_score(self, selector):
        candidates = [_candidate(f"a{i}", "a", score=1 - i / 10) for i in range(6)]
        candidates.append(_candidate("b0", "b", score=0.05))
        result = selector.select(candidates, min_count=0, max_count=6)

        assert result.item_ids == ["a0", "a1", "a2", "a3", "a4", "b0"]


class TestReasons:
    """Reason tags shown to readers."""

    def test_each_reason(self, selector):
        result = selector.select(
            [
                _candidate("relevant", score=0.85),
                _candidate("popular", score=0.5, popularity=600),
                _candidate("featured", score=0.4, featured=True),
                _candidate("fresh", score=0.3, hours_ago=1),
                _candidate("plain", score=0.2),
            ],
            min_count=5,
            max_count=5,
        )
        reasons = {c.item_id: c.reasons for c in result.items}

        assert reasons["relevant"] == (REASON_HIGH_RELEVANCE,)
        assert reasons["popular"] == (REASON_POPULAR,)
        assert reasons["featured"] == (REASON_EDITORIAL,)
        assert reasons["fresh"] == (REASON_RECENT,)
        assert reasons["plain"] == (REASON_DEFAULT,)

    def test_selection_leaves_input_candidates_untouched(self, selector):
        candidate = _candidate("a", score=0.9)
        result = selector.select([candidate], min_count=1, max_count=1)

        assert candidate.reasons == ()
        assert result.items[0].reasons == (REASON_HIGH_RELEVANCE,)

    def test_selected_candidates_are_immutable(self, selector):
        result = selector.select([_candidate("a", score=0.9)], min_count=1, max_count=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.items[0].reasons = ("edited",)

    def test_reasons_accumulate(self, selector):
        candidate = _candidate("a", score=0.95, popularity=900, featured=True, hours_ago=2)
        assert selector.reasons_for(candidate) == [
            REASON_HIGH_RELEVANCE, REASON_POPULAR, REASON_EDITORIAL, REASON_RECENT,
        ]

    def test_thresholds_are_exclusive(self, selector):
        candidate = _candidate("a", score=0.8, popularity=500, hours_ago=24)
        assert selector.reasons_for(candidate) == [REASON_DEFAULT]
