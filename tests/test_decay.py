"""
Tests for Exponential Time Decay
"""

import math
from datetime import timedelta

import pytest

from src.rag.decay import TimeDecayScorer, round_days


@pytest.fixture
def scorer():
    return TimeDecayScorer()


class TestDecayFactor:
    """Tests for the decay curve itself."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "days,expected",
        [(0, 1.0), (7, 0.9324), (30, 0.7408), (90, 0.4066), (180, 0.1653), (365, 0.0260)],
    )
    def test_milestones(self, scorer, days, expected):
        assert scorer.calculate_decay_factor(days) == pytest.approx(expected, abs=0.0005)

    @pytest.mark.unit
    def test_future_dates_not_boosted(self, scorer):
        assert scorer.calculate_decay_factor(-10) == 1.0

    @pytest.mark.unit
    def test_monotonically_non_increasing(self, scorer):
        factors = [scorer.calculate_decay_factor(d) for d in range(0, 400, 5)]
        assert all(a >= b for a, b in zip(factors, factors[1:]))

    @pytest.mark.unit
    def test_unparseable_date_gives_zero(self, scorer, reference_date):
        assert scorer.decay_factor_for_date("unknown", reference_date) == 0.0
        assert scorer.calculate_days_ago(None, reference_date) is None

    @pytest.mark.unit
    def test_milestone_and_curve_helpers(self, scorer):
        milestones = scorer.get_decay_milestones()
        assert [m.days_ago for m in milestones] == [0, 7, 30, 90, 180, 365]
        curve = scorer.get_decay_curve(max_days=30, step=10)
        assert [p.days_ago for p in curve] == [0, 10, 20, 30]
        assert curve[0].penalty_pct == 0.0

    @pytest.mark.unit
    def test_analyze_decay(self, scorer, reference_date):
        date = (reference_date - timedelta(days=30)).isoformat()
        analysis = scorer.analyze_decay(date, reference_date)
        assert analysis.days_ago == 30
        assert analysis.penalty_pct == pytest.approx(25.92, abs=0.01)


class TestApplyTimeDecay:
    """Tests for re-scoring and re-ranking candidate lists."""

    @pytest.mark.unit
    def test_scores_and_ranks(self, scorer, candidate_factory, reference_date):
        candidates = [
            candidate_factory("old", date="2023-06-16T12:00:00Z", score=0.9),
            candidate_factory("new", date="2024-06-14T12:00:00Z", score=0.5),
        ]
        decayed = scorer.apply_time_decay(candidates, reference_date)

        assert [c.chunk_id for c in decayed] == ["new", "old"]
        assert [c.rank for c in decayed] == [1, 2]
        new = decayed[0]
        assert new.original_score == 0.5
        assert new.days_ago == 1
        assert new.score == pytest.approx(0.5 * math.exp(-0.01))

    @pytest.mark.unit
    def test_days_ago_rounded_but_exponent_exact(self, scorer, candidate_factory, reference_date):
        date = (reference_date - timedelta(days=10, hours=10)).isoformat()
        (result,) = scorer.apply_time_decay([candidate_factory("c", date=date)], reference_date)
        assert result.days_ago == 10
        assert result.time_decay_factor == pytest.approx(math.exp(-0.01 * (10 + 10 / 24)))

    @pytest.mark.unit
    @pytest.mark.parametrize("days,expected", [(0.5, 1), (2.5, 3), (2.49, 2), (10.0, 10)])
    def test_round_days_rounds_halves_up(self, days, expected):
        assert round_days(days) == expected

    @pytest.mark.unit
    def test_reported_days_round_half_up(self, scorer, candidate_factory, reference_date):
        date = (reference_date - timedelta(days=2, hours=12)).isoformat()
        (result,) = scorer.apply_time_decay([candidate_factory("c", date=date)], reference_date)
        assert result.days_ago == 3

    @pytest.mark.unit
    def test_unparseable_date_is_maximally_stale(self, scorer, candidate_factory, reference_date):
        candidates = [
            candidate_factory("bad", date="unknown", score=1.0),
            candidate_factory("ok", score=0.1),
        ]
        decayed = scorer.apply_time_decay(candidates, reference_date)
        bad = next(c for c in decayed if c.chunk_id == "bad")
        assert bad.time_decay_factor == 0.0
        assert bad.days_ago is None
        assert bad.score == 0.0
        assert decayed[-1].chunk_id == "bad"

    @pytest.mark.unit
    def test_ranks_are_a_permutation(self, scorer, candidate_factory, reference_date):
        candidates = [
            candidate_factory(f"c{i}", date=f"2024-0{i % 5 + 1}-01", score=i / 10)
            for i in range(8)
        ]
        decayed = scorer.apply_time_decay(candidates, reference_date)
        assert sorted(c.rank for c in decayed) == list(range(1, 9))
        scores = [c.score for c in decayed]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.unit
    def test_equal_scores_keep_input_order(self, scorer, candidate_factory, reference_date):
        candidates = [candidate_factory(f"c{i}") for i in range(4)]
        decayed = scorer.apply_time_decay(candidates, reference_date)
        assert [c.chunk_id for c in decayed] == ["c0", "c1", "c2", "c3"]

    @pytest.mark.unit
    def test_empty_input(self, scorer):
        assert scorer.apply_time_decay([]) == []

    @pytest.mark.unit
    @pytest.mark.parametrize("max_workers", [None, 3])
    def test_batch_preserves_order(self, scorer, candidate_factory, reference_date, max_workers):
        lists = [[candidate_factory(f"list{i}")] for i in range(5)]
        results = scorer.batch_apply_time_decay(lists, reference_date, max_workers=max_workers)
        assert [r[0].chunk_id for r in results] == [f"list{i}" for i in range(5)]

    @pytest.mark.unit
    def test_find_most_affected(self, scorer, candidate_factory, reference_date):
        candidates = [
            candidate_factory("recent", date="2024-06-10"),
            candidate_factory("stale", date="2023-01-01"),
        ]
        decayed = scorer.apply_time_decay(candidates, reference_date)
        affected = scorer.find_most_affected(decayed, threshold_pct=50)
        assert [c.chunk_id for c in affected] == ["stale"]
