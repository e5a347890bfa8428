"""Tests for the shared scoring policy: rounding, tiers, grade bands and defaults."""

import pytest

from eduimprove.services.scoring_policy import (
    DEFAULT_POLICY,
    TIER_PARTIAL,
    TIER_STRONG,
    TIER_WEAK,
    percentage,
    round_half_up,
)


class TestRounding:
    """Half values always round up, unlike Python's round()."""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 1),
        (1.5, 2),
        (2.5, 3),
        (2.49, 2),
        (66.6667, 67),
        (0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    @pytest.mark.parametrize("part,whole,expected", [
        (5, 7, 71),
        (2, 3, 67),
        (1, 3, 33),
        (1, 8, 13),
        (7, 7, 100),
        (0, 30, 0),
    ])
    def test_percentage(self, part, whole, expected):
        assert percentage(part, whole) == expected

    def test_percentage_of_nothing_is_zero(self):
        assert percentage(0, 0) == 0


class TestQuizTiers:
    @pytest.mark.parametrize("accuracy,tier", [
        (0, TIER_WEAK),
        (39, TIER_WEAK),
        (40, TIER_PARTIAL),
        (69, TIER_PARTIAL),
        (70, TIER_STRONG),
        (100, TIER_STRONG),
    ])
    def test_boundaries(self, accuracy, tier):
        assert DEFAULT_POLICY.quiz_tier(accuracy) == tier


class TestGrades:
    @pytest.mark.parametrize("weighted,grade", [
        (100, "A+"),
        (85, "A+"),
        (84.9, "A"),
        (75, "A"),
        (65, "B+"),
        (55, "B"),
        (45, "C"),
        (44.9, "D"),
        (44, "D"),
        (0, "D"),
    ])
    def test_bands(self, weighted, grade):
        assert DEFAULT_POLICY.grade(weighted) == grade

    def test_weighting(self):
        assert DEFAULT_POLICY.weighted_score(100, 0, 0) == 40
        assert DEFAULT_POLICY.weighted_score(0, 100, 0) == 30
        assert DEFAULT_POLICY.weighted_score(0, 0, 100) == 30

    def test_exact_boundary_is_not_lost_to_float_error(self):
        weighted = DEFAULT_POLICY.weighted_score(85, 85, 85)
        assert weighted == 85
        assert DEFAULT_POLICY.grade(weighted) == "A+"


class TestDefaults:
    def test_missing_improvement_score_is_fifty(self):
        assert DEFAULT_POLICY.improvement_score(None) == 50

    def test_explicit_zero_score_is_kept(self):
        assert DEFAULT_POLICY.improvement_score(0) == 0

    def test_missing_understanding_is_average(self):
        assert DEFAULT_POLICY.understanding(None) == "average"
        assert DEFAULT_POLICY.understanding("good") == "good"

    def test_missing_time_is_zero(self):
        assert DEFAULT_POLICY.time_spent(None) == 0
