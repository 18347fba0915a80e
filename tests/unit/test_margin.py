"""Unit tests for point differential weighting."""

import math

import pytest

from leaguerank.ratings.margin import margin_multiplier, weighted_point_differential


class TestWeightedPointDifferential:

    def test_small_differentials_count_fully(self):
        assert weighted_point_differential(3) == 3.0
        assert weighted_point_differential(5) == 5.0

    def test_sign_is_ignored(self):
        assert weighted_point_differential(-4) == 4.0

    def test_large_differentials_are_log_damped(self):
        assert weighted_point_differential(10) == pytest.approx(5 + math.log(6) * 2.2)

    def test_weight_keeps_growing_but_slower(self):
        w10 = weighted_point_differential(10)
        w20 = weighted_point_differential(20)
        assert w20 > w10
        assert w20 - w10 < 10


class TestMarginMultiplier:

    def test_one_point_win(self):
        assert margin_multiplier(1, 0) == pytest.approx(1.05)

    def test_blowout_uses_damped_weight(self):
        expected = 1 + 0.25 * (5 + math.log(6) * 2.2) / 5
        assert margin_multiplier(12, 2) == pytest.approx(expected)

    def test_direction_does_not_matter(self):
        assert margin_multiplier(3, 10) == margin_multiplier(10, 3)

    def test_draw_is_neutral(self):
        assert margin_multiplier(6, 6) == 1.0

    def test_zero_scale_disables_scaling(self):
        assert margin_multiplier(20, 0, margin_scale=0.0) == 1.0

    def test_multiplier_is_clamped(self):
        assert margin_multiplier(1000, 0) == 2.0
        assert margin_multiplier(1000, 0, multiplier_max=1.3) == 1.3

    def test_multiplier_never_decreases_with_differential(self):
        values = [margin_multiplier(d, 0) for d in range(0, 40)]
        assert values == sorted(values)
