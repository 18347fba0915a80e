"""
Unit tests for the TrueSkill game update.

Tests the core rating update to ensure:
- Winners gain and losers drop, symmetrically for equal players
- Upsets move ratings more than expected results
- The game multiplier scales the mean update and nothing else
- Draws and team games behave sensibly
"""

import pytest
from trueskill import Rating

from leaguerank.errors import DataError
from leaguerank.ratings.constants import DEFAULT_MU, DEFAULT_SIGMA
from leaguerank.ratings.params import RatingParams
from leaguerank.ratings.skill import SkillModel, game_outcome


class TestSkillModel:
    """Tests for SkillModel.rate_game."""

    @pytest.fixture
    def model(self):
        return SkillModel(RatingParams())

    def test_create_rating_uses_starting_point(self, model):
        rating = model.create_rating()
        assert rating.mu == DEFAULT_MU
        assert rating.sigma == pytest.approx(DEFAULT_SIGMA)

    def test_equal_players_winner_gains_loser_drops(self, model):
        home, away = model.create_rating(), model.create_rating()

        update = model.rate_game([home], [away], outcome="home")

        assert update.home_after[0].mu > DEFAULT_MU
        assert update.away_after[0].mu < DEFAULT_MU
        # Same sigma on both sides, so the changes mirror each other
        assert update.home_mu_changes[0] == pytest.approx(-update.away_mu_changes[0])

    def test_playing_reduces_uncertainty(self, model):
        home, away = model.create_rating(), model.create_rating()

        update = model.rate_game([home], [away], outcome="away")

        assert update.home_after[0].sigma < home.sigma
        assert update.away_after[0].sigma < away.sigma

    def test_underdog_win_moves_more_than_favorite_win(self, model):
        strong = Rating(mu=30.0, sigma=4.0)
        weak = Rating(mu=20.0, sigma=4.0)

        favorite_wins = model.rate_game([strong], [weak], outcome="home")
        underdog_wins = model.rate_game([weak], [strong], outcome="home")

        assert underdog_wins.home_mu_changes[0] > favorite_wins.home_mu_changes[0] > 0
        assert underdog_wins.was_upset
        assert not favorite_wins.was_upset

    def test_multiplier_scales_mean_update_only(self, model):
        home, away = model.create_rating(), model.create_rating()

        plain = model.rate_game([home], [away], outcome="home", multiplier=1.0)
        boosted = model.rate_game([home], [away], outcome="home", multiplier=1.5)

        assert boosted.home_mu_changes[0] == pytest.approx(1.5 * plain.home_mu_changes[0])
        assert boosted.away_mu_changes[0] == pytest.approx(1.5 * plain.away_mu_changes[0])
        assert boosted.home_after[0].sigma == pytest.approx(plain.home_after[0].sigma)

    def test_draw_between_equals_keeps_means(self, model):
        home, away = model.create_rating(), model.create_rating()

        update = model.rate_game([home], [away], outcome="draw")

        assert update.home_after[0].mu == pytest.approx(DEFAULT_MU)
        assert update.away_after[0].mu == pytest.approx(DEFAULT_MU)
        assert update.home_after[0].sigma < home.sigma

    def test_draw_pulls_stronger_side_down(self, model):
        strong = Rating(mu=32.0, sigma=3.0)
        weak = Rating(mu=22.0, sigma=3.0)

        update = model.rate_game([strong], [weak], outcome="draw")

        assert update.home_after[0].mu < 32.0
        assert update.away_after[0].mu > 22.0

    def test_team_game_moves_every_roster_player(self, model):
        r = model.create_rating()

        update = model.rate_game([r, r], [r, r], outcome="away")

        assert all(change < 0 for change in update.home_mu_changes)
        assert all(change > 0 for change in update.away_mu_changes)
        assert update.away_mu_changes[0] == pytest.approx(update.away_mu_changes[1])

    def test_sigma_is_floored(self):
        model = SkillModel(RatingParams(min_sigma=8.0))
        home, away = model.create_rating(), model.create_rating()

        update = model.rate_game([home], [away], outcome="home")

        assert update.home_after[0].sigma == 8.0
        assert update.away_after[0].sigma == 8.0

    def test_invalid_outcome_raises(self, model):
        r = model.create_rating()
        with pytest.raises(ValueError):
            model.rate_game([r], [r], outcome="win")

    def test_empty_side_raises(self, model):
        with pytest.raises(ValueError):
            model.rate_game([], [model.create_rating()], outcome="home")

    def test_draw_without_draw_probability_raises(self):
        model = SkillModel(RatingParams(draw_probability=0.0))
        r = model.create_rating()
        with pytest.raises(DataError):
            model.rate_game([r], [r], outcome="draw")


class TestWinProbability:
    """Tests for the pre-game expected result."""

    def test_equal_sides_are_even(self):
        model = SkillModel(RatingParams())
        r = model.create_rating()
        assert model.win_probability([r], [r]) == pytest.approx(0.5)

    def test_stronger_side_is_favoured(self):
        model = SkillModel(RatingParams())
        p = model.win_probability([Rating(mu=30.0, sigma=3.0)], [Rating(mu=22.0, sigma=3.0)])
        assert 0.5 < p < 1.0


@pytest.mark.parametrize(
    "home_score,away_score,expected",
    [(5, 3, "home"), (2, 9, "away"), (4, 4, "draw"), (0, 0, "draw")],
)
def test_game_outcome(home_score, away_score, expected):
    assert game_outcome(home_score, away_score) == expected
