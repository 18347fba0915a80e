"""
Unit tests for season boundary decay.

Tests that:
- One boundary regresses mu toward the baseline and widens sigma
- Each boundary is applied at most once
- Long-absent players are flagged inactive and left alone afterwards
- Sigma never grows past the starting sigma, however many boundaries pass
"""

import pytest

from leaguerank.ratings.decay import SeasonDecay, decay_rating
from leaguerank.ratings.params import RatingParams
from leaguerank.ratings.state import PlayerState


def _state(player_id: int, mu: float, sigma: float = 3.0, last_season_index: int = 0) -> PlayerState:
    return PlayerState(
        player_id=player_id,
        mu=mu,
        sigma=sigma,
        total_games=5,
        last_season_index=last_season_index,
    )


class TestDecayRating:

    def test_mu_regresses_toward_baseline(self):
        mu, _ = decay_rating(30.0, 3.0, 25.0, 25.0 / 3, 0.95, 1.0)
        assert mu == pytest.approx(29.75)

    def test_below_baseline_moves_up(self):
        mu, _ = decay_rating(20.0, 3.0, 25.0, 25.0 / 3, 0.95, 1.0)
        assert mu == pytest.approx(20.25)

    def test_sigma_grows_in_quadrature(self):
        _, sigma = decay_rating(30.0, 3.0, 25.0, 25.0 / 3, 0.95, 1.0)
        assert sigma == pytest.approx(10 ** 0.5)

    def test_sigma_capped_at_starting_sigma(self):
        _, sigma = decay_rating(30.0, 8.3, 25.0, 25.0 / 3, 0.95, 1.0)
        assert sigma == pytest.approx(25.0 / 3)

    @pytest.mark.parametrize("mu", [10.0, 24.0, 25.0, 26.0, 45.0])
    def test_decay_is_monotone(self, mu):
        """Decay never sharpens confidence and never overshoots the baseline."""
        new_mu, new_sigma = decay_rating(mu, 2.0, 25.0, 25.0 / 3, 0.95, 1.0)
        assert new_sigma >= 2.0
        assert abs(new_mu - 25.0) <= abs(mu - 25.0)
        assert (new_mu - 25.0) * (mu - 25.0) >= 0


class TestSeasonDecay:

    @pytest.fixture
    def params(self):
        return RatingParams(inactive_after_seasons=2)

    def test_boundary_applies_once(self, params):
        decay = SeasonDecay(params)
        states = {1: _state(1, 30.0)}

        assert decay.apply_boundary(1, states.values()) == 1
        mu_after = states[1].mu
        assert decay.apply_boundary(1, states.values()) == 0
        assert states[1].mu == mu_after

    def test_cross_applies_every_boundary_in_between(self, params):
        decay = SeasonDecay(params)
        states = {1: _state(1, 30.0), 2: _state(2, 20.0)}

        events = decay.cross(0, 2, states)

        assert events == 4
        assert decay.applied_boundaries == [1, 2]
        assert states[1].mu == pytest.approx(25 + 5 * 0.95 * 0.95)

    def test_cross_twice_is_noop(self, params):
        decay = SeasonDecay(params)
        states = {1: _state(1, 30.0)}
        decay.cross(0, 1, states)
        mu_after = states[1].mu

        assert decay.cross(0, 1, states) == 0
        assert states[1].mu == mu_after

    def test_absent_player_flagged_inactive(self, params):
        decay = SeasonDecay(params)
        states = {1: _state(1, 30.0, last_season_index=0), 2: _state(2, 30.0, last_season_index=1)}

        decay.apply_boundary(1, states.values())
        assert states[1].is_active

        decay.apply_boundary(2, states.values())
        assert not states[1].is_active
        assert states[2].is_active
        assert decay.players_flagged_inactive == 1

    def test_inactive_player_not_decayed(self, params):
        decay = SeasonDecay(params)
        state = _state(1, 30.0)
        state.is_active = False

        decay.apply_boundary(1, [state])

        assert state.mu == 30.0
        assert state.sigma == 3.0

    def test_apply_decay_off_still_flags(self):
        decay = SeasonDecay(RatingParams(apply_decay=False, inactive_after_seasons=1))
        state = _state(1, 30.0)

        assert decay.apply_boundary(1, [state]) == 0
        assert state.mu == 30.0
        assert not state.is_active

    def test_sigma_stops_growing_at_starting_sigma(self):
        """Across many boundaries sigma climbs to the starting sigma and then holds."""
        params = RatingParams(season_sigma_drift=3.0, inactive_after_seasons=50)
        decay = SeasonDecay(params)
        state = _state(1, 30.0, sigma=6.0)

        sigmas = [state.sigma]
        for boundary in range(1, 7):
            assert decay.apply_boundary(boundary, [state]) == 1
            sigmas.append(state.sigma)

        assert all(after >= before for before, after in zip(sigmas, sigmas[1:]))
        assert sigmas[1] > sigmas[0]
        assert sigmas[-1] == pytest.approx(params.initial_sigma)
        # Once capped there is no further increase
        assert sigmas[-1] == sigmas[-2]
        assert decay.decay_events == 6
        assert state.is_active
