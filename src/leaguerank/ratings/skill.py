"""
TrueSkill rating update for league games.

Implements the two-team TrueSkill update between a home and an away side,
with one league-specific addition: the mean update is scaled by a game
multiplier (point differential x playoff weighting).

For one game with n players in total:

    sigma_i^2  += tau^2                                (dynamics)
    c^2         = sum(sigma_i^2) + n * beta^2
    t           = (mu_winner_team - mu_loser_team) / c
    eps         = ppf((p_draw + 1) / 2) * sqrt(n) * beta / c

    mu_i       += +/- (sigma_i^2 / c) * v(t, eps) * multiplier
    sigma_i^2  *= 1 - (sigma_i^2 / c^2) * w(t, eps)   (floored at min_sigma)

The Gaussian helpers (v, w, cdf, pdf, ppf) come from the trueskill package.
We don't use TrueSkill.rate() itself because it has no way to scale the mean
update by the game multiplier.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import trueskill
from trueskill import Rating

from leaguerank.errors import DataError
from leaguerank.ratings.constants import OUTCOME_AWAY_WIN, OUTCOME_DRAW, OUTCOME_HOME_WIN
from leaguerank.ratings.params import RatingParams


@dataclass
class GameUpdate:
    """
    Result of rating one game.

    Ratings are listed in roster order for each side.
    """
    home_before: list[Rating]
    away_before: list[Rating]
    home_after: list[Rating]
    away_after: list[Rating]

    outcome: str  # 'home', 'away' or 'draw'
    home_win_probability: float
    multiplier: float

    @property
    def home_mu_changes(self) -> list[float]:
        return [a.mu - b.mu for a, b in zip(self.home_after, self.home_before)]

    @property
    def away_mu_changes(self) -> list[float]:
        return [a.mu - b.mu for a, b in zip(self.away_after, self.away_before)]

    @property
    def was_upset(self) -> bool:
        """Whether the side with under 50% expected win chance won."""
        if self.outcome == OUTCOME_HOME_WIN:
            return self.home_win_probability < 0.5
        if self.outcome == OUTCOME_AWAY_WIN:
            return self.home_win_probability > 0.5
        return False

    def __repr__(self) -> str:
        return (
            f"<GameUpdate(outcome={self.outcome}, "
            f"p_home={self.home_win_probability:.3f}, x{self.multiplier:.2f})>"
        )


def game_outcome(home_score: int, away_score: int) -> str:
    """Outcome label from the home side's point of view."""
    if home_score > away_score:
        return OUTCOME_HOME_WIN
    if away_score > home_score:
        return OUTCOME_AWAY_WIN
    return OUTCOME_DRAW


class SkillModel:
    """
    TrueSkill environment bound to one set of rating params.

    Usage:
        model = SkillModel(params)
        home, away = [model.create_rating()], [model.create_rating()]

        update = model.rate_game(home, away, outcome="home", multiplier=1.2)
        print(update.home_after[0].mu)  # > 25
    """

    def __init__(self, params: RatingParams):
        self.params = params
        self.env = trueskill.TrueSkill(
            mu=params.initial_mu,
            sigma=params.initial_sigma,
            beta=params.beta,
            tau=params.tau,
            draw_probability=params.draw_probability,
        )

    def create_rating(self) -> Rating:
        """Starting rating for a player's first game."""
        return Rating(mu=self.params.initial_mu, sigma=self.params.initial_sigma)

    def _draw_margin(self, player_count: int) -> float:
        """Draw margin in skill points for a game with player_count players."""
        p = self.params.draw_probability
        return self.env.ppf((p + 1.0) / 2.0) * math.sqrt(player_count) * self.params.beta

    def win_probability(self, home: Sequence[Rating], away: Sequence[Rating]) -> float:
        """
        Pre-game probability that the home side wins.

        P(home) = cdf((sum mu_home - sum mu_away) / c), with c computed
        without the per-game dynamics term.
        """
        n = len(home) + len(away)
        delta = sum(r.mu for r in home) - sum(r.mu for r in away)
        variance = sum(r.sigma ** 2 for r in home) + sum(r.sigma ** 2 for r in away)
        c = math.sqrt(variance + n * self.params.beta ** 2)
        return self.env.cdf(delta / c)

    def rate_game(
        self,
        home: Sequence[Rating],
        away: Sequence[Rating],
        outcome: str,
        multiplier: float = 1.0,
    ) -> GameUpdate:
        """
        Rate one game between two sides.

        Args:
            home: Ratings of the home roster
            away: Ratings of the away roster
            outcome: 'home', 'away' or 'draw'
            multiplier: Scale on the mean update (margin x playoff weighting)

        Returns:
            GameUpdate with before/after ratings for both sides

        Raises:
            ValueError: On an unknown outcome or an empty side
            DataError: On a draw when the draw probability is zero
        """
        if outcome not in (OUTCOME_HOME_WIN, OUTCOME_AWAY_WIN, OUTCOME_DRAW):
            raise ValueError(f"outcome must be 'home', 'away' or 'draw', got '{outcome}'")
        if not home or not away:
            raise ValueError("both sides need at least one player")

        params = self.params
        home_win_probability = self.win_probability(home, away)

        # Dynamics: every participant gets a little extra uncertainty per game
        tau_sq = params.tau ** 2
        home_var = [r.sigma ** 2 + tau_sq for r in home]
        away_var = [r.sigma ** 2 + tau_sq for r in away]

        n = len(home) + len(away)
        c_sq = sum(home_var) + sum(away_var) + n * params.beta ** 2
        c = math.sqrt(c_sq)
        eps = self._draw_margin(n) / c

        home_mu = sum(r.mu for r in home)
        away_mu = sum(r.mu for r in away)

        if outcome == OUTCOME_DRAW:
            if params.draw_probability <= 0.0:
                raise DataError("Cannot rate a drawn game with a zero draw probability")
            t = (home_mu - away_mu) / c
            v = self.env.v_draw(t, eps)
            w = self.env.w_draw(t, eps)
            home_sign = 1.0
        elif outcome == OUTCOME_HOME_WIN:
            t = (home_mu - away_mu) / c
            v = self.env.v_win(t, eps)
            w = self.env.w_win(t, eps)
            home_sign = 1.0
        else:
            t = (away_mu - home_mu) / c
            v = self.env.v_win(t, eps)
            w = self.env.w_win(t, eps)
            home_sign = -1.0

        def _updated(rating: Rating, var: float, sign: float) -> Rating:
            mu = rating.mu + sign * (var / c) * v * multiplier
            new_var = var * max(1.0 - (var / c_sq) * w, 0.0)
            sigma = max(math.sqrt(new_var), params.min_sigma)
            return Rating(mu=mu, sigma=sigma)

        home_after = [_updated(r, var, home_sign) for r, var in zip(home, home_var)]
        away_after = [_updated(r, var, -home_sign) for r, var in zip(away, away_var)]

        return GameUpdate(
            home_before=list(home),
            away_before=list(away),
            home_after=home_after,
            away_after=away_after,
            outcome=outcome,
            home_win_probability=home_win_probability,
            multiplier=multiplier,
        )
