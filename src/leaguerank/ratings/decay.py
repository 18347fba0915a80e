"""
Season boundary decay for ratings.

A rating earned two seasons ago says less about a player than one earned last
week. At every season boundary crossed during a replay, each active player's
rating is regressed toward the baseline and their uncertainty widened:

    sigma' = max(sigma, min(sqrt(sigma^2 + drift^2), sigma0))
    mu'    = mu0 + (mu - mu0) * season_decay_factor

Boundaries are counted over the ordered season list, so a season with no
games in it still counts as a boundary. After decaying, players who have not
played for inactive_after_seasons seasons are flagged inactive. Inactive
players keep their rating but are not decayed again until they play.
"""

import logging
import math
from typing import Iterable

from leaguerank.ratings.params import RatingParams
from leaguerank.ratings.state import PlayerState

logger = logging.getLogger(__name__)


def decay_rating(
    mu: float,
    sigma: float,
    initial_mu: float,
    initial_sigma: float,
    season_decay_factor: float,
    season_sigma_drift: float,
) -> tuple[float, float]:
    """
    Regress one rating across a single season boundary.

    Sigma grows in quadrature but never beyond the starting sigma, and never
    shrinks. Mu moves toward initial_mu and never overshoots it.

    Examples:
        decay_rating(30.0, 3.0, 25.0, 8.33, 0.95, 1.0)  # → (29.75, 3.162...)
        decay_rating(20.0, 8.33, 25.0, 8.33, 0.95, 1.0) # → (20.25, 8.33)
    """
    new_sigma = math.sqrt(sigma ** 2 + season_sigma_drift ** 2)
    new_sigma = max(sigma, min(new_sigma, initial_sigma))
    new_mu = initial_mu + (mu - initial_mu) * season_decay_factor
    return new_mu, new_sigma


class SeasonDecay:
    """
    Applies season boundary decay during one rebuild.

    Boundary b is the transition into season index b. Each boundary is applied
    at most once per instance, so crossing the same boundary twice is a no-op.

    Usage:
        decay = SeasonDecay(params)
        decay.cross(0, 2, states)   # boundaries 1 and 2
        decay.cross(1, 2, states)   # no-op, already applied
    """

    def __init__(self, params: RatingParams):
        self.params = params
        self._applied: set[int] = set()
        self.decay_events = 0
        self.players_flagged_inactive = 0

    @property
    def applied_boundaries(self) -> list[int]:
        return sorted(self._applied)

    def apply_boundary(self, boundary_index: int, states: Iterable[PlayerState]) -> int:
        """
        Apply one season boundary to every active player.

        Returns:
            Number of players whose rating was decayed (0 if the boundary was
            already applied).
        """
        if boundary_index in self._applied:
            return 0
        self._applied.add(boundary_index)

        params = self.params
        decayed = 0
        flagged = 0

        for state in states:
            if not state.is_active:
                continue

            if params.apply_decay:
                state.mu, state.sigma = decay_rating(
                    state.mu,
                    state.sigma,
                    initial_mu=params.initial_mu,
                    initial_sigma=params.initial_sigma,
                    season_decay_factor=params.season_decay_factor,
                    season_sigma_drift=params.season_sigma_drift,
                )
                decayed += 1

            seasons_since = boundary_index - state.last_season_index
            if seasons_since >= params.inactive_after_seasons:
                state.is_active = False
                flagged += 1

        self.decay_events += decayed
        self.players_flagged_inactive += flagged
        logger.debug(
            "Season boundary %d: decayed %d players, flagged %d inactive",
            boundary_index, decayed, flagged,
        )
        return decayed

    def cross(self, from_index: int, to_index: int, states: dict[int, PlayerState]) -> int:
        """
        Apply every boundary between two season indexes.

        Moving from season index i to index j crosses j - i boundaries; each
        one is applied separately. Returns the total number of decay events.
        """
        total = 0
        for boundary_index in range(from_index + 1, to_index + 1):
            total += self.apply_boundary(boundary_index, states.values())
        return total
