"""In-memory per-player state carried through a replay."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from trueskill import Rating


@dataclass
class PlayerState:
    """
    A player's rating and bookkeeping during one rebuild.

    Created on the player's first game. Only the round processor and the
    season decay touch it; the publisher turns the final states into
    player_ratings rows.
    """
    player_id: int
    mu: float
    sigma: float
    total_games: int = 0
    seasons_played: set[int] = field(default_factory=set)
    last_season_id: Optional[int] = None
    last_season_index: int = 0
    last_game_at: Optional[datetime] = None
    last_rating_change: float = 0.0
    is_active: bool = True

    # Weekly bookkeeping for snapshots
    week_start_mu: Optional[float] = None
    games_this_week: int = 0

    @property
    def rating(self) -> Rating:
        return Rating(mu=self.mu, sigma=self.sigma)

    @property
    def total_seasons(self) -> int:
        return len(self.seasons_played)

    def start_week(self) -> None:
        """Reset the week counters; the weekly change is measured from here."""
        self.week_start_mu = self.mu
        self.games_this_week = 0
