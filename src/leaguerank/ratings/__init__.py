"""
Rating computation engine.

Rebuilds every player's skill rating from the full game history with:
- A two-team TrueSkill update per game
- Point differential and playoff weighting of the mean update
- Season boundary decay toward the baseline, and inactivity flagging
- Weekly ranking snapshots
- Atomic publishing of the final rankings table
"""

from leaguerank.ratings.constants import DEFAULT_MU, DEFAULT_SIGMA
from leaguerank.ratings.decay import SeasonDecay, decay_rating
from leaguerank.ratings.ledger import (
    Ledger,
    LedgerGame,
    LeagueDirectory,
    MatchLedgerReader,
    Round,
    week_number,
)
from leaguerank.ratings.margin import margin_multiplier, weighted_point_differential
from leaguerank.ratings.params import (
    RatingParams,
    get_active_rating_params,
    persist_rating_params,
)
from leaguerank.ratings.processor import RatingReplay, ReplayProgress, ReplayResult, RoundProcessor
from leaguerank.ratings.publisher import RankingsPublisher, assign_ranks, current_rankings
from leaguerank.ratings.skill import GameUpdate, SkillModel
from leaguerank.ratings.snapshots import SnapshotRecord, SnapshotWriter, ranking_history
from leaguerank.ratings.state import PlayerState

__all__ = [
    "DEFAULT_MU",
    "DEFAULT_SIGMA",
    "SeasonDecay",
    "decay_rating",
    "Ledger",
    "LedgerGame",
    "LeagueDirectory",
    "MatchLedgerReader",
    "Round",
    "week_number",
    "margin_multiplier",
    "weighted_point_differential",
    "RatingParams",
    "get_active_rating_params",
    "persist_rating_params",
    "RatingReplay",
    "ReplayProgress",
    "ReplayResult",
    "RoundProcessor",
    "RankingsPublisher",
    "assign_ranks",
    "current_rankings",
    "GameUpdate",
    "SkillModel",
    "SnapshotRecord",
    "SnapshotWriter",
    "ranking_history",
    "PlayerState",
]
