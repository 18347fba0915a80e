"""
Rankings publisher: turns the final replay state into the published table.

Publishing is one transaction:
1. Insert one player_ratings row per player under the new calculation_id
2. Insert the run's weekly snapshots and calculated-round ledger
3. Point current_rankings at the new calculation_id
4. Prune player_ratings of calculations beyond the retention window

Readers always go through the current_rankings pointer, so until the commit
they keep seeing the previous complete table, and after it the new one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from leaguerank.config import settings
from leaguerank.db.models import CalculatedRound, CurrentRankings, PlayerRating
from leaguerank.db.session import SessionFactory, session_scope
from leaguerank.ratings.ledger import LeagueDirectory, Round
from leaguerank.ratings.state import PlayerState

logger = logging.getLogger(__name__)

CURRENT_KEY = "current"


def ranking_sort_key(state: PlayerState) -> tuple:
    """Rating descending, then games played descending, then player id."""
    return (-state.mu, -state.total_games, state.player_id)


def assign_ranks(states: Iterable[PlayerState]) -> list[tuple[PlayerState, Optional[int]]]:
    """
    Order players and assign ranks.

    Every player is returned in ranking order. Active players get contiguous
    ranks starting at 1; inactive players get None.
    """
    ranked: list[tuple[PlayerState, Optional[int]]] = []
    next_rank = 1
    for state in sorted(states, key=ranking_sort_key):
        if state.is_active:
            ranked.append((state, next_rank))
            next_rank += 1
        else:
            ranked.append((state, None))
    return ranked


def get_current_calculation_id(session: Session) -> Optional[str]:
    """calculation_id of the published rankings table, or None before the first publish."""
    pointer = session.get(CurrentRankings, CURRENT_KEY)
    return pointer.calculation_id if pointer else None


def rating_to_dict(row: PlayerRating) -> dict:
    return {
        "playerId": row.player_id,
        "playerName": row.player_name,
        "rank": row.rank,
        "rating": row.mu,
        "uncertainty": row.sigma,
        "totalGames": row.total_games,
        "totalSeasons": row.total_seasons,
        "lastSeasonId": row.last_season_id,
        "lastGameAt": row.last_game_at.isoformat() if row.last_game_at else None,
        "lastRatingChange": row.last_rating_change,
        "isActive": row.is_active,
        "lastUpdated": row.last_updated.isoformat() if row.last_updated else None,
    }


def current_rankings(
    session: Session,
    top: Optional[int] = None,
    active_only: bool = True,
) -> list[dict]:
    """
    Read the published rankings table.

    Args:
        top: Optional limit on the number of players returned
        active_only: Exclude inactive players (the default leaderboard view)

    Returns:
        Player rating dicts in ranking order (empty before the first publish)
    """
    calculation_id = get_current_calculation_id(session)
    if calculation_id is None:
        return []

    query = select(PlayerRating).where(PlayerRating.calculation_id == calculation_id)
    if active_only:
        query = query.where(PlayerRating.is_active.is_(True))
    query = query.order_by(
        PlayerRating.mu.desc(),
        PlayerRating.total_games.desc(),
        PlayerRating.player_id.asc(),
    )
    if top is not None:
        query = query.limit(top)

    return [rating_to_dict(row) for row in session.scalars(query)]


class RankingsPublisher:
    """
    Atomically publishes a completed replay.

    Usage:
        publisher = RankingsPublisher(SessionLocal)
        publisher.publish(calculation_id, result.states, ledger.directory,
                          snapshots=result.snapshots, rounds=result.processed_rounds)
    """

    def __init__(self, session_factory: SessionFactory, tables_retained: Optional[int] = None):
        self.session_factory = session_factory
        if tables_retained is None:
            tables_retained = settings.rating_tables_retained
        self.tables_retained = max(1, tables_retained)

    def publish(
        self,
        calculation_id: str,
        states: dict[int, PlayerState],
        directory: LeagueDirectory,
        snapshots: Iterable = (),
        rounds: Iterable[Round] = (),
        published_at: Optional[datetime] = None,
    ) -> int:
        """
        Write and swap in the rankings table for calculation_id.

        Nothing is visible to readers unless every row is written.

        Returns:
            Number of player rating rows written.
        """
        published_at = published_at or datetime.utcnow()
        ranked = assign_ranks(states.values())

        with session_scope(self.session_factory) as session:
            for state, rank in ranked:
                session.add(PlayerRating(
                    calculation_id=calculation_id,
                    player_id=state.player_id,
                    player_name=directory.player_name(state.player_id),
                    mu=state.mu,
                    sigma=state.sigma,
                    rank=rank,
                    total_games=state.total_games,
                    total_seasons=state.total_seasons,
                    last_season_id=state.last_season_id,
                    last_game_at=state.last_game_at,
                    last_rating_change=state.last_rating_change,
                    is_active=state.is_active,
                    last_updated=published_at,
                ))

            snapshot_count = 0
            for record in snapshots:
                session.add(record.to_model(calculation_id))
                snapshot_count += 1

            round_count = 0
            for rnd in rounds:
                session.add(CalculatedRound(
                    calculation_id=calculation_id,
                    round_id=rnd.round_id,
                    round_start=rnd.start,
                    season_id=rnd.season_id,
                    week=rnd.week,
                    game_count=rnd.game_count,
                    game_ids=rnd.game_ids,
                    calculated_at=published_at,
                ))
                round_count += 1

            # Surface constraint violations before the pointer moves
            session.flush()

            pointer = session.get(CurrentRankings, CURRENT_KEY)
            previous = pointer.calculation_id if pointer else None
            if pointer is None:
                session.add(CurrentRankings(
                    key=CURRENT_KEY,
                    calculation_id=calculation_id,
                    published_at=published_at,
                ))
            else:
                pointer.calculation_id = calculation_id
                pointer.published_at = published_at
            session.flush()

            pruned = self._prune(session, calculation_id)

        logger.info(
            "Published rankings %s: %d players (%d ranked), %d snapshots, %d rounds "
            "(previous=%s, pruned %d old tables)",
            calculation_id, len(ranked), sum(1 for _, r in ranked if r is not None),
            snapshot_count, round_count, previous, pruned,
        )
        return len(ranked)

    def _prune(self, session: Session, current_id: str) -> int:
        """Delete rating rows of calculations older than the retention window."""
        newest_row = func.max(PlayerRating.id)
        calc_ids = [
            row.calculation_id
            for row in session.execute(
                select(PlayerRating.calculation_id, newest_row.label("newest"))
                .group_by(PlayerRating.calculation_id)
                .order_by(newest_row.desc())
            )
        ]
        stale = [c for c in calc_ids[self.tables_retained:] if c != current_id]
        if not stale:
            return 0

        session.execute(
            delete(PlayerRating).where(PlayerRating.calculation_id.in_(stale)),
            execution_options={"synchronize_session": False},
        )
        logger.debug("Pruned rankings tables: %s", stale)
        return len(stale)
