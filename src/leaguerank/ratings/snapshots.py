"""
Weekly ranking snapshots.

Once every round of a (season, week) bucket has been processed, the writer
freezes the standings of all active players into a SnapshotRecord. Records
are buffered for the running job and persisted by the publisher in the
publish transaction, so a failed rebuild leaves no history behind.

Snapshots are append-only. There is no code path that edits one; a
correction means a fresh full rebuild, which writes a fresh set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leaguerank.config import settings
from leaguerank.db.models import RankingSnapshot
from leaguerank.ratings.ledger import LeagueDirectory
from leaguerank.ratings.publisher import assign_ranks, get_current_calculation_id
from leaguerank.ratings.state import PlayerState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    """One player's line in a weekly snapshot."""
    player_id: int
    player_name: str
    rank: int
    rating: float
    uncertainty: float
    change: float
    previous_rating: float
    games_this_week: int
    total_games: int
    total_seasons: int

    def to_dict(self) -> dict:
        return {
            "playerId": self.player_id,
            "playerName": self.player_name,
            "rank": self.rank,
            "rating": self.rating,
            "uncertainty": self.uncertainty,
            "change": self.change,
            "previousRating": self.previous_rating,
            "gamesThisWeek": self.games_this_week,
            "totalGames": self.total_games,
            "totalSeasons": self.total_seasons,
        }


@dataclass(frozen=True)
class SnapshotRecord:
    """Frozen standings at the end of one (season, week)."""
    sequence: int
    season_id: int
    week: int
    snapshot_at: datetime
    entries: tuple[SnapshotEntry, ...]
    games_in_week: int
    rounds_in_week: int
    total_games_processed: int
    average_rating: float
    active_player_count: int
    calculated_at: datetime

    @property
    def bucket(self) -> tuple[int, int]:
        return self.season_id, self.week

    def to_model(self, calculation_id: str) -> RankingSnapshot:
        return RankingSnapshot(
            calculation_id=calculation_id,
            sequence=self.sequence,
            season_id=self.season_id,
            week=self.week,
            snapshot_at=self.snapshot_at,
            rankings=[e.to_dict() for e in self.entries],
            games_in_week=self.games_in_week,
            rounds_in_week=self.rounds_in_week,
            total_games_processed=self.total_games_processed,
            average_rating=self.average_rating,
            active_player_count=self.active_player_count,
            calculated_at=self.calculated_at,
        )


class SnapshotWriter:
    """
    Builds the weekly snapshots of one rebuild.

    Enforces the two history invariants: one snapshot per (season, week)
    bucket, and strictly increasing snapshot times.
    """

    def __init__(self, directory: LeagueDirectory, initial_mu: float):
        self.directory = directory
        self.initial_mu = initial_mu
        self.records: list[SnapshotRecord] = []
        self._buckets: set[tuple[int, int]] = set()

    def record_week(
        self,
        season_id: int,
        week: int,
        states: Iterable[PlayerState],
        snapshot_at: datetime,
        games_in_week: int,
        rounds_in_week: int,
        total_games_processed: int,
        calculated_at: Optional[datetime] = None,
    ) -> SnapshotRecord:
        """
        Freeze the current standings for a finished week.

        Raises:
            ValueError: If the bucket was already written or the snapshot
                would not be later than the previous one
        """
        bucket = (season_id, week)
        if bucket in self._buckets:
            raise ValueError(f"Snapshot for season {season_id} week {week} already written")
        if self.records and snapshot_at <= self.records[-1].snapshot_at:
            raise ValueError(
                f"Snapshot at {snapshot_at.isoformat()} is not after "
                f"{self.records[-1].snapshot_at.isoformat()}"
            )

        entries = []
        for state, rank in assign_ranks(states):
            if rank is None:
                continue
            previous = state.week_start_mu if state.week_start_mu is not None else self.initial_mu
            entries.append(SnapshotEntry(
                player_id=state.player_id,
                player_name=self.directory.player_name(state.player_id),
                rank=rank,
                rating=state.mu,
                uncertainty=state.sigma,
                change=state.mu - previous,
                previous_rating=previous,
                games_this_week=state.games_this_week,
                total_games=state.total_games,
                total_seasons=state.total_seasons,
            ))

        average = sum(e.rating for e in entries) / len(entries) if entries else 0.0

        record = SnapshotRecord(
            sequence=len(self.records) + 1,
            season_id=season_id,
            week=week,
            snapshot_at=snapshot_at,
            entries=tuple(entries),
            games_in_week=games_in_week,
            rounds_in_week=rounds_in_week,
            total_games_processed=total_games_processed,
            average_rating=average,
            active_player_count=len(entries),
            calculated_at=calculated_at or datetime.utcnow(),
        )
        self.records.append(record)
        self._buckets.add(bucket)
        logger.debug(
            "Snapshot %d: season %d week %d, %d active players",
            record.sequence, season_id, week, record.active_player_count,
        )
        return record


def snapshot_to_dict(row: RankingSnapshot) -> dict:
    return {
        "calculationId": row.calculation_id,
        "sequence": row.sequence,
        "seasonId": row.season_id,
        "week": row.week,
        "snapshotAt": row.snapshot_at.isoformat(),
        "rankings": row.rankings,
        "meta": {
            "gamesInWeek": row.games_in_week,
            "roundsInWeek": row.rounds_in_week,
            "totalGamesProcessed": row.total_games_processed,
            "averageRating": row.average_rating,
            "activePlayerCount": row.active_player_count,
            "calculatedAt": row.calculated_at.isoformat(),
        },
    }


def ranking_history(
    session: Session,
    season_id: Optional[int] = None,
    recent_weeks: Optional[int] = None,
) -> list[dict]:
    """
    Snapshots of the published calculation, oldest first.

    Args:
        season_id: Only snapshots of this season (every week of it unless
            recent_weeks is also given)
        recent_weeks: Only the last N snapshots. Defaults to
            settings.history_default_weeks when season_id is not given.
    """
    calculation_id = get_current_calculation_id(session)
    if calculation_id is None:
        return []

    if season_id is None and recent_weeks is None:
        recent_weeks = settings.history_default_weeks

    query = select(RankingSnapshot).where(RankingSnapshot.calculation_id == calculation_id)
    if season_id is not None:
        query = query.where(RankingSnapshot.season_id == season_id)
    query = query.order_by(RankingSnapshot.sequence.desc())
    if recent_weeks is not None:
        query = query.limit(max(0, recent_weeks))

    rows = list(session.scalars(query))
    rows.reverse()
    return [snapshot_to_dict(row) for row in rows]
