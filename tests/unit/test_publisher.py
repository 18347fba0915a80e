"""
Unit tests for rankings publishing.

Tests that:
- Ranks are contiguous over active players with deterministic tie-breaks
- Publishing swaps the current pointer to the new table
- A failed publish leaves the previous table current
- Old tables are pruned beyond the retention window
"""

from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from leaguerank.db.models import CalculatedRound, PlayerRating, RankingSnapshot
from leaguerank.ratings.ledger import LeagueDirectory
from leaguerank.ratings.publisher import (
    RankingsPublisher,
    assign_ranks,
    current_rankings,
    get_current_calculation_id,
)
from leaguerank.ratings.snapshots import SnapshotRecord
from leaguerank.ratings.state import PlayerState


def _state(player_id, mu, total_games=3, active=True):
    return PlayerState(
        player_id=player_id,
        mu=mu,
        sigma=4.0,
        total_games=total_games,
        is_active=active,
        last_season_id=1,
        last_game_at=datetime(2024, 1, 2, 19),
    )


def _record(sequence, week, snapshot_at):
    return SnapshotRecord(
        sequence=sequence,
        season_id=1,
        week=week,
        snapshot_at=snapshot_at,
        entries=(),
        games_in_week=0,
        rounds_in_week=0,
        total_games_processed=0,
        average_rating=0.0,
        active_player_count=0,
        calculated_at=datetime(2024, 2, 1),
    )


@pytest.fixture
def directory():
    return LeagueDirectory(player_names={1: "Ann Archer", 2: "Ben Baker", 3: "Cat Cole"})


@pytest.fixture
def states():
    return {
        1: _state(1, 28.0),
        2: _state(2, 31.0),
        3: _state(3, 35.0, active=False),
    }


class TestAssignRanks:

    def test_ties_break_on_games_then_player_id(self):
        states = [
            _state(5, 30.0, total_games=4),
            _state(2, 30.0, total_games=4),
            _state(9, 30.0, total_games=8),
            _state(1, 40.0, active=False),
            _state(7, 20.0),
        ]

        ranked = assign_ranks(states)

        assert [s.player_id for s, _ in ranked] == [1, 9, 2, 5, 7]
        assert [rank for _, rank in ranked] == [None, 1, 2, 3, 4]

    def test_no_players(self):
        assert assign_ranks([]) == []


class TestRankingsPublisher:

    def test_publish_sets_current_pointer(self, session_factory, db_session, directory, states):
        publisher = RankingsPublisher(session_factory)

        written = publisher.publish("calc-1", states, directory)

        assert written == 3
        assert get_current_calculation_id(db_session) == "calc-1"
        rows = current_rankings(db_session)
        assert [r["playerId"] for r in rows] == [2, 1]
        assert [r["rank"] for r in rows] == [1, 2]
        assert rows[0]["playerName"] == "Ben Baker"

    def test_inactive_players_are_kept_unranked(self, session_factory, db_session, directory, states):
        RankingsPublisher(session_factory).publish("calc-1", states, directory)

        rows = current_rankings(db_session, active_only=False)

        assert [r["playerId"] for r in rows] == [3, 2, 1]
        assert rows[0]["rank"] is None
        assert rows[0]["isActive"] is False

    def test_top_limits_rows(self, session_factory, db_session, directory, states):
        RankingsPublisher(session_factory).publish("calc-1", states, directory)

        assert len(current_rankings(db_session, top=1)) == 1

    def test_no_rankings_before_first_publish(self, db_session):
        assert current_rankings(db_session) == []
        assert get_current_calculation_id(db_session) is None

    def test_republish_swaps_table(self, session_factory, directory, states):
        publisher = RankingsPublisher(session_factory)
        publisher.publish("calc-1", states, directory)

        states[1].mu = 40.0
        publisher.publish("calc-2", states, directory)

        session = session_factory()
        try:
            assert get_current_calculation_id(session) == "calc-2"
            assert current_rankings(session)[0]["playerId"] == 1
        finally:
            session.close()

    def test_failed_publish_keeps_previous_table(self, session_factory, directory, states):
        publisher = RankingsPublisher(session_factory)
        publisher.publish("calc-1", states, directory)

        duplicate_bucket = [
            _record(1, 1, datetime(2024, 1, 2)),
            _record(2, 1, datetime(2024, 1, 9)),
        ]
        with pytest.raises(IntegrityError):
            publisher.publish("calc-2", states, directory, snapshots=duplicate_bucket)

        session = session_factory()
        try:
            assert get_current_calculation_id(session) == "calc-1"
            leftover = session.scalar(
                select(func.count()).select_from(PlayerRating)
                .where(PlayerRating.calculation_id == "calc-2")
            )
            assert leftover == 0
        finally:
            session.close()

    def test_snapshots_and_rounds_written_with_table(self, session_factory, directory, states):
        publisher = RankingsPublisher(session_factory)
        snapshots = [_record(1, 1, datetime(2024, 1, 2)), _record(2, 2, datetime(2024, 1, 9))]

        publisher.publish("calc-1", states, directory, snapshots=snapshots)

        session = session_factory()
        try:
            stored = session.scalars(
                select(RankingSnapshot).order_by(RankingSnapshot.sequence)
            ).all()
            assert [s.week for s in stored] == [1, 2]
            assert session.scalar(select(func.count()).select_from(CalculatedRound)) == 0
        finally:
            session.close()

    def test_prunes_beyond_retention(self, session_factory, directory, states):
        publisher = RankingsPublisher(session_factory, tables_retained=2)

        for calc_id in ("calc-1", "calc-2", "calc-3"):
            publisher.publish(calc_id, states, directory)

        session = session_factory()
        try:
            remaining = set(session.scalars(select(PlayerRating.calculation_id).distinct()))
            assert remaining == {"calc-2", "calc-3"}
            assert get_current_calculation_id(session) == "calc-3"
        finally:
            session.close()
