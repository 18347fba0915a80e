"""Unit tests for weekly ranking snapshots."""

from datetime import datetime

import pytest

from leaguerank.ratings.ledger import LeagueDirectory
from leaguerank.ratings.snapshots import SnapshotWriter
from leaguerank.ratings.state import PlayerState


def _state(player_id, mu, active=True, week_start_mu=None, games_this_week=0):
    return PlayerState(
        player_id=player_id,
        mu=mu,
        sigma=4.0,
        total_games=3,
        is_active=active,
        week_start_mu=week_start_mu,
        games_this_week=games_this_week,
    )


@pytest.fixture
def writer():
    directory = LeagueDirectory(player_names={1: "Ann Archer", 2: "Ben Baker", 3: "Cat Cole"})
    return SnapshotWriter(directory, initial_mu=25.0)


class TestSnapshotWriter:

    def test_entries_cover_active_players_in_rank_order(self, writer):
        states = [_state(1, 24.0), _state(2, 30.0), _state(3, 40.0, active=False)]

        record = writer.record_week(1, 1, states, datetime(2024, 1, 2), 1, 1, 1)

        assert [e.player_id for e in record.entries] == [2, 1]
        assert [e.rank for e in record.entries] == [1, 2]
        assert record.entries[0].player_name == "Ben Baker"
        assert record.active_player_count == 2
        assert record.average_rating == pytest.approx(27.0)

    def test_change_is_against_week_start(self, writer):
        states = [_state(1, 27.0, week_start_mu=26.0, games_this_week=1), _state(2, 23.0)]

        record = writer.record_week(1, 1, states, datetime(2024, 1, 2), 1, 1, 1)
        entries = {e.player_id: e for e in record.entries}

        assert entries[1].change == pytest.approx(1.0)
        assert entries[1].previous_rating == 26.0
        assert entries[1].games_this_week == 1
        # No week start recorded yet: measured from the starting mean
        assert entries[2].change == pytest.approx(-2.0)

    def test_no_active_players(self, writer):
        record = writer.record_week(1, 1, [_state(1, 30.0, active=False)], datetime(2024, 1, 2), 0, 0, 0)

        assert record.entries == ()
        assert record.average_rating == 0.0

    def test_sequence_increments(self, writer):
        first = writer.record_week(1, 1, [], datetime(2024, 1, 2), 0, 0, 0)
        second = writer.record_week(1, 2, [], datetime(2024, 1, 9), 0, 0, 0)

        assert (first.sequence, second.sequence) == (1, 2)
        assert writer.records == [first, second]

    def test_duplicate_bucket_raises(self, writer):
        writer.record_week(1, 1, [], datetime(2024, 1, 2), 0, 0, 0)

        with pytest.raises(ValueError):
            writer.record_week(1, 1, [], datetime(2024, 1, 3), 0, 0, 0)

    def test_snapshot_time_must_increase(self, writer):
        writer.record_week(1, 1, [], datetime(2024, 1, 9), 0, 0, 0)

        with pytest.raises(ValueError):
            writer.record_week(1, 2, [], datetime(2024, 1, 9), 0, 0, 0)

    def test_to_model_serialises_entries(self, writer):
        record = writer.record_week(1, 1, [_state(1, 26.0)], datetime(2024, 1, 2), 1, 1, 1)

        model = record.to_model("calc-1")

        assert model.calculation_id == "calc-1"
        assert model.rankings[0]["playerId"] == 1
        assert model.rankings[0]["playerName"] == "Ann Archer"
        assert set(model.rankings[0]) >= {"rank", "rating", "uncertainty", "change", "previousRating"}
