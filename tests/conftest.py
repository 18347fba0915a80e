"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

import os
from datetime import datetime

# Keep the module-level engine off any real database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leaguerank.db.models import Base, Game, Player, RosterEntry, Season, Team


@pytest.fixture
def test_engine():
    """
    Create a test database engine.

    SQLite in-memory shared across threads (StaticPool), so the job
    controller's short-lived sessions and FastAPI's threadpool all see the
    same database. A fresh database per test because the controller commits.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine."""
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """A session for arranging data and asserting on results."""
    session = session_factory()
    yield session
    session.close()


class LeagueBuilder:
    """
    Small helper for arranging league data.

    Every team gets its own season-scoped roster. Passing a player name that
    was seen before reuses the same player.
    """

    def __init__(self, session):
        self.session = session
        self.players: dict[str, Player] = {}
        self.teams: dict[str, Team] = {}
        self._game_id = 0

    def season(self, name: str, start: datetime | None) -> Season:
        season = Season(name=name, date_start=start)
        self.session.add(season)
        self.session.flush()
        return season

    def player(self, name: str) -> Player:
        if name not in self.players:
            first, _, last = name.partition(" ")
            player = Player(firstname=first, lastname=last or "")
            self.session.add(player)
            self.session.flush()
            self.players[name] = player
        return self.players[name]

    def team(self, season: Season, name: str, roster: list[str]) -> Team:
        team = Team(season_id=season.id, name=name)
        self.session.add(team)
        self.session.flush()
        for player_name in roster:
            self.session.add(RosterEntry(team_id=team.id, player_id=self.player(player_name).id))
        self.session.flush()
        self.teams[name] = team
        return team

    def game(
        self,
        season: Season,
        home: Team,
        away: Team,
        home_score: int | None,
        away_score: int | None,
        at: datetime | None,
        game_type: str = "regular",
    ) -> Game:
        game = Game(
            season_id=season.id,
            home_team_id=home.id,
            away_team_id=away.id,
            home_score=home_score,
            away_score=away_score,
            scheduled_at=at,
            game_type=game_type,
        )
        self.session.add(game)
        self.session.flush()
        return game

    def commit(self) -> None:
        self.session.commit()


@pytest.fixture
def league(db_session):
    """League data builder bound to the test session."""
    return LeagueBuilder(db_session)


@pytest.fixture
def two_season_league(league):
    """
    Two seasons of one-player teams.

    Season 1 (2024-01-01):
        week 1, one round: Alice beats Bob 10-3, Carol beats Dave 7-6
        week 2: Alice and Carol draw 8-8
    Season 2 (2024-06-01):
        week 1: Bob beats Alice 6-4 (playoff)
        week 2: Alice vs Bob, not played yet
    """
    s1 = league.season("Spring 2024", datetime(2024, 1, 1))
    s2 = league.season("Summer 2024", datetime(2024, 6, 1))

    a1 = league.team(s1, "A1", ["Alice Adams"])
    b1 = league.team(s1, "B1", ["Bob Brown"])
    c1 = league.team(s1, "C1", ["Carol Clark"])
    d1 = league.team(s1, "D1", ["Dave Davis"])
    a2 = league.team(s2, "A2", ["Alice Adams"])
    b2 = league.team(s2, "B2", ["Bob Brown"])

    league.game(s1, a1, b1, 10, 3, datetime(2024, 1, 2, 19, 0))
    league.game(s1, c1, d1, 7, 6, datetime(2024, 1, 2, 19, 0))
    league.game(s1, a1, c1, 8, 8, datetime(2024, 1, 9, 19, 0))
    league.game(s2, b2, a2, 6, 4, datetime(2024, 6, 3, 19, 0), game_type="playoff")
    # Scheduled but not played yet
    league.game(s2, a2, b2, None, None, datetime(2024, 6, 10, 19, 0))
    league.commit()
    return league
