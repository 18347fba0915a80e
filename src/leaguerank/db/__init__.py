"""
Database module for League Rankings.

Provides SQLAlchemy ORM models and session management.

Usage:
    from leaguerank.db import get_session, Game, PlayerRating

    with get_session() as session:
        games = session.query(Game).all()
"""

from leaguerank.db.models import (
    Base,
    Season,
    Player,
    Team,
    RosterEntry,
    Game,
    CalculationJob,
    PlayerRating,
    CurrentRankings,
    RankingSnapshot,
    CalculatedRound,
    RatingParameterSet,
)
from leaguerank.db.session import (
    SessionFactory,
    SessionLocal,
    get_db,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    # Base
    "Base",
    # League models
    "Season",
    "Player",
    "Team",
    "RosterEntry",
    "Game",
    # Rating engine models
    "CalculationJob",
    "PlayerRating",
    "CurrentRankings",
    "RankingSnapshot",
    "CalculatedRound",
    "RatingParameterSet",
    # Session
    "SessionFactory",
    "SessionLocal",
    "get_db",
    "get_engine",
    "get_session",
    "session_scope",
]
