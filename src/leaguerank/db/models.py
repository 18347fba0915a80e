"""
SQLAlchemy ORM models for League Rankings.

Two groups of tables live here:

League tables (owned by the registration/scheduling side of the league, read
only as far as the rating engine is concerned):
- seasons: League seasons, ordered by start date
- players: Registered players
- teams: Teams, one set per season
- roster_entries: Which players are on which team
- games: Scheduled and completed games between two teams

Rating engine tables (written only by the running calculation job):
- calculation_jobs: Append-only log of rebuild jobs and their progress
- player_ratings: One immutable rankings table per calculation
- current_rankings: Single-row pointer to the published calculation
- ranking_snapshots: Append-only weekly history of ratings
- calculated_rounds: Ledger of rounds folded into each calculation
- rating_parameter_sets: Named rating model parameters, at most one active

Key design decisions:
- A rankings table is never updated in place. A rebuild writes a new set of
  player_ratings rows under its own calculation_id and then moves the
  current_rankings pointer in the same transaction.
- JSON columns use JSONB on PostgreSQL and plain JSON elsewhere (SQLite tests).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# JSONB on PostgreSQL, generic JSON on every other dialect
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Job lifecycle statuses
JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_STATUSES = (JOB_PENDING, JOB_RUNNING, JOB_COMPLETED, JOB_FAILED)
IN_FLIGHT_STATUSES = (JOB_PENDING, JOB_RUNNING)

# Game types
GAME_REGULAR = "regular"
GAME_PLAYOFF = "playoff"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# League Models
# =============================================================================

class Season(Base):
    """
    A league season.

    Seasons are ordered by date_start (then id). Week numbers inside a season
    are counted from date_start, so a season without a start date cannot be
    rated.
    """
    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_start: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    teams: Mapped[list["Team"]] = relationship(back_populates="season")

    def __repr__(self) -> str:
        return f"<Season(id={self.id}, name='{self.name}')>"


class Player(Base):
    """Registered player."""
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)
    firstname: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, name='{self.display_name}')>"


class Team(Base):
    """A team registered for one season."""
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    season_id: Mapped[int] = mapped_column(ForeignKey("seasons.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    season: Mapped["Season"] = relationship(back_populates="teams")
    roster: Mapped[list["RosterEntry"]] = relationship(
        back_populates="team", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}')>"


class RosterEntry(Base):
    """Membership of a player on a team."""
    __tablename__ = "roster_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)

    team: Mapped["Team"] = relationship(back_populates="roster")

    __table_args__ = (
        UniqueConstraint("team_id", "player_id", name="uq_roster_team_player"),
        Index("idx_roster_entries_team", "team_id"),
    )

    def __repr__(self) -> str:
        return f"<RosterEntry(team_id={self.team_id}, player_id={self.player_id})>"


class Game(Base):
    """
    A game between a home and an away team.

    Scores stay NULL until the game is played; only games with both scores
    are fed to the rating engine.

    Game types:
    - 'regular': Regular season game
    - 'playoff': Playoff game (weighted by the playoff multiplier)
    """
    __tablename__ = "games"

    id: Mapped[int] = mapped_column(primary_key=True)
    season_id: Mapped[int] = mapped_column(ForeignKey("seasons.id"), nullable=False)
    home_team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    away_team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    home_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    field: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    game_type: Mapped[str] = mapped_column(String(20), nullable=False, default=GAME_REGULAR)

    __table_args__ = (
        Index("idx_games_season_scheduled", "season_id", "scheduled_at"),
        Index("idx_games_scheduled_id", "scheduled_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, home={self.home_team_id}, away={self.away_team_id})>"


# =============================================================================
# Rating Engine Models
# =============================================================================

class CalculationJob(Base):
    """
    One full ratings rebuild.

    Status lifecycle: pending -> running -> completed | failed. Rows are never
    deleted so the log doubles as an audit trail of who rebuilt what and when.
    """
    __tablename__ = "calculation_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    calculation_type: Mapped[str] = mapped_column(String(30), nullable=False, default="full_rebuild")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JOB_PENDING)
    triggered_by: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    # Process that created or is running the job; used to recover after restarts
    worker_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    heartbeat_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Progress (polled by the admin screen)
    current_step: Mapped[str] = mapped_column(String(200), nullable=False, default="Initializing...")
    percent_complete: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_season_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rounds_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    seasons_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_seasons: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Last (season, week) whose snapshot was written
    checkpoint_season_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    checkpoint_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Failure details
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_stack: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    parameters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    cancel_requested: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    __table_args__ = (
        Index("idx_calculation_jobs_status", "status"),
        Index("idx_calculation_jobs_started_at", "started_at"),
        CheckConstraint(
            "percent_complete >= 0 AND percent_complete <= 100",
            name="ck_calculation_jobs_percent_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<CalculationJob(calculation_id='{self.calculation_id}', status='{self.status}')>"


class PlayerRating(Base):
    """
    A player's row in one calculation's rankings table.

    rank is contiguous (1..N) among active players and NULL for inactive ones.
    """
    __tablename__ = "player_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    player_id: Mapped[int] = mapped_column(Integer, nullable=False)
    player_name: Mapped[str] = mapped_column(String(220), nullable=False, default="")

    mu: Mapped[float] = mapped_column(Float, nullable=False)
    sigma: Mapped[float] = mapped_column(Float, nullable=False)
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    total_games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_seasons: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_season_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_game_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_rating_change: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("calculation_id", "player_id", name="uq_player_ratings_calc_player"),
        Index("idx_player_ratings_calc_rank", "calculation_id", "rank"),
    )

    def __repr__(self) -> str:
        return f"<PlayerRating(player_id={self.player_id}, mu={self.mu:.2f}, rank={self.rank})>"


class CurrentRankings(Base):
    """Pointer to the published rankings table (one row, key='current')."""
    __tablename__ = "current_rankings"

    key: Mapped[str] = mapped_column(String(20), primary_key=True)
    calculation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<CurrentRankings(calculation_id='{self.calculation_id}')>"


class RankingSnapshot(Base):
    """
    Weekly ranking history for one (season, week) of one calculation.

    Append-only. A snapshot is written once and never edited; a correction
    means a fresh rebuild that writes a fresh set of snapshots.
    """
    __tablename__ = "ranking_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    season_id: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Ordered per-player entries
    # Format: [{"playerId": 1, "rating": 27.1, "rank": 1, "change": 0.8, ...}, ...]
    rankings: Mapped[list] = mapped_column(JSONType, nullable=False)

    games_in_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rounds_in_week: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_games_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_rating: Mapped[float] = mapped_column(Float, nullable=False)
    active_player_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("calculation_id", "season_id", "week", name="uq_ranking_snapshots_bucket"),
        UniqueConstraint("calculation_id", "sequence", name="uq_ranking_snapshots_sequence"),
        Index("idx_ranking_snapshots_calc_season", "calculation_id", "season_id"),
    )

    def __repr__(self) -> str:
        return f"<RankingSnapshot(season_id={self.season_id}, week={self.week})>"


class CalculatedRound(Base):
    """Ledger entry recording that a round was folded into a calculation."""
    __tablename__ = "calculated_rounds"

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    round_id: Mapped[str] = mapped_column(String(40), nullable=False)
    round_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    season_id: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    game_count: Mapped[int] = mapped_column(Integer, nullable=False)
    game_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("calculation_id", "round_id", name="uq_calculated_rounds_calc_round"),
    )

    def __repr__(self) -> str:
        return f"<CalculatedRound(round_id='{self.round_id}', games={self.game_count})>"


class RatingParameterSet(Base):
    """Persisted rating model parameter sets (defaults and tuned variants)."""
    __tablename__ = "rating_parameter_sets"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    params: Mapped[dict] = mapped_column(JSONType, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="manual")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_rating_parameter_sets_active", "is_active"),
        # At most one active set
        Index(
            "uq_rating_parameter_sets_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<RatingParameterSet(name='{self.name}', active={self.is_active})>"
