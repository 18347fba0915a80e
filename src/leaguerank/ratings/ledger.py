"""
Match ledger reader: loads completed games and groups them into rounds.

A round is every game sharing one exact scheduled time. Rounds come out in
chronological order, with games inside a round ordered by game id, and each
round carries its season and week number:

    week = floor((round_time - season_start) / 7 days) + 1   (minimum 1)

Everything is read up front in one short-lived session, together with the
league directory (seasons, rosters, player names) needed to resolve the
games. The replay itself never touches the database.

Validation happens here, before any rating work starts, so malformed data
fails the job without a single write:
- DataError: half-entered or negative scores, missing scheduled time, a team
  playing itself, a season without a start date, a round spanning two
  seasons, seasons interleaved in time
- UnresolvedReferenceError: a game pointing at an unknown season, team or
  player, or at a team with an empty roster
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from leaguerank.config import settings
from leaguerank.db.models import GAME_PLAYOFF, Game, Player, RosterEntry, Season, Team
from leaguerank.db.session import SessionFactory, session_scope
from leaguerank.errors import DataError, TransientError, UnresolvedReferenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

WEEK = timedelta(days=7)


class LedgerGame(NamedTuple):
    """Lightweight completed-game row used by the replay."""
    game_id: int
    season_id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int
    scheduled_at: datetime
    game_type: str

    @property
    def is_playoff(self) -> bool:
        return self.game_type == GAME_PLAYOFF


class SeasonInfo(NamedTuple):
    season_id: int
    name: str
    date_start: Optional[datetime]


@dataclass(frozen=True)
class Round:
    """All games played at one scheduled time."""
    round_id: str
    start: datetime
    season_id: int
    season_index: int
    week: int
    games: tuple[LedgerGame, ...]

    @property
    def game_ids(self) -> list[int]:
        return [g.game_id for g in self.games]

    @property
    def game_count(self) -> int:
        return len(self.games)

    @property
    def bucket(self) -> tuple[int, int]:
        """(season_id, week) snapshot bucket this round belongs to."""
        return self.season_id, self.week


@dataclass
class LeagueDirectory:
    """Seasons, rosters and player names needed to resolve games."""
    seasons: list[SeasonInfo] = field(default_factory=list)
    team_seasons: dict[int, int] = field(default_factory=dict)
    rosters: dict[int, list[int]] = field(default_factory=dict)
    player_names: dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        self._season_index = {s.season_id: i for i, s in enumerate(self.seasons)}

    def season_index(self, season_id: int) -> int:
        try:
            return self._season_index[season_id]
        except KeyError:
            raise UnresolvedReferenceError(f"Unknown season id {season_id}") from None

    def season(self, season_id: int) -> SeasonInfo:
        return self.seasons[self.season_index(season_id)]

    def roster(self, team_id: int) -> list[int]:
        """Player ids on a team, in player id order."""
        if team_id not in self.team_seasons:
            raise UnresolvedReferenceError(f"Unknown team id {team_id}")
        players = self.rosters.get(team_id, [])
        if not players:
            raise UnresolvedReferenceError(f"Team {team_id} has an empty roster")
        return players

    def player_name(self, player_id: int) -> str:
        return self.player_names.get(player_id, "")


@dataclass
class Ledger:
    """Result of one ledger read."""
    directory: LeagueDirectory
    rounds: list[Round]

    @property
    def total_games(self) -> int:
        return sum(r.game_count for r in self.rounds)

    @property
    def last_season_index(self) -> Optional[int]:
        """Index of the last dated season in scope (None when there is none)."""
        dated = [i for i, s in enumerate(self.directory.seasons) if s.date_start is not None]
        return dated[-1] if dated else None


def to_naive_utc(value: datetime) -> datetime:
    """Normalise a timestamp to naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def week_number(round_time: datetime, season_start: datetime) -> int:
    """
    1-based week of a round within its season.

    Rounds scheduled before the season start are counted as week 1.

    Examples:
        week_number(datetime(2024, 1, 1), datetime(2024, 1, 1))   # → 1
        week_number(datetime(2024, 1, 8), datetime(2024, 1, 1))   # → 2
        week_number(datetime(2023, 12, 1), datetime(2024, 1, 1))  # → 1
    """
    elapsed = to_naive_utc(round_time) - to_naive_utc(season_start)
    return max(1, elapsed // WEEK + 1)


def round_id_for(start: datetime) -> str:
    """Deterministic round id: the ISO-8601 round timestamp."""
    return start.isoformat()


def is_completed(home_score: Optional[int], away_score: Optional[int]) -> bool:
    return home_score is not None and away_score is not None


def with_retry(
    func: Callable[[], T],
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    description: str = "Ledger read",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run a storage read with exponential backoff.

    Only DBAPI-level errors (dropped connections, lock timeouts, ...) are
    retried. After the last attempt the error surfaces as TransientError.
    """
    if max_attempts is None:
        max_attempts = settings.ledger_read_max_attempts
    if base_delay is None:
        base_delay = settings.ledger_read_retry_delay
    max_attempts = max(1, max_attempts)

    last_error: Optional[Exception] = None
    for attempt in range(max_attempts):
        try:
            return func()
        except DBAPIError as e:
            last_error = e
            if attempt < max_attempts - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    "[Retry %d/%d] %s failed: %s. Retrying in %.1fs...",
                    attempt + 1, max_attempts, description, e, delay,
                )
                sleep(delay)

    raise TransientError(
        f"{description} failed after {max_attempts} attempts: {last_error}"
    ) from last_error


class MatchLedgerReader:
    """
    Reads the completed-game ledger and league directory.

    Usage:
        reader = MatchLedgerReader(SessionLocal)
        ledger = reader.load()
        for rnd in ledger.rounds:
            print(rnd.round_id, rnd.week, rnd.game_ids)
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    def load(self, season_ids: Optional[list[int]] = None) -> Ledger:
        """
        Load and validate the ledger.

        Args:
            season_ids: Optional season scope. None means every season.

        Raises:
            DataError, UnresolvedReferenceError: On malformed data
            TransientError: When storage reads keep failing
        """
        directory, games = with_retry(
            lambda: self._read(season_ids),
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
            sleep=self._sleep,
        )
        rounds = group_rounds(games, directory)
        logger.info(
            "Loaded %d completed games in %d rounds across %d seasons",
            len(games), len(rounds), len(directory.seasons),
        )
        return Ledger(directory=directory, rounds=rounds)

    def _read(self, season_ids: Optional[list[int]]) -> tuple[LeagueDirectory, list[LedgerGame]]:
        with session_scope(self.session_factory) as session:
            directory = load_directory(session, season_ids)
            games = load_completed_games(session, season_ids)
        return directory, games


def load_directory(session: Session, season_ids: Optional[list[int]] = None) -> LeagueDirectory:
    """Load seasons (in order), team rosters and player names."""
    season_query = select(Season.id, Season.name, Season.date_start)
    if season_ids is not None:
        season_query = season_query.where(Season.id.in_(season_ids))
    season_rows = session.execute(season_query).all()

    # Seasons without a start date sort last; they only fail the job if a
    # game actually belongs to one
    seasons = sorted(
        (
            SeasonInfo(row.id, row.name, to_naive_utc(row.date_start) if row.date_start else None)
            for row in season_rows
        ),
        key=lambda s: (s.date_start is None, s.date_start or datetime.min, s.season_id),
    )

    team_seasons = {row.id: row.season_id for row in session.execute(select(Team.id, Team.season_id))}

    rosters: dict[int, list[int]] = {}
    roster_rows = session.execute(
        select(RosterEntry.team_id, RosterEntry.player_id)
        .order_by(RosterEntry.team_id, RosterEntry.player_id)
    )
    for row in roster_rows:
        rosters.setdefault(row.team_id, []).append(row.player_id)

    player_names = {
        row.id: f"{row.firstname} {row.lastname}".strip()
        for row in session.execute(select(Player.id, Player.firstname, Player.lastname))
    }

    # A roster entry pointing at a missing player can't be rated
    for team_id, players in rosters.items():
        for player_id in players:
            if player_id not in player_names:
                raise UnresolvedReferenceError(
                    f"Team {team_id} roster references unknown player {player_id}"
                )

    return LeagueDirectory(
        seasons=seasons,
        team_seasons=team_seasons,
        rosters=rosters,
        player_names=player_names,
    )


def load_completed_games(session: Session, season_ids: Optional[list[int]] = None) -> list[LedgerGame]:
    """
    Load completed games ordered by (scheduled time, game id).

    Games with neither score are unplayed and skipped. Everything else is
    validated and converted to LedgerGame rows.
    """
    query = select(
        Game.id,
        Game.season_id,
        Game.home_team_id,
        Game.away_team_id,
        Game.home_score,
        Game.away_score,
        Game.scheduled_at,
        Game.game_type,
    )
    if season_ids is not None:
        query = query.where(Game.season_id.in_(season_ids))

    try:
        rows = session.execute(query).all()
    except (ValueError, TypeError) as e:
        # The driver's DateTime conversion fails on unparseable stored values
        raise DataError(f"Game ledger has a malformed scheduled time: {e}") from e

    games: list[LedgerGame] = []
    for row in rows:
        if row.home_score is None and row.away_score is None:
            continue
        games.append(_validated_game(row))

    games.sort(key=lambda g: (g.scheduled_at, g.game_id))
    return games


def _validated_game(row) -> LedgerGame:
    if not is_completed(row.home_score, row.away_score):
        raise DataError(f"Game {row.id} has only one score recorded")
    if row.home_score < 0 or row.away_score < 0:
        raise DataError(f"Game {row.id} has a negative score")
    if row.scheduled_at is None:
        raise DataError(f"Game {row.id} has a score but no scheduled time")
    if not isinstance(row.scheduled_at, datetime):
        raise DataError(f"Game {row.id} has a malformed scheduled time: {row.scheduled_at!r}")
    if row.home_team_id == row.away_team_id:
        raise DataError(f"Game {row.id} has team {row.home_team_id} playing itself")

    return LedgerGame(
        game_id=row.id,
        season_id=row.season_id,
        home_team_id=row.home_team_id,
        away_team_id=row.away_team_id,
        home_score=int(row.home_score),
        away_score=int(row.away_score),
        scheduled_at=to_naive_utc(row.scheduled_at),
        game_type=row.game_type or "regular",
    )


def group_rounds(games: list[LedgerGame], directory: LeagueDirectory) -> list[Round]:
    """
    Group time-ordered games into rounds of identical scheduled time.

    Raises:
        DataError: When a round spans two seasons, a season has no start
            date, or a round's season starts before the previous round's
        UnresolvedReferenceError: When a game points at an unknown season
            or team, or a team with an empty roster
    """
    rounds: list[Round] = []
    current: list[LedgerGame] = []

    for game in games:
        if current and game.scheduled_at != current[0].scheduled_at:
            rounds.append(_build_round(current, directory))
            current = []
        current.append(game)
    if current:
        rounds.append(_build_round(current, directory))

    previous_index = -1
    for rnd in rounds:
        if rnd.season_index < previous_index:
            raise DataError(
                f"Round {rnd.round_id} belongs to season {rnd.season_id}, "
                f"which starts before the previous round's season"
            )
        previous_index = rnd.season_index

    return rounds


def _build_round(games: list[LedgerGame], directory: LeagueDirectory) -> Round:
    start = games[0].scheduled_at
    season_ids = {g.season_id for g in games}
    if len(season_ids) > 1:
        raise DataError(
            f"Round at {start.isoformat()} mixes games from seasons {sorted(season_ids)}"
        )

    season_id = games[0].season_id
    season_index = directory.season_index(season_id)
    season = directory.seasons[season_index]
    if season.date_start is None:
        raise DataError(f"Season {season_id} has completed games but no start date")

    for game in games:
        directory.roster(game.home_team_id)
        directory.roster(game.away_team_id)

    return Round(
        round_id=round_id_for(start),
        start=start,
        season_id=season_id,
        season_index=season_index,
        week=week_number(start, season.date_start),
        games=tuple(sorted(games, key=lambda g: g.game_id)),
    )
