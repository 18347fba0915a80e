"""
Round processor and replay: rebuilds every rating from the game ledger.

The replay walks the rounds strictly in chronological order. Round N's output
is round N+1's input, so there is no parallelism across rounds. Inside a round
every game is rated against the state as it was before the round, and the
results are applied together afterwards (the round barrier). Game order
inside a round therefore can't change the outcome.

Per round the replay:
1. Closes the previous (season, week) bucket with a snapshot if the bucket
   changed
2. Applies season boundary decay if the season changed
3. Rates the round's games and updates player bookkeeping
4. Reports progress (the callback may raise JobCancelledError)

After the last round the final week is snapshotted and any trailing season
boundaries up to the last season in scope are applied.

Replay is a pure function of (ledger, params): nothing here reads the clock
except for the snapshot calculated_at metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from leaguerank.errors import DataError
from leaguerank.ratings.decay import SeasonDecay
from leaguerank.ratings.ledger import LeagueDirectory, Ledger, LedgerGame, Round
from leaguerank.ratings.margin import margin_multiplier
from leaguerank.ratings.params import RatingParams
from leaguerank.ratings.skill import GameUpdate, SkillModel, game_outcome
from leaguerank.ratings.snapshots import SnapshotRecord, SnapshotWriter
from leaguerank.ratings.state import PlayerState

logger = logging.getLogger(__name__)


@dataclass
class ReplayProgress:
    """Counters reported to the progress callback after each round."""
    rounds_processed: int = 0
    total_rounds: int = 0
    games_processed: int = 0
    total_games: int = 0
    seasons_processed: int = 0
    total_seasons: int = 0
    current_season_id: Optional[int] = None
    current_week: Optional[int] = None


@dataclass
class ReplayResult:
    """Everything the publisher needs from a finished replay."""
    states: dict[int, PlayerState]
    snapshots: list[SnapshotRecord]
    processed_rounds: list[Round]
    progress: ReplayProgress
    skipped_round_ids: list[str] = field(default_factory=list)
    decay_events: int = 0

    @property
    def active_players(self) -> int:
        return sum(1 for s in self.states.values() if s.is_active)


ProgressCallback = Callable[[ReplayProgress], None]
WeekCallback = Callable[[SnapshotRecord], None]


class RoundProcessor:
    """
    Applies one round of games to the in-memory player states.

    Usage:
        processor = RoundProcessor(params, directory)
        updates = processor.process_round(rnd)
        print(processor.states[player_id].mu)
    """

    def __init__(self, params: RatingParams, directory: LeagueDirectory):
        self.params = params
        self.directory = directory
        self.model = SkillModel(params)
        self.states: dict[int, PlayerState] = {}
        self._last_round_start: Optional[datetime] = None

    def _state_for(self, player_id: int) -> PlayerState:
        state = self.states.get(player_id)
        if state is None:
            state = PlayerState(
                player_id=player_id,
                mu=self.params.initial_mu,
                sigma=self.params.initial_sigma,
                week_start_mu=self.params.initial_mu,
            )
            self.states[player_id] = state
        return state

    def game_multiplier(self, game: LedgerGame) -> float:
        """Point differential multiplier x playoff multiplier for one game."""
        margin = margin_multiplier(
            game.home_score,
            game.away_score,
            margin_scale=self.params.margin_scale,
            max_full_weight=self.params.max_full_weight_differential,
            multiplier_max=self.params.margin_multiplier_max,
        )
        return margin * self.params.multiplier_for(game.game_type)

    def process_round(self, rnd: Round) -> list[GameUpdate]:
        """
        Rate every game of a round and apply the results.

        Raises:
            DataError: If the round is out of order or a player appears in
                more than one game of the round
            UnresolvedReferenceError: If a game's team can't be resolved
        """
        if self._last_round_start is not None and rnd.start <= self._last_round_start:
            raise DataError(
                f"Round {rnd.round_id} is not after the previous round "
                f"({self._last_round_start.isoformat()})"
            )

        # Resolve rosters and check nobody plays twice in one round
        sides: list[tuple[LedgerGame, list[int], list[int]]] = []
        seen: dict[int, int] = {}
        for game in rnd.games:
            home_ids = self.directory.roster(game.home_team_id)
            away_ids = self.directory.roster(game.away_team_id)
            for player_id in home_ids + away_ids:
                if player_id in seen:
                    raise DataError(
                        f"Player {player_id} appears in games {seen[player_id]} and "
                        f"{game.game_id} of round {rnd.round_id}"
                    )
                seen[player_id] = game.game_id
            sides.append((game, home_ids, away_ids))

        # Every game reads the pre-round state...
        updates: list[GameUpdate] = []
        for game, home_ids, away_ids in sides:
            home = [self._state_for(pid).rating for pid in home_ids]
            away = [self._state_for(pid).rating for pid in away_ids]
            updates.append(self.model.rate_game(
                home,
                away,
                outcome=game_outcome(game.home_score, game.away_score),
                multiplier=self.game_multiplier(game),
            ))

        # ...and all results are applied after the barrier
        for (game, home_ids, away_ids), update in zip(sides, updates):
            for player_id, after in zip(home_ids, update.home_after):
                self._apply(player_id, after.mu, after.sigma, rnd)
            for player_id, after in zip(away_ids, update.away_after):
                self._apply(player_id, after.mu, after.sigma, rnd)

        self._last_round_start = rnd.start
        return updates

    def _apply(self, player_id: int, mu: float, sigma: float, rnd: Round) -> None:
        state = self.states[player_id]
        state.last_rating_change = mu - state.mu
        state.mu = mu
        state.sigma = sigma
        state.total_games += 1
        state.games_this_week += 1
        state.seasons_played.add(rnd.season_id)
        state.last_season_id = rnd.season_id
        state.last_season_index = rnd.season_index
        state.last_game_at = rnd.start
        state.is_active = True


class RatingReplay:
    """
    Full chronological replay of a ledger.

    Usage:
        replay = RatingReplay(params)
        result = replay.run(ledger, on_round=report_progress)
        publisher.publish(calculation_id, result.states, ledger.directory,
                          snapshots=result.snapshots, rounds=result.processed_rounds)
    """

    def __init__(self, params: RatingParams):
        self.params = params

    def run(
        self,
        ledger: Ledger,
        on_round: Optional[ProgressCallback] = None,
        on_season: Optional[ProgressCallback] = None,
        on_week: Optional[WeekCallback] = None,
    ) -> ReplayResult:
        """
        Replay every round of the ledger.

        Args:
            ledger: Validated rounds plus league directory
            on_round: Called after each round; may raise to abort the replay
            on_season: Called after each season transition (decay applied)
            on_week: Called with each snapshot as its week closes

        Returns:
            ReplayResult with final states, snapshots and processed rounds
        """
        params = self.params
        directory = ledger.directory
        processor = RoundProcessor(params, directory)
        decay = SeasonDecay(params)
        writer = SnapshotWriter(directory, params.initial_mu)

        progress = ReplayProgress(
            total_rounds=len(ledger.rounds),
            total_games=ledger.total_games,
            total_seasons=len({r.season_id for r in ledger.rounds}),
        )
        processed: list[Round] = []
        skipped: list[str] = []
        seen_round_ids: set[str] = set()

        current_season_index: Optional[int] = None
        current_bucket: Optional[tuple[int, int]] = None
        bucket_games = 0
        bucket_rounds = 0
        bucket_last_start: Optional[datetime] = None

        def close_week() -> None:
            record = writer.record_week(
                season_id=current_bucket[0],
                week=current_bucket[1],
                states=processor.states.values(),
                snapshot_at=bucket_last_start,
                games_in_week=bucket_games,
                rounds_in_week=bucket_rounds,
                total_games_processed=progress.games_processed,
            )
            if on_week is not None:
                on_week(record)

        for rnd in ledger.rounds:
            if rnd.round_id in seen_round_ids:
                logger.warning("Skipping duplicate round %s", rnd.round_id)
                skipped.append(rnd.round_id)
                continue
            seen_round_ids.add(rnd.round_id)

            if rnd.bucket != current_bucket:
                if current_bucket is not None:
                    close_week()

                if current_season_index is None or rnd.season_index != current_season_index:
                    if current_season_index is not None:
                        decay.cross(current_season_index, rnd.season_index, processor.states)
                    current_season_index = rnd.season_index
                    progress.seasons_processed += 1
                    progress.current_season_id = rnd.season_id
                    progress.current_week = rnd.week
                    logger.info(
                        "Season %d (index %d) started at %s",
                        rnd.season_id, rnd.season_index, rnd.start.isoformat(),
                    )
                    if on_season is not None:
                        on_season(progress)

                for state in processor.states.values():
                    state.start_week()
                current_bucket = rnd.bucket
                bucket_games = 0
                bucket_rounds = 0

            processor.process_round(rnd)
            processed.append(rnd)
            bucket_games += rnd.game_count
            bucket_rounds += 1
            bucket_last_start = rnd.start

            progress.rounds_processed += 1
            progress.games_processed += rnd.game_count
            progress.current_season_id = rnd.season_id
            progress.current_week = rnd.week
            if on_round is not None:
                on_round(progress)

        if current_bucket is not None:
            close_week()

        # Players who stopped playing still regress through the remaining seasons
        last_index = ledger.last_season_index
        if current_season_index is not None and last_index is not None and last_index > current_season_index:
            decay.cross(current_season_index, last_index, processor.states)

        logger.info(
            "Replay finished: %d rounds, %d games, %d players, %d snapshots, %d decay events",
            progress.rounds_processed, progress.games_processed, len(processor.states),
            len(writer.records), decay.decay_events,
        )

        return ReplayResult(
            states=processor.states,
            snapshots=writer.records,
            processed_rounds=processed,
            progress=progress,
            skipped_round_ids=skipped,
            decay_events=decay.decay_events,
        )
