"""
Progress reporting for a running calculation job.

Each write happens in its own short session and commits immediately, so a
polling caller sees progress while the replay is still running. Every write
also refreshes the heartbeat and reads the cooperative cancel flag.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select

from leaguerank.db.models import JOB_RUNNING, CalculationJob
from leaguerank.db.session import SessionFactory, session_scope
from leaguerank.errors import JobCancelledError
from leaguerank.ratings.processor import ReplayProgress
from leaguerank.ratings.snapshots import SnapshotRecord

logger = logging.getLogger(__name__)

# Percent stays below 100 until the table is actually published
MAX_RUNNING_PERCENT = 99


def percent_complete(rounds_processed: int, total_rounds: int) -> int:
    """
    Whole-number percent of rounds processed, capped at 99.

    Examples:
        percent_complete(0, 0)      # → 0
        percent_complete(1, 3)      # → 33
        percent_complete(10, 10)    # → 99
    """
    if total_rounds <= 0:
        return 0
    return min(MAX_RUNNING_PERCENT, (100 * rounds_processed) // total_rounds)


class JobProgressTracker:
    """
    Writes replay progress onto one calculation job row.

    Used as the replay callbacks:
        tracker = JobProgressTracker(SessionLocal, calculation_id)
        replay.run(ledger, on_round=tracker.round_completed,
                   on_season=tracker.season_started, on_week=tracker.week_closed)
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        calculation_id: str,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.calculation_id = calculation_id
        self.clock = clock
        self.percent = 0
        self.checkpoint: Optional[tuple[int, int]] = None

    def _write(self, **values) -> None:
        """Apply values to the job row, refresh the heartbeat, honour cancel."""
        with session_scope(self.session_factory) as session:
            job = session.scalar(
                select(CalculationJob).where(CalculationJob.calculation_id == self.calculation_id)
            )
            if job is None:
                raise LookupError(f"Calculation job {self.calculation_id} not found")
            if job.status != JOB_RUNNING:
                raise JobCancelledError(
                    f"Calculation {self.calculation_id} is no longer running (status={job.status})"
                )
            cancel_requested = job.cancel_requested
            for key, value in values.items():
                setattr(job, key, value)
            job.heartbeat_at = self.clock()

        if cancel_requested:
            logger.info("Cancel requested for calculation %s", self.calculation_id)
            raise JobCancelledError(f"Calculation {self.calculation_id} cancelled by request")

    def step(self, description: str) -> None:
        """Record a named step (loading, publishing, ...)."""
        self._write(current_step=description)

    def round_completed(self, progress: ReplayProgress) -> None:
        # Never report less than we already did
        self.percent = max(self.percent, percent_complete(progress.rounds_processed, progress.total_rounds))
        self._write(
            current_step=f"Processed round {progress.rounds_processed} of {progress.total_rounds}",
            percent_complete=self.percent,
            current_season_id=progress.current_season_id,
            current_week=progress.current_week,
            rounds_processed=progress.rounds_processed,
            total_rounds=progress.total_rounds,
            games_processed=progress.games_processed,
            total_games=progress.total_games,
            seasons_processed=progress.seasons_processed,
            total_seasons=progress.total_seasons,
        )

    def season_started(self, progress: ReplayProgress) -> None:
        self._write(
            current_step=f"Processing season {progress.current_season_id}",
            current_season_id=progress.current_season_id,
            current_week=progress.current_week,
            seasons_processed=progress.seasons_processed,
            total_seasons=progress.total_seasons,
        )

    def week_closed(self, record: SnapshotRecord) -> None:
        self.checkpoint = record.bucket
        self._write(
            checkpoint_season_id=record.season_id,
            checkpoint_week=record.week,
        )
