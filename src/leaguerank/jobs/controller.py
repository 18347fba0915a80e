"""
Calculation job controller.

Owns the lifecycle of a full rankings rebuild:

    pending ──> running ──> completed
       │           │
       └───────────┴──────> failed

- trigger_full_rebuild() creates a pending job, or raises ConcurrencyError if
  one is already pending/running. Only one job may be in flight at a time.
- run_job() runs a pending job to completion: load ledger, replay, publish.
  Any failure is captured on the job row (message, stack, timestamp, last
  checkpoint) and the previously published rankings stay current.
- cancel() sets the cooperative cancel flag, honoured at round boundaries.
- recover_stale_jobs() fails in-flight jobs whose heartbeat went quiet, e.g.
  after a process restart. Jobs are never resumed mid-replay.

The trigger returns immediately with the job id; callers poll
get_calculation_status() for the outcome.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
import traceback
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from leaguerank.config import settings
from leaguerank.db.models import (
    IN_FLIGHT_STATUSES,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_RUNNING,
    CalculationJob,
)
from leaguerank.db.session import SessionFactory, SessionLocal, session_scope
from leaguerank.errors import ConcurrencyError, InvalidTransitionError, JobCancelledError
from leaguerank.jobs.locks import database_trigger_lock
from leaguerank.jobs.progress import JobProgressTracker
from leaguerank.ratings.ledger import MatchLedgerReader
from leaguerank.ratings.params import RatingParams, get_active_rating_params
from leaguerank.ratings.processor import RatingReplay
from leaguerank.ratings.publisher import RankingsPublisher

logger = logging.getLogger(__name__)

FULL_REBUILD = "full_rebuild"
TRIGGER_LOCK_NAME = "leaguerank:full_rebuild"

# Legal status transitions. pending -> failed covers jobs cancelled or found
# stale before they ever started.
ALLOWED_TRANSITIONS = {
    JOB_PENDING: {JOB_RUNNING, JOB_FAILED},
    JOB_RUNNING: {JOB_COMPLETED, JOB_FAILED},
    JOB_COMPLETED: set(),
    JOB_FAILED: set(),
}


def transition(job: CalculationJob, new_status: str) -> None:
    """Move a job to new_status, or raise InvalidTransitionError."""
    if new_status not in ALLOWED_TRANSITIONS.get(job.status, set()):
        raise InvalidTransitionError(
            f"Calculation {job.calculation_id}: cannot go from {job.status} to {new_status}"
        )
    job.status = new_status


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def job_to_dict(job: CalculationJob) -> dict:
    """Wire representation of a calculation job."""
    error = None
    if job.error_message is not None:
        error = {
            "message": job.error_message,
            "stack": job.error_stack,
            "timestamp": _iso(job.error_at),
        }
    checkpoint = None
    if job.checkpoint_season_id is not None:
        checkpoint = {"seasonId": job.checkpoint_season_id, "week": job.checkpoint_week}

    return {
        "calculationId": job.calculation_id,
        "type": job.calculation_type,
        "status": job.status,
        "triggeredBy": job.triggered_by,
        "workerId": job.worker_id,
        "startedAt": _iso(job.started_at),
        "completedAt": _iso(job.completed_at),
        "heartbeatAt": _iso(job.heartbeat_at),
        "progress": {
            "currentStep": job.current_step,
            "percentComplete": job.percent_complete,
            "currentSeasonId": job.current_season_id,
            "currentWeek": job.current_week,
            "roundsProcessed": job.rounds_processed,
            "totalRounds": job.total_rounds,
            "gamesProcessed": job.games_processed,
            "totalGames": job.total_games,
            "seasonsProcessed": job.seasons_processed,
            "totalSeasons": job.total_seasons,
        },
        "checkpoint": checkpoint,
        "error": error,
        "parameters": job.parameters,
        "cancelRequested": job.cancel_requested,
    }


class CalculationJobController:
    """
    Single-flight controller for full rankings rebuilds.

    Usage:
        controller = CalculationJobController()
        accepted = controller.trigger_full_rebuild(triggered_by="admin@league")
        controller.run_job(accepted["calculationId"])   # usually a background task
        print(controller.get_calculation_status(accepted["calculationId"]))
    """

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        engine: Optional[Engine] = None,
        reader: Optional[MatchLedgerReader] = None,
        publisher: Optional[RankingsPublisher] = None,
        stale_after_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        worker_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine if engine is not None else getattr(session_factory, "kw", {}).get("bind")
        self.reader = reader or MatchLedgerReader(session_factory)
        self.publisher = publisher or RankingsPublisher(session_factory)
        self.stale_after_seconds = (
            stale_after_seconds if stale_after_seconds is not None else settings.stale_job_after_seconds
        )
        self.clock = clock
        # host:pid:nonce, unique per controller instance
        self.worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._trigger_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Command surface
    # ------------------------------------------------------------------

    def trigger_full_rebuild(self, triggered_by: Optional[str] = None) -> dict:
        """
        Create a pending full-rebuild job.

        Returns:
            {"calculationId", "status", "message"}

        Raises:
            ConcurrencyError: If another job is pending or running
        """
        self.recover_stale_jobs()

        if not self._trigger_lock.acquire(blocking=False):
            raise ConcurrencyError("A rankings rebuild is already being started")
        try:
            try:
                with database_trigger_lock(self.engine, TRIGGER_LOCK_NAME):
                    job = self._create_job(triggered_by or settings.default_triggered_by)
            except TimeoutError as e:
                raise ConcurrencyError(
                    "A rankings rebuild is already being started by another process"
                ) from e
        finally:
            self._trigger_lock.release()

        logger.info("Accepted full rebuild %s (triggered by %s)", job["calculationId"], job["triggeredBy"])
        return {
            "calculationId": job["calculationId"],
            "status": job["status"],
            "message": "Full rankings rebuild accepted",
        }

    def _create_job(self, triggered_by: Optional[str]) -> dict:
        with session_scope(self.session_factory) as session:
            in_flight = session.scalar(
                select(CalculationJob)
                .where(CalculationJob.status.in_(IN_FLIGHT_STATUSES))
                .order_by(CalculationJob.started_at.desc())
                .limit(1)
            )
            if in_flight is not None:
                raise ConcurrencyError(
                    f"Calculation {in_flight.calculation_id} is already {in_flight.status}",
                    calculation_id=in_flight.calculation_id,
                )

            params, params_version = get_active_rating_params(session)
            now = self.clock()
            job = CalculationJob(
                calculation_id=uuid.uuid4().hex,
                calculation_type=FULL_REBUILD,
                status=JOB_PENDING,
                triggered_by=triggered_by,
                worker_id=self.worker_id,
                started_at=now,
                heartbeat_at=now,
                current_step="Queued",
                percent_complete=0,
                parameters={**params.to_dict(), "paramsVersion": params_version},
                cancel_requested=False,
            )
            session.add(job)
            session.flush()
            return job_to_dict(job)

    def run_job(self, calculation_id: str) -> str:
        """
        Run a pending job to a terminal status.

        Failures are recorded on the job rather than raised, since the caller
        is normally a background task that nobody is waiting on.

        Returns:
            Final status ('completed' or 'failed')

        Raises:
            LookupError: If the job does not exist
            InvalidTransitionError: If the job is not pending
        """
        params = self._start(calculation_id)
        if params is None:
            return JOB_FAILED
        tracker = JobProgressTracker(self.session_factory, calculation_id, clock=self.clock)

        try:
            tracker.step("Loading match ledger")
            ledger = self.reader.load()

            tracker.step(f"Replaying {len(ledger.rounds)} rounds")
            result = RatingReplay(params).run(
                ledger,
                on_round=tracker.round_completed,
                on_season=tracker.season_started,
                on_week=tracker.week_closed,
            )

            tracker.step("Publishing rankings")
            self.publisher.publish(
                calculation_id,
                result.states,
                ledger.directory,
                snapshots=result.snapshots,
                rounds=result.processed_rounds,
            )
        except Exception as e:
            logger.exception("Calculation %s failed", calculation_id)
            return self._fail(calculation_id, e, traceback.format_exc(), tracker.checkpoint)

        with session_scope(self.session_factory) as session:
            job = self._get_job(session, calculation_id)
            transition(job, JOB_COMPLETED)
            job.percent_complete = 100
            job.current_step = "Completed"
            job.completed_at = self.clock()
            job.heartbeat_at = job.completed_at
            job.rounds_processed = result.progress.rounds_processed
            job.total_rounds = result.progress.total_rounds
            job.games_processed = result.progress.games_processed
            job.total_games = result.progress.total_games
            job.seasons_processed = result.progress.seasons_processed
            job.total_seasons = result.progress.total_seasons

        logger.info(
            "Calculation %s completed: %d rounds, %d games, %d players (%d active)",
            calculation_id, result.progress.rounds_processed, result.progress.games_processed,
            len(result.states), result.active_players,
        )
        return JOB_COMPLETED

    def rebuild(self, triggered_by: Optional[str] = None) -> dict:
        """Trigger and run a full rebuild synchronously; returns the final job record."""
        accepted = self.trigger_full_rebuild(triggered_by=triggered_by)
        self.run_job(accepted["calculationId"])
        return self.get_calculation_status(accepted["calculationId"])

    def cancel(self, calculation_id: str) -> Optional[dict]:
        """
        Request cooperative cancellation.

        A pending job is failed straight away; a running job stops at the
        next round boundary. Terminal jobs are returned unchanged.
        Returns None if the job does not exist.
        """
        with session_scope(self.session_factory) as session:
            job = session.scalar(
                select(CalculationJob).where(CalculationJob.calculation_id == calculation_id)
            )
            if job is None:
                return None
            if job.status in IN_FLIGHT_STATUSES:
                job.cancel_requested = True
                if job.status == JOB_PENDING:
                    self._record_failure(job, "Cancelled before start", None)
                logger.info("Cancel requested for calculation %s (%s)", calculation_id, job.status)
            session.flush()
            return job_to_dict(job)

    def recover_stale_jobs(self, on_startup: bool = False) -> int:
        """
        Fail pending/running jobs that can no longer finish.

        A job is stale when its heartbeat is older than the stale limit. With
        on_startup=True every in-flight job owned by another worker is failed
        regardless of heartbeat age: the API runs one job-executing process,
        so anything in flight when it boots was left behind by its previous
        incarnation.

        Returns:
            Number of jobs marked failed
        """
        cutoff = self.clock() - timedelta(seconds=self.stale_after_seconds)
        recovered = 0
        with session_scope(self.session_factory) as session:
            jobs = session.scalars(
                select(CalculationJob).where(CalculationJob.status.in_(IN_FLIGHT_STATUSES))
            ).all()
            for job in jobs:
                last_seen = job.heartbeat_at or job.started_at
                if on_startup and job.worker_id != self.worker_id:
                    message = f"Abandoned job: worker {job.worker_id or 'unknown'} is gone (process restarted)"
                elif last_seen is not None and last_seen < cutoff:
                    message = f"Stale job: no heartbeat since {last_seen.isoformat()}"
                else:
                    continue
                self._record_failure(job, message, None)
                recovered += 1
                logger.warning("Marked calculation %s as failed: %s", job.calculation_id, message)
        return recovered

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def get_calculation_status(self, calculation_id: str) -> Optional[dict]:
        """Job record for calculation_id, or None if unknown."""
        with session_scope(self.session_factory) as session:
            job = session.scalar(
                select(CalculationJob).where(CalculationJob.calculation_id == calculation_id)
            )
            return job_to_dict(job) if job else None

    def recent_calculations(self, limit: int = 10) -> list[dict]:
        """Most recent jobs, newest first."""
        with session_scope(self.session_factory) as session:
            jobs = session.scalars(
                select(CalculationJob)
                .order_by(CalculationJob.started_at.desc(), CalculationJob.id.desc())
                .limit(max(0, limit))
            ).all()
            return [job_to_dict(job) for job in jobs]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _get_job(session: Session, calculation_id: str) -> CalculationJob:
        job = session.scalar(
            select(CalculationJob).where(CalculationJob.calculation_id == calculation_id)
        )
        if job is None:
            raise LookupError(f"Calculation job {calculation_id} not found")
        return job

    def _start(self, calculation_id: str) -> Optional[RatingParams]:
        """
        pending -> running; returns the params recorded on the job.

        Returns None for a job that was cancelled before it started.
        """
        with session_scope(self.session_factory) as session:
            job = self._get_job(session, calculation_id)
            if job.status == JOB_FAILED and job.cancel_requested:
                logger.info("Calculation %s was cancelled before start", calculation_id)
                return None
            transition(job, JOB_RUNNING)
            job.worker_id = self.worker_id
            job.current_step = "Starting"
            job.heartbeat_at = self.clock()
            params = RatingParams.from_dict(job.parameters or {})
        logger.info("Calculation %s running", calculation_id)
        return params

    def _record_failure(self, job: CalculationJob, message: str, stack: Optional[str]) -> None:
        transition(job, JOB_FAILED)
        now = self.clock()
        job.error_message = message
        job.error_stack = stack
        job.error_at = now
        job.completed_at = now
        job.current_step = "Failed"

    def _fail(
        self,
        calculation_id: str,
        error: Exception,
        stack: str,
        checkpoint: Optional[tuple[int, int]],
    ) -> str:
        message = f"{type(error).__name__}: {error}"
        with session_scope(self.session_factory) as session:
            job = self._get_job(session, calculation_id)
            if job.status != JOB_RUNNING:
                # Already failed elsewhere (stale recovery); keep that record
                logger.warning(
                    "Calculation %s already %s, not recording: %s",
                    calculation_id, job.status, message,
                )
                return job.status
            self._record_failure(job, message, stack)
            if checkpoint is not None:
                job.checkpoint_season_id, job.checkpoint_week = checkpoint
            if isinstance(error, JobCancelledError):
                job.current_step = "Cancelled"
        return JOB_FAILED
