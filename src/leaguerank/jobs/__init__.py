"""Calculation job lifecycle: trigger, progress, cancellation and recovery."""

from leaguerank.jobs.controller import CalculationJobController, job_to_dict
from leaguerank.jobs.locks import advisory_lock_key, database_trigger_lock
from leaguerank.jobs.progress import JobProgressTracker, percent_complete

__all__ = [
    "CalculationJobController",
    "job_to_dict",
    "advisory_lock_key",
    "database_trigger_lock",
    "JobProgressTracker",
    "percent_complete",
]
