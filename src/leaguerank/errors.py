"""
Error taxonomy for the rating engine.

Every failure that ends a calculation job is one of these, so the job record
can say what kind of problem the operator is looking at:

- DataError: malformed or missing game/timestamp data (raised before any write)
- UnresolvedReferenceError: a game points at a team or player we cannot resolve
- ConcurrencyError: a rebuild was triggered while another one is in flight
- TransientError: storage reads kept failing after the bounded retries
"""

from __future__ import annotations


class RatingEngineError(Exception):
    """Base class for all rating engine failures."""


class DataError(RatingEngineError):
    """Raised when game data is malformed or incomplete."""


class UnresolvedReferenceError(RatingEngineError):
    """Raised when a game references a team or player that does not exist."""


class ConcurrencyError(RatingEngineError):
    """Raised when a rebuild is triggered while another job is in flight."""

    def __init__(self, message: str, calculation_id: str | None = None):
        super().__init__(message)
        self.calculation_id = calculation_id


class TransientError(RatingEngineError):
    """Raised when a storage read still fails after all retry attempts."""


class JobCancelledError(RatingEngineError):
    """Raised at a round boundary when the operator asked the job to stop."""


class InvalidTransitionError(RatingEngineError):
    """Raised when a job is moved to a status its current status cannot reach."""
