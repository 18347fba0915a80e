"""
League Rankings - cross-season player skill ratings for a recreational league.

Main components:
- ratings: TrueSkill rating engine (ledger, round processor, decay, snapshots, publishing)
- jobs: Calculation job lifecycle, progress tracking and single-flight locking
- db: SQLAlchemy models and session management
- web: FastAPI JSON API for triggering rebuilds and reading rankings
"""

__version__ = "1.0.0"
