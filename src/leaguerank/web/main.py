"""
JSON API for the rankings engine.

Command surface (asynchronous, poll-based):
    POST /api/rankings/rebuild                          -> 202 accepted job
    GET  /api/rankings/calculations/{calculation_id}    -> job record
    POST /api/rankings/calculations/{calculation_id}/cancel
    GET  /api/rankings/calculations                     -> recent jobs

Read surface:
    GET  /api/rankings                                  -> current rankings
    GET  /api/rankings/history                          -> weekly snapshots

Run with:
    uvicorn leaguerank.web.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from leaguerank.config import settings
from leaguerank.db.session import get_db
from leaguerank.errors import ConcurrencyError, InvalidTransitionError
from leaguerank.jobs.controller import CalculationJobController
from leaguerank.ratings.publisher import current_rankings
from leaguerank.ratings.snapshots import ranking_history

logger = logging.getLogger(__name__)

_controller: Optional[CalculationJobController] = None


def get_controller() -> CalculationJobController:
    """Process-wide job controller (overridden in tests)."""
    global _controller
    if _controller is None:
        _controller = CalculationJobController()
    return _controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    # Jobs left in flight by the previous process can never finish
    recovered = get_controller().recover_stale_jobs(on_startup=True)
    if recovered:
        logger.warning("Recovered %d stale calculation jobs on startup", recovered)
    yield


app = FastAPI(title="League Rankings", lifespan=lifespan)


class RebuildRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    triggered_by: Optional[str] = Field(default=None, alias="triggeredBy", max_length=120)


def _run_job(controller: CalculationJobController, calculation_id: str) -> None:
    """Background task body; the job row records any failure."""
    try:
        status = controller.run_job(calculation_id)
    except InvalidTransitionError as e:
        logger.warning("Calculation %s not run: %s", calculation_id, e)
        return
    logger.info("Calculation %s finished with status %s", calculation_id, status)


@app.post("/api/rankings/rebuild", status_code=202)
async def api_trigger_rebuild(
    background_tasks: BackgroundTasks,
    body: Optional[RebuildRequest] = None,
    controller: CalculationJobController = Depends(get_controller),
):
    """Accept a full rebuild; 409 if one is already pending or running."""
    triggered_by = body.triggered_by if body else None
    try:
        accepted = controller.trigger_full_rebuild(triggered_by=triggered_by)
    except ConcurrencyError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "calculationId": e.calculation_id},
        )

    background_tasks.add_task(_run_job, controller, accepted["calculationId"])
    return accepted


@app.get("/api/rankings/calculations")
async def api_recent_calculations(
    limit: int = Query(10, ge=1, le=100),
    controller: CalculationJobController = Depends(get_controller),
):
    return {"calculations": controller.recent_calculations(limit=limit)}


@app.get("/api/rankings/calculations/{calculation_id}")
async def api_calculation_status(
    calculation_id: str,
    controller: CalculationJobController = Depends(get_controller),
):
    job = controller.get_calculation_status(calculation_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Calculation not found")
    return job


@app.post("/api/rankings/calculations/{calculation_id}/cancel")
async def api_cancel_calculation(
    calculation_id: str,
    controller: CalculationJobController = Depends(get_controller),
):
    job = controller.cancel(calculation_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Calculation not found")
    return job


@app.get("/api/rankings")
async def api_rankings(
    db: Session = Depends(get_db),
    top: Optional[int] = Query(None, ge=1, le=1000),
    active_only: bool = Query(True),
):
    """Published rankings in rank order."""
    players = current_rankings(db, top=top, active_only=active_only)
    return {"players": players, "count": len(players)}


@app.get("/api/rankings/history")
async def api_rankings_history(
    db: Session = Depends(get_db),
    season_id: Optional[int] = Query(None),
    recent_weeks: Optional[int] = Query(None, ge=1, le=520),
):
    """Weekly snapshots of the published calculation, oldest first."""
    snapshots = ranking_history(db, season_id=season_id, recent_weeks=recent_weeks)
    return {"snapshots": snapshots, "count": len(snapshots)}
