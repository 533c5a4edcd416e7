"""FastAPI route definitions for the liveness API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from dps_scheduler.api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_driver(request: Request):
    """Retrieve the job driver attached to app state by the CLI."""
    driver = getattr(request.app.state, "driver", None)
    if driver is None:
        raise HTTPException(
            status_code=503,
            detail="The scheduler is still starting up. Please try again in a moment.",
        )
    return driver


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Report liveness plus the state of the current run."""
    driver = _get_driver(request)
    engine = driver.engine
    state = engine.state
    return HealthResponse(
        run_in_flight=driver.run_in_flight,
        queue_size=engine.queue.size,
        queue_paused=engine.queue.is_paused,
        locations=len(engine.locations),
        hold_acquired=bool(state and state.hold_acquired),
        booking_completed=bool(state and state.booking_completed),
    )
