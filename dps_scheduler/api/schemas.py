"""Pydantic schemas for the liveness endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from dps_scheduler import __version__


class HealthResponse(BaseModel):
    """Health check response, including a snapshot of the current run."""

    status: str = "ok"
    service: str = "dps-scheduler"
    version: str = __version__
    run_in_flight: bool = Field(False, description="A run is currently active")
    queue_size: int = Field(0, description="Location checks waiting for dispatch")
    queue_paused: bool = False
    locations: int = Field(0, description="Offices being polled this run")
    hold_acquired: bool = False
    booking_completed: bool = False
