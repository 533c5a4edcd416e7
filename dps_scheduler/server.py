"""Optional liveness server, enabled with ``WEBSERVER=true``.

It runs inside the engine's event loop (see ``dps_scheduler.main``) so
hosting platforms that expect an open port keep the process alive.
"""

from __future__ import annotations

import logging
import uuid

import uvicorn
from fastapi import FastAPI, Request, Response

from dps_scheduler import __version__
from dps_scheduler.api.routes import router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="DPS Scheduler",
    description="Liveness and run-state endpoints for the appointment bot.",
    version=__version__,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (client-supplied or generated) to every response."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.debug("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint: the bot is alive."""
    return {
        "service": "DPS Scheduler",
        "version": __version__,
        "message": "Bot is alive!",
        "health": "/api/health",
    }


def build_server(port: int, host: str = "0.0.0.0") -> uvicorn.Server:
    """Create a uvicorn server that can be awaited with ``serve()``."""
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    return uvicorn.Server(config)
