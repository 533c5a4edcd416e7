"""CLI entry point for the DPS scheduler.

Usage:
    dps-scheduler            # tick every JOB_TICK_SECONDS until booked
    dps-scheduler --once     # a single run, no periodic trigger
    dps-scheduler --debug    # also show HTTP client logs
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from dps_scheduler import __version__
from dps_scheduler.config import Settings, load_settings
from dps_scheduler.driver import JobDriver
from dps_scheduler.engine import SchedulerEngine
from dps_scheduler.errors import SchedulerExit
from dps_scheduler.services.auth import AuthManager
from dps_scheduler.services.dps_client import DpsClient
from dps_scheduler.services.locations import LocationResolver

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """INFO for the bot, DEBUG everywhere when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("dps_scheduler").setLevel(logging.DEBUG if debug else logging.INFO)


def build_driver(settings: Settings) -> tuple[JobDriver, DpsClient]:
    """Wire the engine's components together."""
    client = DpsClient(settings)
    auth = AuthManager(client, settings)
    resolver = LocationResolver(client, settings)
    engine = SchedulerEngine(settings, client, auth, resolver)
    return JobDriver(engine, settings.app.job_tick_seconds), client


async def _run(settings: Settings, *, once: bool) -> SchedulerExit | None:
    driver, client = build_driver(settings)

    server = server_task = None
    if settings.app.webserver:
        from dps_scheduler.server import app, build_server  # noqa: PLC0415

        app.state.driver = driver
        server = build_server(settings.app.port)
        server_task = asyncio.create_task(server.serve())
        logger.info("Liveness server listening on port %d", settings.app.port)

    try:
        if once:
            return await driver.run_once()
        return await driver.serve()
    finally:
        if server is not None and server_task is not None:
            server.should_exit = True
            await server_task
        await client.aclose()


def main():
    """Run the scheduler until it books, stops, or fails."""
    parser = argparse.ArgumentParser(description="Texas DPS appointment scheduler")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--once", action="store_true",
        help="Perform a single run instead of ticking every JOB_TICK_SECONDS",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)
    logger.info("DPS Scheduler v%s is starting...", __version__)

    try:
        settings = load_settings()
    except (OSError, ValidationError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    try:
        outcome = asyncio.run(_run(settings, once=args.once))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(130)

    if outcome is None:
        sys.exit(0)
    if outcome.exit_code:
        logger.error("%s", outcome)
    else:
        logger.info("%s", outcome)
    sys.exit(outcome.exit_code)


if __name__ == "__main__":
    main()
