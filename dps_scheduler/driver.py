"""Periodic trigger for engine runs.

Every ``tick_seconds`` the driver tries to start a run.  It refuses while a
run is still in flight or the poll queue still holds undispatched work, so
runs never overlap.  A stuck run is never cancelled.
"""

from __future__ import annotations

import asyncio
import logging

from dps_scheduler.engine import SchedulerEngine
from dps_scheduler.errors import SchedulerExit

logger = logging.getLogger(__name__)


class JobDriver:
    def __init__(self, engine: SchedulerEngine, tick_seconds: float = 60.0):
        self.engine = engine
        self._tick_seconds = tick_seconds
        self._run_in_flight = False
        self._current: asyncio.Task | None = None
        self._stopped: asyncio.Future[SchedulerExit] | None = None

    @property
    def run_in_flight(self) -> bool:
        return self._run_in_flight

    def try_start_run(self) -> bool:
        """Start a run unless one is already going.  Returns whether it started."""
        logger.info("Checking if the job needs to run...")
        if self._run_in_flight or self.engine.queue.size != 0:
            logger.info("Job is already running or queue is not empty. Skipping this schedule.")
            return False

        logger.info("Running job...")
        self._run_in_flight = True
        self._current = asyncio.ensure_future(self._guarded_run())
        return True

    async def _guarded_run(self) -> None:
        try:
            await self.engine.run()
        except SchedulerExit as exc:
            self._stop(exc)
        except Exception:
            logger.exception("An error occurred during the job")
        finally:
            self._run_in_flight = False

    def _stop(self, exc: SchedulerExit) -> None:
        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_result(exc)

    async def serve(self) -> SchedulerExit:
        """Tick until a run ends the process; return what ended it."""
        self._stopped = asyncio.get_running_loop().create_future()
        while not self._stopped.done():
            self.try_start_run()
            await asyncio.wait({self._stopped}, timeout=self._tick_seconds)
        return self._stopped.result()

    async def run_once(self) -> SchedulerExit | None:
        """Run the engine a single time without the periodic trigger."""
        try:
            await self.engine.run()
        except SchedulerExit as exc:
            return exc
        return None
