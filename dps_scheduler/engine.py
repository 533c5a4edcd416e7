"""The appointment acquisition engine.

One **run** is: refresh the session token, snapshot any existing booking,
resolve the offices to watch, then poll them forever.  Each poll cycle
queues one check per office.  The queue serializes the checks so the API
never sees a burst of concurrent requests.  A check that finds a matching slot pauses
the queue and hands the slot to the booking transaction.

A run only ends by returning (nothing to poll) or by raising a
``SchedulerExit`` (booked, or a condition a human has to fix).
"""

from __future__ import annotations

import asyncio
import logging

from dps_scheduler.config import Settings
from dps_scheduler.errors import NotAvailable, SchedulerExit
from dps_scheduler.models import ExistingBookingSnapshot, Location, TimeSlot
from dps_scheduler.services.auth import AuthManager
from dps_scheduler.services.availability import pick_slot
from dps_scheduler.services.booking import BookingTransaction, RunState
from dps_scheduler.services.dps_client import DpsClient
from dps_scheduler.services.locations import LocationResolver
from dps_scheduler.services.task_queue import TaskFactory, TaskQueue

logger = logging.getLogger(__name__)


class SchedulerEngine:
    def __init__(
        self,
        settings: Settings,
        client: DpsClient,
        auth: AuthManager,
        resolver: LocationResolver,
        *,
        queue: TaskQueue | None = None,
    ):
        self._settings = settings
        self._client = client
        self._auth = auth
        self._resolver = resolver
        self.queue = queue or TaskQueue(settings.app.poll_concurrency)
        self.state: RunState | None = None
        self.existing = ExistingBookingSnapshot()
        self.locations: tuple[Location, ...] = ()

    # ── Run ──────────────────────────────────────────────────────────

    async def run(self) -> None:
        self.state = RunState()
        await self._auth.refresh()
        self.existing = await self.check_existing_booking()

        locations = await self._resolver.select_for_run()
        if not locations:
            suffix = ", exiting run..." if self.queue.size == 0 else ""
            logger.info("No locations found%s", suffix)
            return

        self.locations = tuple(locations)
        transaction = BookingTransaction(
            self._client, self._settings, self.queue, self.state, self.existing,
        )
        await self.poll_forever(self.locations, transaction)

    async def check_existing_booking(self) -> ExistingBookingSnapshot:
        bookings = await self._client.find_existing_bookings()
        snapshot = ExistingBookingSnapshot(exists=bool(bookings), bookings=bookings)
        if snapshot.first is not None:
            booking = snapshot.first
            when = (
                booking.booking_date_time.strftime("%m/%d/%Y %I:%M %p")
                if booking.booking_date_time
                else "unknown time"
            )
            logger.warning("You have an existing booking at %s %s", booking.site_name, when)
            logger.warning(
                "The bot will continue to run, but will cancel existing booking if it found a new one"
            )
        return snapshot

    # ── Polling ──────────────────────────────────────────────────────

    def _describe_window(self) -> str:
        prefs = self._settings.location
        if prefs.same_day:
            return "the same day"
        window = prefs.days_around
        return f"around {window.start}-{window.end} days from {window.start_date.isoformat()}"

    async def check_location(
        self,
        location: Location,
        transaction: BookingTransaction,
    ) -> TimeSlot:
        """Poll one office and book its best slot if there is one.

        Raises:
            NotAvailable: nothing matched this time.
        """
        await asyncio.sleep(self._settings.app.location_stagger_seconds)
        dates = await self._client.available_location_dates(location.id)
        try:
            slot = pick_slot(dates, self._settings.location)
        except NotAvailable:
            logger.info("%s is not Available in %s!", location.name, self._describe_window())
            raise

        logger.info("%s is Available on %s", location.name, slot.formatted_start_date_time)
        if not self.queue.is_paused:
            self.queue.pause()
        await transaction.execute(slot, location)
        return slot

    def _location_task(self, location: Location, transaction: BookingTransaction) -> TaskFactory:
        async def _task() -> TimeSlot:
            try:
                return await self.check_location(location, transaction)
            except SchedulerExit:
                # Let the batch settle so the exit reaches the run
                self.queue.clear()
                raise

        return _task

    async def poll_forever(
        self,
        locations: tuple[Location, ...] | list[Location],
        transaction: BookingTransaction,
    ) -> None:
        logger.info("Checking Available Location Dates....")
        while True:
            logger.info("-" * 80)
            results = await self.queue.add_all(
                self._location_task(location, transaction) for location in locations
            )
            for location, result in zip(locations, results):
                if isinstance(result, SchedulerExit):
                    raise result
                if isinstance(result, Exception) and not isinstance(result, NotAvailable):
                    logger.error("Checking %s failed: %r", location.name, result)
            await asyncio.sleep(self._settings.app.interval_seconds)
