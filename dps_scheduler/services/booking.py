"""Hold-then-book transaction.

A run may see several offices report an opening in the same cycle.  Two
latches on ``RunState`` make sure at most one hold and at most one booking
happen per run:

* ``hold_acquired`` flips to true after a successful hold.  It is the only
  latch that can go back to false, when the booking that followed the hold
  is refused, so another office's slot can still be held.
* ``booking_completed`` flips to true once and never resets.

Each check-and-set runs under an ``asyncio.Lock`` so the guarantee holds
even when the poll queue runs more than one task at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from dps_scheduler.config import PUBLIC_SITE_URL, Settings
from dps_scheduler.errors import BookingComplete, DeliberateStop, SchedulerExit
from dps_scheduler.models import ExistingBookingSnapshot, Location, TimeSlot
from dps_scheduler.services.dps_client import DpsClient
from dps_scheduler.services.metrics import metrics
from dps_scheduler.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    """Per-run latches.  A new run always starts with a fresh instance."""

    hold_acquired: bool = False
    booking_completed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


def confirmation_url(confirmation_number: str) -> str:
    return f"{PUBLIC_SITE_URL}/?b={confirmation_number}"


class BookingTransaction:
    def __init__(
        self,
        client: DpsClient,
        settings: Settings,
        queue: TaskQueue,
        state: RunState,
        existing: ExistingBookingSnapshot,
    ):
        self._client = client
        self._settings = settings
        self._queue = queue
        self.state = state
        self._existing = existing

    def _resume_polling(self) -> None:
        if self._queue.is_paused:
            self._queue.start()

    async def execute(self, slot: TimeSlot, location: Location) -> None:
        """Hold ``slot`` and book it.

        Returns normally when the hold or booking is refused (polling has
        been resumed) or when another task already owns the transaction.

        Raises:
            DeliberateStop: an existing booking must be cancelled first but
                ``CANCEL_IF_EXIST`` is off.
            BookingComplete: the appointment is booked.
            Exception: any other failure, re-raised after the hold latch is
                released and polling resumed.
        """
        if self._existing.exists and not self._settings.app.cancel_if_exist:
            logger.warning("cancelIfExist is disabled! Please cancel existing appointment manually!")
            raise DeliberateStop("An appointment already exists and CANCEL_IF_EXIST is disabled")

        held = False
        try:
            held = await self._hold(slot)
            if held:
                await self._book(slot, location)
        except SchedulerExit:
            raise
        except Exception:
            logger.exception("Booking slot %s at %s failed, resuming polling", slot.slot_id, location.name)
            metrics.record_booking_event("transaction_error")
            async with self.state.lock:
                if held and not self.state.booking_completed:
                    self.state.hold_acquired = False
                self._resume_polling()
            raise

    async def _hold(self, slot: TimeSlot) -> bool:
        async with self.state.lock:
            if self.state.hold_acquired:
                logger.debug("Slot %s skipped, a hold is already in place", slot.slot_id)
                return False

            result = await self._client.hold_slot(slot.slot_id)
            if result.slot_held_successfully is not True:
                logger.error("Failed to hold slot: %s", result.error_message)
                metrics.record_booking_event("hold_failed")
                self._resume_polling()
                return False

            self.state.hold_acquired = True
        logger.info("Slot hold successfully")
        metrics.record_booking_event("hold_acquired")
        return True

    async def _book(self, slot: TimeSlot, location: Location) -> None:
        async with self.state.lock:
            if self.state.booking_completed:
                return

            logger.info("Booking slot....")
            existing = self._existing.first
            if self._existing.exists and existing is not None:
                logger.info("Canceling existing booking %s", existing.confirmation_number)
                await self._client.cancel_booking(existing.confirmation_number)
                # Already gone; a retry after a refused booking must not cancel again
                self._existing = ExistingBookingSnapshot()

            response_id = await self._client.get_response_id()
            result = await self._client.new_booking(slot, location, response_id)
            if result.booking is None:
                logger.error("Failed to book slot")
                metrics.record_booking_event("booking_failed")
                self.state.hold_acquired = False
                self._resume_polling()
                return

            self.state.booking_completed = True

        number = result.booking.confirmation_number
        url = confirmation_url(number)
        metrics.record_booking_event("booked")
        logger.info("Slot booked successfully. Confirmation Number: %s", number)
        logger.info("Visit this link to print your booking:")
        logger.info("%s", url)
        print(f"\nBooked! Confirmation number {number}\n{url}\n")
        raise BookingComplete(number, url)
