"""Tests for the hold-then-book transaction and its latches."""

from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from dps_scheduler.errors import BookingComplete, DeliberateStop
from dps_scheduler.models import (
    BookingConfirmation,
    ExistingBooking,
    ExistingBookingSnapshot,
    HoldSlotResult,
    Location,
    NewBookingResult,
    TimeSlot,
)
from dps_scheduler.services.booking import BookingTransaction, RunState
from dps_scheduler.services.task_queue import TaskQueue

SLOT = TimeSlot(slot_id=7, start_date_time=datetime(2024, 1, 2, 10), duration=20)
LOCATION = Location(id=42, name="Austin North")
BOOKED = NewBookingResult(booking=BookingConfirmation(confirmation_number="CONF1"))


def _client(*, held: bool = True, booking: NewBookingResult = BOOKED) -> MagicMock:
    client = MagicMock()
    client.hold_slot = AsyncMock(
        return_value=HoldSlotResult(slot_held_successfully=held, error_message=None if held else "taken"),
    )
    client.cancel_booking = AsyncMock()
    client.get_response_id = AsyncMock(return_value=991)
    client.new_booking = AsyncMock(return_value=booking)
    return client


def _existing() -> ExistingBookingSnapshot:
    return ExistingBookingSnapshot(
        exists=True,
        bookings=[ExistingBooking(confirmation_number="OLD1", site_name="Dallas")],
    )


def _transaction(client, settings, *, existing=None, state=None, queue=None):
    queue = queue or TaskQueue()
    queue.pause()
    return BookingTransaction(
        client, settings, queue, state or RunState(), existing or ExistingBookingSnapshot(),
    ), queue


class TestSuccessfulBooking:
    def test_holds_books_and_completes(self, settings, capsys):
        client = _client()
        transaction, queue = _transaction(client, settings)

        with pytest.raises(BookingComplete) as exc_info:
            asyncio.run(transaction.execute(SLOT, LOCATION))

        assert exc_info.value.exit_code == 0
        assert exc_info.value.confirmation_number == "CONF1"
        assert exc_info.value.url == "https://public.txdpsscheduler.com/?b=CONF1"
        assert "CONF1" in capsys.readouterr().out
        client.hold_slot.assert_awaited_once_with(7)
        client.new_booking.assert_awaited_once_with(SLOT, LOCATION, 991)
        assert transaction.state.hold_acquired is True
        assert transaction.state.booking_completed is True
        # Never resumed on success
        assert queue.is_paused

    def test_cancels_existing_booking_first(self, make_settings):
        settings = make_settings(app={"cancel_if_exist": True})
        client = _client()
        transaction, _ = _transaction(client, settings, existing=_existing())

        with pytest.raises(BookingComplete):
            asyncio.run(transaction.execute(SLOT, LOCATION))
        client.cancel_booking.assert_awaited_once_with("OLD1")

    def test_existing_booking_without_permission_stops_before_hold(self, settings):
        client = _client()
        transaction, _ = _transaction(client, settings, existing=_existing())

        with pytest.raises(DeliberateStop):
            asyncio.run(transaction.execute(SLOT, LOCATION))
        client.hold_slot.assert_not_awaited()
        client.new_booking.assert_not_awaited()


class TestRefusals:
    def test_failed_hold_resumes_queue(self, settings):
        client = _client(held=False)
        transaction, queue = _transaction(client, settings)

        asyncio.run(transaction.execute(SLOT, LOCATION))

        assert not queue.is_paused
        assert transaction.state.hold_acquired is False
        client.new_booking.assert_not_awaited()

    def test_refused_booking_resets_hold_only(self, settings):
        client = _client(booking=NewBookingResult(booking=None))
        transaction, queue = _transaction(client, settings)

        asyncio.run(transaction.execute(SLOT, LOCATION))

        assert not queue.is_paused
        assert transaction.state.hold_acquired is False
        assert transaction.state.booking_completed is False

    def test_hold_after_refused_booking_can_proceed(self, make_settings):
        settings = make_settings(app={"cancel_if_exist": True})
        client = _client()
        client.new_booking = AsyncMock(side_effect=[NewBookingResult(booking=None), BOOKED])
        transaction, _ = _transaction(client, settings, existing=_existing())

        asyncio.run(transaction.execute(SLOT, LOCATION))
        with pytest.raises(BookingComplete):
            asyncio.run(transaction.execute(SLOT, LOCATION))

        assert client.hold_slot.await_count == 2
        # The existing appointment is only cancelled once
        client.cancel_booking.assert_awaited_once()


class TestLatches:
    def test_hold_is_noop_once_latched(self, settings):
        client = _client()
        state = RunState(hold_acquired=True)
        transaction, _ = _transaction(client, settings, state=state)

        asyncio.run(transaction.execute(SLOT, LOCATION))
        client.hold_slot.assert_not_awaited()

    def test_booking_is_noop_once_completed(self, settings):
        client = _client()
        state = RunState(booking_completed=True)
        transaction, _ = _transaction(client, settings, state=state)

        asyncio.run(transaction.execute(SLOT, LOCATION))
        client.new_booking.assert_not_awaited()

    def test_concurrent_holds_only_one_reaches_the_api(self, settings):
        client = _client()

        async def slow_hold(slot_id):
            await asyncio.sleep(0)
            return HoldSlotResult(slot_held_successfully=True)

        client.hold_slot = AsyncMock(side_effect=slow_hold)
        state = RunState()
        transaction, _ = _transaction(client, settings, state=state)
        other_slot = SLOT.model_copy(update={"slot_id": 8})

        async def scenario():
            return await asyncio.gather(
                transaction.execute(SLOT, LOCATION),
                transaction.execute(other_slot, Location(id=43, name="Austin South")),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())

        client.hold_slot.assert_awaited_once_with(7)
        client.new_booking.assert_awaited_once()
        assert sum(isinstance(r, BookingComplete) for r in results) == 1
        assert results[1] is None


class TestUnexpectedErrors:
    def test_error_after_hold_releases_latch_and_resumes(self, settings):
        client = _client()
        client.get_response_id = AsyncMock(side_effect=IndexError("list index out of range"))
        transaction, queue = _transaction(client, settings)

        with pytest.raises(IndexError):
            asyncio.run(transaction.execute(SLOT, LOCATION))

        assert not queue.is_paused
        assert transaction.state.hold_acquired is False
        assert transaction.state.booking_completed is False
        client.new_booking.assert_not_awaited()

    def test_error_during_hold_resumes_without_touching_latch(self, settings):
        client = _client()
        client.hold_slot = AsyncMock(side_effect=ValueError("not json"))
        state = RunState()
        transaction, queue = _transaction(client, settings, state=state)

        with pytest.raises(ValueError):
            asyncio.run(transaction.execute(SLOT, LOCATION))

        assert not queue.is_paused
        assert state.hold_acquired is False

