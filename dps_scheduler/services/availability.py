"""Pick the slot to book from a location's raw availability."""

from __future__ import annotations

from datetime import date, timedelta

from dps_scheduler.config import LocationPreferences
from dps_scheduler.errors import NotAvailable
from dps_scheduler.models import AvailabilityDate, TimeSlot


def _sunday_based_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday, the numbering used by ``preferred_days``."""
    return (day.weekday() + 1) % 7


def in_date_window(day: date, prefs: LocationPreferences) -> bool:
    window = prefs.days_around
    first = window.start_date + timedelta(days=window.start)
    last = window.start_date + timedelta(days=window.end)
    return first <= day <= last


def in_hour_window(slot: TimeSlot, prefs: LocationPreferences) -> bool:
    hour = slot.start_date_time.hour
    return prefs.times_around.start <= hour < prefs.times_around.end


def filter_dates(
    dates: list[AvailabilityDate],
    prefs: LocationPreferences,
) -> list[AvailabilityDate]:
    """Apply the date, weekday and hour filters, keeping server order.

    Dates left without any slot are dropped.
    """
    kept: list[AvailabilityDate] = []
    for entry in dates:
        day = entry.availability_date.date()
        if not prefs.same_day:
            if not in_date_window(day, prefs):
                continue
            if prefs.preferred_days and _sunday_based_weekday(day) not in prefs.preferred_days:
                continue
        slots = [slot for slot in entry.available_time_slots if in_hour_window(slot, prefs)]
        if slots:
            kept.append(entry.model_copy(update={"available_time_slots": slots}))
    return kept


def pick_slot(dates: list[AvailabilityDate], prefs: LocationPreferences) -> TimeSlot:
    """Return the first slot of the first date that survives filtering.

    Raises:
        NotAvailable: nothing matched; the poll cycle moves on.
    """
    kept = filter_dates(dates, prefs)
    if not kept:
        raise NotAvailable("no slot matches the configured preferences")
    return kept[0].available_time_slots[0]
