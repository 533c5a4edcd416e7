"""Pydantic models for the scheduling API payloads.

The remote API speaks PascalCase JSON.  Fields use snake_case in Python and
carry the wire name as an alias, so ``model_validate`` accepts raw responses
and ``model_dump(by_alias=True)`` reproduces them.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Location(_ApiModel):
    """A DPS office returned by the available-locations endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: int = Field(..., alias="Id")
    name: str = Field(..., alias="Name")
    address: str = Field("", alias="Address")
    distance: float = Field(0.0, alias="Distance")
    # Filled in locally with the query that found the office
    zip_code: str | None = Field(None, alias="ZipCode")
    city_name: str | None = Field(None, alias="CityName")
    type_id: int | None = Field(None, alias="TypeId")

    @property
    def origin(self) -> str:
        return self.zip_code or self.city_name or "?"


class TimeSlot(_ApiModel):
    slot_id: int = Field(..., alias="SlotId")
    start_date_time: datetime = Field(..., alias="StartDateTime")
    duration: int = Field(..., alias="Duration")
    formatted_start_date_time: str = Field("", alias="FormattedStartDateTime")
    raw_start_date_time: str | None = Field(None, alias="RawStartDateTime", exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _keep_wire_timestamp(cls, data):
        # The booking endpoint expects the slot time exactly as it was served
        if isinstance(data, dict) and isinstance(data.get("StartDateTime"), str):
            data = {**data, "RawStartDateTime": data["StartDateTime"]}
        return data

    @property
    def booking_date_time(self) -> str:
        return self.raw_start_date_time or self.start_date_time.isoformat()


class AvailabilityDate(_ApiModel):
    availability_date: datetime = Field(..., alias="AvailabilityDate")
    available_time_slots: list[TimeSlot] = Field(default_factory=list, alias="AvailableTimeSlots")


class ExistingBooking(_ApiModel):
    """One entry of the booking lookup response."""

    confirmation_number: str = Field(..., alias="ConfirmationNumber")
    site_name: str = Field("", alias="SiteName")
    booking_date_time: datetime | None = Field(None, alias="BookingDateTime")
    service_type_id: int | None = Field(None, alias="ServiceTypeId")


class ExistingBookingSnapshot(BaseModel):
    """Taken once at the start of a run; decides whether to cancel first."""

    exists: bool = False
    bookings: list[ExistingBooking] = Field(default_factory=list)

    @property
    def first(self) -> ExistingBooking | None:
        return self.bookings[0] if self.bookings else None


class HoldSlotResult(_ApiModel):
    slot_held_successfully: bool | None = Field(None, alias="SlotHeldSuccessfully")
    error_message: str | None = Field(None, alias="ErrorMessage")


class BookingConfirmation(_ApiModel):
    confirmation_number: str = Field(..., alias="ConfirmationNumber")


class NewBookingResult(_ApiModel):
    booking: BookingConfirmation | None = Field(None, alias="Booking")
