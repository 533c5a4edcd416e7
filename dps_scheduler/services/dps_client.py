"""Async HTTP client for the Texas DPS scheduling API.

Every call is a JSON ``POST``.  The client owns the retry policy:

* ``200`` is returned to the caller unchanged.
* ``401`` refreshes the session token and retries the same call.
* ``403`` means the service rate-limited us: sleep 10 s and retry, with no
  upper bound on how many times.
* Anything else (including transport errors) is retried up to
  ``max_retry`` times, then raises ``FatalError``.

Callers can therefore assume any response they receive has status 200.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from dps_scheduler.config import API_BASE_URL, PUBLIC_SITE_URL, Settings
from dps_scheduler.errors import FatalError
from dps_scheduler.models import (
    AvailabilityDate,
    ExistingBooking,
    HoldSlotResult,
    Location,
    NewBookingResult,
    TimeSlot,
)
from dps_scheduler.services.metrics import metrics

logger = logging.getLogger(__name__)

RATE_LIMIT_BACKOFF_SECONDS = 10

# ── Endpoints ────────────────────────────────────────────────────────
EP_BOOKING = "/api/Booking"
EP_CANCEL_BOOKING = "/api/CancelBooking"
EP_ELIGIBILITY = "/api/Eligibility"
EP_AVAILABLE_LOCATION = "/api/AvailableLocation/"
EP_AVAILABLE_LOCATION_DATES = "/api/AvailableLocationDates"
EP_HOLD_SLOT = "/api/HoldSlot"
EP_NEW_BOOKING = "/api/NewBooking"
EP_AUTH = "/api/Auth"

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.67",
]


@dataclass
class Session:
    """Per-process session state.  Only ``AuthManager`` writes to it."""

    user_agent: str = field(default_factory=lambda: random.choice(USER_AGENTS))
    token: str | None = None
    captcha_token: str | None = None


class DpsClient:
    """Thin wrapper around the scheduling API with retry and re-auth."""

    def __init__(
        self,
        settings: Settings,
        session: Session | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self.session = session or Session()
        self._http = http_client or httpx.AsyncClient(
            base_url=API_BASE_URL,
            timeout=httpx.Timeout(settings.app.headers_timeout_seconds),
            # The scheduler host does not always present a valid chain
            verify=False,
        )
        # Set by AuthManager; awaited on a 401
        self.on_unauthorized: Callable[[], Awaitable[None]] | None = None

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Internal helpers ─────────────────────────────────────────────

    def _headers(self, authenticate: bool) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json;charset=UTF-8",
            "Origin": PUBLIC_SITE_URL,
            "User-Agent": self.session.user_agent,
        }
        if authenticate and self.session.token:
            headers["Authorization"] = self.session.token
        return headers

    def _identity(self) -> dict[str, str]:
        info = self._settings.personal_info
        return {
            "FirstName": info.first_name,
            "LastName": info.last_name,
            "DateOfBirth": info.dob,
        }

    async def call(
        self,
        path: str,
        body: dict[str, Any],
        *,
        method: str = "POST",
        authenticate: bool = True,
    ) -> httpx.Response:
        """Send one logical request and return its 200 response.

        ``authenticate=False`` omits the token and never triggers a refresh;
        the auth endpoint itself uses it so a refresh cannot recurse.
        """
        max_retry = self._settings.app.max_retry
        retry = 0
        while True:
            started = time.monotonic()
            try:
                response = await self._http.request(
                    method, path, headers=self._headers(authenticate), json=body,
                )
            except httpx.TransportError as exc:
                metrics.record_call(path, None, (time.monotonic() - started) * 1000)
                if retry < max_retry:
                    logger.warning(
                        "%s %s failed (%s), retry %d/%d",
                        method, path, type(exc).__name__, retry + 1, max_retry,
                    )
                    metrics.record_retry(path, "transport")
                    retry += 1
                    continue
                raise FatalError(f"{method} {path} failed: {exc}, retrying failed!") from exc

            metrics.record_call(path, response.status_code, (time.monotonic() - started) * 1000)
            if response.status_code == 200:
                return response

            logger.warning("Got %d status code from %s", response.status_code, path)
            reason = "server_error"
            if response.status_code == 401 and authenticate and self.on_unauthorized:
                logger.info("Auth token expired! Trying to get a new token...")
                reason = "auth_expired"
                await self.on_unauthorized()
            elif response.status_code == 403:
                logger.warning(
                    "Got rate limited, sleeping for %ds...", RATE_LIMIT_BACKOFF_SECONDS,
                )
                metrics.record_retry(path, "rate_limited")
                await asyncio.sleep(RATE_LIMIT_BACKOFF_SECONDS)
                retry += 1
                continue

            if retry < max_retry:
                logger.error("%s", response.text)
                metrics.record_retry(path, reason)
                retry += 1
                continue

            logger.error("Got %d status code, retrying failed!", response.status_code)
            raise FatalError(
                f"Got {response.status_code} status code from {path}, retrying failed!"
            )

    # ── Public API methods ───────────────────────────────────────────

    async def authenticate(self, captcha_token: str) -> str | None:
        """Exchange a captcha token for a session token (raw response text)."""
        info = self._settings.personal_info
        body = {
            "UserName": f"{info.first_name}_{info.last_name}_{info.last_four_ssn}",
            "RecaptchaToken": {"Action": "Login", "Token": captcha_token},
        }
        response = await self.call(EP_AUTH, body, authenticate=False)
        return response.text or None

    async def find_existing_bookings(self) -> list[ExistingBooking]:
        """Return existing bookings for this identity and service type.

        The API answers with an empty list when there are none.
        """
        body = {
            **self._identity(),
            "LastFourDigitsSsn": self._settings.personal_info.last_four_ssn,
        }
        response = await self.call(EP_BOOKING, body)
        type_id = self._settings.personal_info.type_id
        return [
            booking
            for booking in (ExistingBooking.model_validate(raw) for raw in response.json() or [])
            if booking.service_type_id == type_id
        ]

    async def cancel_booking(self, confirmation_number: str) -> None:
        body = {
            "ConfirmationNumber": confirmation_number,
            **self._identity(),
            "LastFourDigitsSsn": self._settings.personal_info.last_four_ssn,
        }
        await self.call(EP_CANCEL_BOOKING, body)
        logger.info("Canceled booking %s successfully", confirmation_number)

    async def get_response_id(self) -> int:
        """Fetch the eligibility ``ResponseId`` required by a new booking."""
        body = {
            **self._identity(),
            "LastFourDigitsSsn": self._settings.personal_info.last_four_ssn,
            "CardNumber": "",
        }
        response = await self.call(EP_ELIGIBILITY, body)
        return response.json()[0]["ResponseId"]

    async def available_locations(
        self,
        *,
        zip_code: str = "",
        city_name: str = "",
    ) -> list[Location] | None:
        """Query offices near a zip code or in a city.

        Returns ``None`` when the API answers with a null body.
        """
        body = {
            "CityName": city_name,
            "PreferredDay": 0,
            "TypeId": self._settings.personal_info.type_id,
            "ZipCode": zip_code,
        }
        response = await self.call(EP_AVAILABLE_LOCATION, body)
        data = response.json()
        if data is None:
            return None
        return [Location.model_validate(raw) for raw in data]

    async def available_location_dates(self, location_id: int) -> list[AvailabilityDate]:
        """Fetch the open dates and slots for one office.  Never cached."""
        body = {
            "LocationId": location_id,
            "PreferredDay": 0,
            "SameDay": self._settings.location.same_day,
            "StartDate": None,
            "TypeId": self._settings.personal_info.type_id,
        }
        response = await self.call(EP_AVAILABLE_LOCATION_DATES, body)
        data = response.json() or {}
        return [
            AvailabilityDate.model_validate(raw)
            for raw in data.get("LocationAvailabilityDates") or []
        ]

    async def hold_slot(self, slot_id: int) -> HoldSlotResult:
        info = self._settings.personal_info
        body = {
            "DateOfBirth": info.dob,
            "FirstName": info.first_name,
            "LastName": info.last_name,
            "Last4Ssn": info.last_four_ssn,
            "SlotId": slot_id,
        }
        response = await self.call(EP_HOLD_SLOT, body)
        return HoldSlotResult.model_validate(response.json() or {})

    async def new_booking(
        self,
        slot: TimeSlot,
        location: Location,
        response_id: int,
    ) -> NewBookingResult:
        """Confirm a held slot.  ``Booking`` is null when the service refuses."""
        info = self._settings.personal_info
        body = {
            "AdaRequired": False,
            "BookingDateTime": slot.booking_date_time,
            "BookingDuration": slot.duration,
            "CardNumber": "",
            "CellPhone": info.phone_number or "",
            "DateOfBirth": info.dob,
            "Email": info.email,
            "FirstName": info.first_name,
            "LastName": info.last_name,
            "HomePhone": "",
            "Last4Ssn": info.last_four_ssn,
            "ResponseId": response_id,
            "SendSms": bool(info.phone_number),
            "ServiceTypeId": info.type_id,
            "SiteId": location.id,
            "SpanishLanguage": "N",
        }
        response = await self.call(EP_NEW_BOOKING, body)
        data = response.json() or {}
        result = NewBookingResult.model_validate(data)
        if result.booking is None:
            logger.error("Booking response: %s", data)
        return result
