"""Resolve and select the DPS offices a run will poll.

Two selection modes:

* **manual** (``PICK_LOCATION=true``): the operator picks offices from a
  numbered list once; the choice is cached in ``<cache_dir>/location.json``
  and reused verbatim on later runs.  Delete the file to choose again.
* **automatic**: every office closer than ``MILES`` is polled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from dps_scheduler.config import Settings
from dps_scheduler.errors import DeliberateStop, FatalError
from dps_scheduler.models import Location
from dps_scheduler.services.dps_client import DpsClient

logger = logging.getLogger(__name__)

EMPTY_RESULT_PAUSE_SECONDS = 2
CACHE_FILE_NAME = "location.json"

LocationPrompt = Callable[[list[Location]], Awaitable[list[Location]]]


# ── Interactive selection ────────────────────────────────────────────


def _describe(location: Location) -> str:
    return (
        f"{location.name} - {location.address} - "
        f"{location.distance} miles away from {location.origin}"
    )


def _ask_for_locations(locations: list[Location]) -> list[Location]:
    print("\nChoose DPS locations, you can choose multiple locations!")
    for index, location in enumerate(locations, start=1):
        print(f"  {index:>2}. {_describe(location)}")
    raw = input("Numbers separated by commas: ").strip()

    chosen: list[Location] = []
    for token in raw.replace(" ", "").split(","):
        if not token:
            continue
        if not token.isdigit() or not 1 <= int(token) <= len(locations):
            logger.warning("Ignoring invalid choice %r", token)
            continue
        location = locations[int(token) - 1]
        if location not in chosen:
            chosen.append(location)
    return chosen


async def prompt_for_locations(locations: list[Location]) -> list[Location]:
    """Default ``LocationPrompt``: numbered list on stdin."""
    return await asyncio.to_thread(_ask_for_locations, locations)


# ── Cache file ───────────────────────────────────────────────────────


class LocationCache:
    """JSON file holding the manually chosen offices."""

    def __init__(self, cache_dir: str | Path):
        self.path = Path(cache_dir) / CACHE_FILE_NAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[Location]:
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        return [Location.model_validate(item) for item in raw]

    def save(self, locations: list[Location]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [location.model_dump(by_alias=True) for location in locations]
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


# ── Resolver ─────────────────────────────────────────────────────────


def dedupe_and_sort(locations: list[Location]) -> list[Location]:
    """Drop repeated ids (first seen wins), then sort by distance."""
    seen: set[int] = set()
    unique: list[Location] = []
    for location in locations:
        if location.id in seen:
            continue
        seen.add(location.id)
        unique.append(location)
    return sorted(unique, key=lambda location: location.distance)


class LocationResolver:
    def __init__(
        self,
        client: DpsClient,
        settings: Settings,
        *,
        prompt: LocationPrompt | None = None,
        cache: LocationCache | None = None,
    ):
        self._client = client
        self._settings = settings
        self._prompt = prompt or prompt_for_locations
        self._cache = cache or LocationCache(settings.app.cache_dir)

    async def _query(self, *, zip_code: str = "", city_name: str = "") -> list[Location]:
        label = f"city: {city_name}" if city_name else f"zipcode: {zip_code}"
        response = await self._client.available_locations(zip_code=zip_code, city_name=city_name)
        if not response:
            logger.warning("No location found for %s", label)
            await asyncio.sleep(EMPTY_RESULT_PAUSE_SECONDS)
            return []

        logger.info("Found %d locations for %s", len(response), label)
        tag = {"city_name": city_name} if city_name else {"zip_code": zip_code}
        return [location.model_copy(update=tag) for location in response]

    async def resolve_all(self) -> list[Location]:
        """Query every configured zip code (or the city) and merge the results."""
        prefs = self._settings.location
        found: list[Location] = []
        if prefs.city_name:
            found.extend(await self._query(city_name=prefs.city_name))
        else:
            for zip_code in prefs.zip_codes:
                found.extend(await self._query(zip_code=zip_code))
        return dedupe_and_sort(found)

    async def select_for_run(self) -> list[Location]:
        """Return the offices to poll this run.

        An empty list means the API returned no office at all; the run
        should end quietly and be retried later.
        """
        if self._settings.location.pick_location:
            return await self._select_manually()
        return await self._select_automatically()

    async def _select_manually(self) -> list[Location]:
        if self._cache.exists():
            logger.info("Found cached location selection, using cached location selection")
            logger.info("If you want to change location selection, please delete %s", self._cache.path)
            return self._cache.load()

        locations = await self.resolve_all()
        chosen = await self._prompt(locations)
        if not chosen:
            logger.error("You must choose at least one location!")
            raise FatalError("You must choose at least one location!")

        self._cache.save(chosen)
        return chosen

    async def _select_automatically(self) -> list[Location]:
        locations = await self.resolve_all()
        miles = self._settings.location.miles
        in_range = [location for location in locations if location.distance < miles]
        if in_range:
            logger.info("Found %d available locations that match your criteria", len(in_range))
            logger.info("%s", ", ".join(location.name for location in in_range))
            return in_range

        if not locations:
            logger.error("No available location found!")
            return []

        nearest = locations[0].distance
        message = (
            f"No available location found! The nearest location is {nearest} miles away. "
            "Please update your configuration and try again."
        )
        logger.error("%s", message)
        raise DeliberateStop(message)
