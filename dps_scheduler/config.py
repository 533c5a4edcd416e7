"""Centralized configuration for the DPS appointment scheduler.

Secret resolution order (per identity variable):
  1. Environment variable / ``.env`` file  (local runs)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/dps-scheduler/<VARIABLE_NAME>``.
Everything else is plain environment configuration with defaults.
"""

from __future__ import annotations

import logging
import os
from datetime import date

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

load_dotenv()

logger = logging.getLogger(__name__)

# ── Remote service ───────────────────────────────────────────────────
API_BASE_URL: str = "https://apptapi.txdpsscheduler.com"
PUBLIC_SITE_URL: str = "https://public.txdpsscheduler.com"
DEFAULT_TYPE_ID = 71


# ── Secret resolution ────────────────────────────────────────────────

def _on_aws() -> bool:
    return bool(os.getenv("AWS_EXECUTION_ENV"))


def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that the
    environment fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import, only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/dps-scheduler/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value.strip()

    if _on_aws():
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env or SSM Parameter Store /dps-scheduler/{name} (AWS)."
    )


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


# ── Models ───────────────────────────────────────────────────────────


class PersonalInfo(BaseModel):
    """Identity sent to the scheduling API with every booking call."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    dob: str = Field(..., description="Date of birth as MM/DD/YYYY")
    last_four_ssn: str = Field(..., pattern=r"^\d{4}$")
    email: str = Field(..., min_length=3)
    phone_number: str | None = None
    type_id: int = DEFAULT_TYPE_ID


class DaysAround(BaseModel):
    """Inclusive day offsets from ``start_date`` that a slot must fall in."""

    start_date: date = Field(default_factory=date.today)
    start: int = 0
    end: int = 30

    @model_validator(mode="after")
    def _check_order(self) -> DaysAround:
        if self.end < self.start:
            raise ValueError("days_around.end must not be before days_around.start")
        return self


class TimesAround(BaseModel):
    """Hour-of-day window: ``start <= hour < end``."""

    start: int = Field(7, ge=0, le=24)
    end: int = Field(17, ge=0, le=24)

    @model_validator(mode="after")
    def _check_order(self) -> TimesAround:
        if self.end <= self.start:
            raise ValueError("times_around.end must be after times_around.start")
        return self


class LocationPreferences(BaseModel):
    zip_codes: list[str] = Field(default_factory=list)
    city_name: str | None = None
    miles: float = 15
    pick_location: bool = False
    same_day: bool = False
    days_around: DaysAround = Field(default_factory=DaysAround)
    times_around: TimesAround = Field(default_factory=TimesAround)
    # 0 = Sunday ... 6 = Saturday; empty means any day
    preferred_days: list[int] = Field(default_factory=list)

    @field_validator("preferred_days")
    @classmethod
    def _check_days(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"preferred day {day} is not in 0..6")
        return value

    @model_validator(mode="after")
    def _check_source(self) -> LocationPreferences:
        if not self.city_name and not self.zip_codes:
            raise ValueError("Configure at least one zip code or a city name")
        return self


class AppSettings(BaseModel):
    max_retry: int = Field(3, ge=0)
    interval_seconds: float = Field(10.0, ge=0)
    headers_timeout_seconds: float = Field(20.0, gt=0)
    cancel_if_exist: bool = False
    captcha_token: str | None = None
    webserver: bool = False
    port: int = 3000
    job_tick_seconds: float = Field(60.0, gt=0)
    cache_dir: str = "cache"
    location_stagger_seconds: float = Field(5.0, ge=0)
    poll_concurrency: int = Field(1, ge=1)


class Settings(BaseModel):
    personal_info: PersonalInfo
    location: LocationPreferences
    app: AppSettings = Field(default_factory=AppSettings)


# ── Loader ───────────────────────────────────────────────────────────


def load_settings() -> Settings:
    """Build ``Settings`` from the environment.

    Raises ``OSError`` for a missing identity field and
    ``pydantic.ValidationError`` for malformed values.
    """
    personal = PersonalInfo(
        first_name=_require_env("FIRST_NAME"),
        last_name=_require_env("LAST_NAME"),
        dob=_require_env("DOB"),
        last_four_ssn=_require_env("LAST_FOUR_SSN"),
        email=_require_env("EMAIL"),
        phone_number=os.getenv("PHONE_NUMBER") or None,
        type_id=int(os.getenv("TYPE_ID", str(DEFAULT_TYPE_ID))),
    )

    days_around: dict = {
        "start": int(os.getenv("DAYS_AROUND_START", "0")),
        "end": int(os.getenv("DAYS_AROUND_END", "30")),
    }
    if os.getenv("DAYS_AROUND_START_DATE"):
        days_around["start_date"] = os.getenv("DAYS_AROUND_START_DATE")

    location = LocationPreferences(
        zip_codes=_env_list("ZIP_CODES"),
        city_name=os.getenv("CITY_NAME") or None,
        miles=float(os.getenv("MILES", "15")),
        pick_location=_env_bool("PICK_LOCATION"),
        same_day=_env_bool("SAME_DAY"),
        days_around=days_around,
        times_around={
            "start": int(os.getenv("TIMES_AROUND_START", "7")),
            "end": int(os.getenv("TIMES_AROUND_END", "17")),
        },
        preferred_days=[int(day) for day in _env_list("PREFERRED_DAYS")],
    )

    app = AppSettings(
        max_retry=int(os.getenv("MAX_RETRY", "3")),
        interval_seconds=float(os.getenv("INTERVAL_SECONDS", "10")),
        headers_timeout_seconds=float(os.getenv("HEADERS_TIMEOUT_SECONDS", "20")),
        cancel_if_exist=_env_bool("CANCEL_IF_EXIST"),
        captcha_token=os.getenv("CAPTCHA_TOKEN") or None,
        webserver=_env_bool("WEBSERVER"),
        port=int(os.getenv("PORT", "3000")),
        job_tick_seconds=float(os.getenv("JOB_TICK_SECONDS", "60")),
        cache_dir=os.getenv("CACHE_DIR", "cache"),
        location_stagger_seconds=float(os.getenv("LOCATION_STAGGER_SECONDS", "5")),
        poll_concurrency=int(os.getenv("POLL_CONCURRENCY", "1")),
    )

    return Settings(personal_info=personal, location=location, app=app)
