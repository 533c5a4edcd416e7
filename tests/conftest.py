"""Shared test fixtures for the DPS scheduler test suite."""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import MagicMock

import pytest

from dps_scheduler.config import Settings


def pytest_configure(config):
    """Seed the identity variables before any test module is imported."""
    os.environ.setdefault("FIRST_NAME", "Jane")
    os.environ.setdefault("LAST_NAME", "Doe")
    os.environ.setdefault("DOB", "01/31/1990")
    os.environ.setdefault("LAST_FOUR_SSN", "1234")
    os.environ.setdefault("EMAIL", "jane@example.com")
    os.environ.setdefault("ZIP_CODES", "78701")


@pytest.fixture
def make_settings(tmp_path):
    """Factory fixture building ``Settings`` with test-friendly defaults.

    Sleeps are zeroed and the cache lives under ``tmp_path``.
    """

    def _make(*, location: dict | None = None, app: dict | None = None, personal: dict | None = None):
        data = {
            "personal_info": {
                "first_name": "Jane",
                "last_name": "Doe",
                "dob": "01/31/1990",
                "last_four_ssn": "1234",
                "email": "jane@example.com",
                **(personal or {}),
            },
            "location": {
                "zip_codes": ["78701"],
                "miles": 20,
                "days_around": {"start_date": date(2024, 1, 1), "start": 0, "end": 30},
                "times_around": {"start": 9, "end": 17},
                **(location or {}),
            },
            "app": {
                "max_retry": 2,
                "interval_seconds": 0,
                "location_stagger_seconds": 0,
                "cache_dir": str(tmp_path / "cache"),
                **(app or {}),
            },
        }
        return Settings.model_validate(data)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def mock_api_response():
    """Factory fixture for mock ``httpx.Response`` objects."""

    def _make(data=None, status_code: int = 200, text: str | None = None):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = text if text is not None else str(data)
        return mock

    return _make
