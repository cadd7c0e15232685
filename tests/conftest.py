"""Shared test fixtures for ShiftCal tests.

This module provides common fixtures used across all test modules:
- Log file and settings file isolation under tmp_path
- A standard three-shift batch
- A fake native calendar backend that records writes
"""

import itertools

import pytest

from shiftcal.calendar_connector import CalendarBackend, CalendarInfo
from shiftcal.logging_helper import Log
from shiftcal.shift_models import ShiftRecord

# ─────────────────────────────────────────────────────────────────────────────
# Environment Isolation
# ─────────────────────────────────────────────────────────────────────────────

_ENV_VARS = (
    "SHIFTCAL_PROVIDER",
    "SHIFTCAL_TIMEZONE",
    "SHIFTCAL_USE_STUB",
    "GEMINI_API_KEY",
    "EXPO_PUBLIC_GEMINI_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Send logs to tmp_path and point settings at a file that does not exist."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SHIFTCAL_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SHIFTCAL_SETTINGS", str(tmp_path / "settings.json"))
    Log.close()

    yield tmp_path

    Log.close()


# ─────────────────────────────────────────────────────────────────────────────
# Shift Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_records():
    """Three shifts as the sanitizer would produce them."""
    return [
        ShiftRecord(id=0, date="2024-02-10", start_time="09:00", end_time="17:30", title="Shift A"),
        ShiftRecord(id=1, date="2024-02-11", start_time="13:00", end_time="22:00", title="Shift B"),
        ShiftRecord(id=2, date="2024-02-12", start_time="22:00", end_time="06:00", title="Night"),
    ]


@pytest.fixture
def shift_json():
    """Bare JSON body of a two-shift model response."""
    return (
        '{"shifts": ['
        '{"date": "2024-02-10", "startTime": "09:00", "endTime": "17:30", "title": "Shift A"}, '
        '{"date": "2024-02-11", "startTime": "13:00", "endTime": "22:00", "title": ""}'
        ']}'
    )


# ─────────────────────────────────────────────────────────────────────────────
# Calendar Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeCalendarBackend(CalendarBackend):
    """In-memory calendar store; fails for titles listed in fail_titles."""

    def __init__(self, calendars=None, fail_titles=()):
        self.calendars = list(calendars) if calendars is not None else [
            CalendarInfo(id="primary", is_primary=True, allows_modifications=True, title="Home"),
        ]
        self.fail_titles = set(fail_titles)
        self.created = []
        self._ids = itertools.count(1)

    def list_calendars(self):
        return list(self.calendars)

    def create_event(self, calendar_id, event):
        if event.title in self.fail_titles:
            raise RuntimeError(f"cannot save {event.title}")
        self.created.append((calendar_id, event))
        return f"evt-{next(self._ids)}"


@pytest.fixture
def calendar_backend():
    """Factory for FakeCalendarBackend instances."""
    return FakeCalendarBackend
