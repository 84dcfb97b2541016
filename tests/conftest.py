"""Shared fixtures for the studycue test suite."""

from __future__ import annotations

import datetime as dt
import threading
from typing import Any

import pytest


class FakeClock:
    """Thread-safe manually advanced clock returning naive-UTC datetimes."""

    def __init__(self, start: dt.datetime) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> dt.datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs: float) -> dt.datetime:
        with self._lock:
            self._now += dt.timedelta(**kwargs)
            return self._now

    def set(self, value: dt.datetime) -> None:
        with self._lock:
            self._now = value


@pytest.fixture()
def t0() -> dt.datetime:
    return dt.datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture()
def clock(t0: dt.datetime) -> FakeClock:
    """Clock starting one hour before ``t0``."""
    return FakeClock(t0 - dt.timedelta(hours=1))


@pytest.fixture()
def make_clock():
    """Factory for :class:`FakeClock` instances starting at a given time."""
    return FakeClock


@pytest.fixture()
def sample_batch() -> dict[str, Any]:
    """Three subjects: two complete pomodoros, one open, one without a start.

    Start times: 09:00 (Math), 09:10 (Physics), 09:45 (Math, open), so
    the batch clusters into two sessions: [09:00, 09:10] and [09:45].
    """
    return {
        "calendar": [{"title": "Lecture", "start_at": "2026-03-02T08:00:00", "end_at": "2026-03-02T08:45:00"}],
        "subjects": [
            {
                "name": "Math",
                "tomatoes": [
                    {
                        "start_at": "2026-03-02T09:00:00Z",
                        "end_at": "2026-03-02T09:25:00Z",
                        "pause_end_at": "2026-03-02T09:30:00Z",
                    },
                    {"start_at": "2026-03-02T09:45:00Z"},
                    {"end_at": "2026-03-02T11:00:00Z"},
                ],
            },
            {
                "name": "Physics",
                "tomatoes": [
                    {
                        "start_at": "2026-03-02T10:10:00+01:00",
                        "end_at": "2026-03-02T10:30:00+01:00",
                    },
                ],
            },
            {"name": "History", "tomatoes": []},
        ],
    }
