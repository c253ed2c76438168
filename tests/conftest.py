"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a manually driven clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timedelta

import pytest

# Monday
MONDAY_7AM = datetime(2026, 10, 19, 7, 0)


class FakeTimer:
    def __init__(self, when, callback, seq):
        self.when = when
        self.callback = callback
        self.seq = seq
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """ClockPort whose time only moves when a test calls advance()."""

    def __init__(self, start=MONDAY_7AM):
        self._now = start
        self._timers = []
        self._seq = 0

    def now(self):
        return self._now

    def call_later(self, delay, callback):
        self._seq += 1
        timer = FakeTimer(self._now + timedelta(seconds=delay), callback, self._seq)
        self._timers.append(timer)
        return timer

    def advance(self, seconds):
        """Move time forward, running due callbacks in order."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self._now = timer.when
            timer.callback()
        self._now = target

    def live_timers(self):
        return [t for t in self._timers if not t.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_routines.db")


@pytest.fixture
def routine_db(tmp_db_path):
    """Return a RoutineDB instance backed by a temp file."""
    from src.data.db import RoutineDB
    return RoutineDB(db_path=tmp_db_path)


@pytest.fixture
def make_routine():
    """Factory for Routine objects with sensible defaults."""
    from src.data.models import Routine

    def _make(**overrides):
        fields = {
            "id": "r1",
            "user_id": 12345,
            "title": "Stretch",
            "time": "07:00",
            "repeat_days": frozenset({"monday"}),
            "message": "Time to stretch",
            "notification": True,
        }
        fields.update(overrides)
        return Routine(**fields)

    return _make
