"""
JIN Routines — Data Models.

Routines persist in SQLite across days, surviving bot restarts.
A NotificationEvent only exists while its popup is on screen; the inbox
copy of a fired popup is a NotificationRecord.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class RoutineFile:
    """An attachment on a routine. The data reference is opaque to the core."""

    name: str
    data_ref: str


@dataclass
class Routine:
    """A user-defined recurring task.

    `completed` only describes the cycle currently on display; past cycles
    live in the routine_records table.
    """

    id: str
    user_id: int
    title: str
    time: str                                   # trigger time-of-day, "HH:MM"
    repeat_days: frozenset[str] = frozenset()   # empty -> manual trigger only
    message: str = ""
    color: str = "#000000"
    completed: bool = False
    notification: bool = False
    before_image: str | None = None
    after_image: str | None = None
    files: list[RoutineFile] = field(default_factory=list)
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class NotificationEvent:
    """A transient popup for a routine that has fired."""

    routine_id: str
    title: str
    message: str
    created_at: datetime


@dataclass
class RoutineRecord:
    """One completed cycle of a routine."""

    routine_id: str
    user_id: int
    cycle_date: str                 # ISO date YYYY-MM-DD
    completed_at: str               # ISO datetime
    memo: str | None = None
    id: int | None = None


@dataclass
class RoutineStats:
    """Completion statistics for one user's routines."""

    total_routines: int
    completed_routines: int
    completion_rate: float          # percent, 0-100
    today_routines: int
    today_completed: int
    repeat_stats: dict[str, int]
    weekly_completions: list[tuple[str, int]]   # (ISO date, count), newest first
    streak: int


@dataclass
class NotificationRecord:
    """A fired popup kept in the user's notification inbox."""

    user_id: int
    title: str
    message: str
    created_at: datetime
    routine_id: str | None = None   # None for messages not tied to a routine
    read: bool = False
    id: int | None = None
