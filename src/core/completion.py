"""
JIN Routines — Completion Tracker.

Flips a routine's completion flag for the current cycle and asks the
persistence port to store it. The caller's routine is only changed once the
store has accepted the new value: a storage error leaves it untouched.

Cycle rollover is not handled here. `completed` is never reset
automatically; the store keeps one RoutineRecord per completed day, written
in the same transaction as the flag.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from src.core.routines import is_scheduled_today, weekday_name
from src.data.models import WEEKDAYS, Routine, RoutineRecord, RoutineStats

if TYPE_CHECKING:
    from src.ports.clock_port import ClockPort
    from src.ports.routine_port import RoutineRepository

logger = logging.getLogger(__name__)


def toggled(routine: Routine, now: datetime) -> Routine:
    """Return a copy of *routine* with `completed` flipped and `updated_at` = now."""
    return replace(routine, completed=not routine.completed, updated_at=now)


class CompletionTracker:
    """Toggles completion state through a RoutineRepository."""

    def __init__(self, repo: RoutineRepository, clock: ClockPort) -> None:
        self._repo = repo
        self._clock = clock

    async def toggle_completion(self, routine: Routine) -> Routine:
        """Flip `completed`, persist it, and return the (mutated) routine.

        RoutineNotFoundError / RoutineUnauthorizedError / PersistenceFailure
        from the repository propagate unchanged and *routine* is not modified.
        """
        now = self._clock.now()
        nxt = toggled(routine, now)

        await self._repo.set_completed(routine.id, routine.user_id, nxt.completed, now)

        routine.completed = nxt.completed
        routine.updated_at = nxt.updated_at
        logger.info(
            "Routine %s '%s' -> %s",
            routine.id, routine.title, "completed" if routine.completed else "not completed",
        )
        return routine


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _streak(completed_dates: set[str], today: date) -> int:
    """Consecutive days with at least one completion, ending today.

    If nothing is done yet today, the streak may still end yesterday.
    """
    day = today
    if day.isoformat() not in completed_dates:
        day -= timedelta(days=1)
    count = 0
    while day.isoformat() in completed_dates:
        count += 1
        day -= timedelta(days=1)
    return count


def completion_stats(
    routines: list[Routine], records: list[RoutineRecord], today: date,
) -> RoutineStats:
    """Summarize completion for one user's routines."""
    total = len(routines)
    completed = sum(1 for r in routines if r.completed)

    todays = [r for r in routines if is_scheduled_today(r, today)]
    today_completed = sum(1 for r in todays if r.completed)

    repeat_stats = {day: 0 for day in WEEKDAYS}
    for r in routines:
        for day in r.repeat_days:
            repeat_stats[day] += 1

    per_day: dict[str, int] = {}
    for rec in records:
        per_day[rec.cycle_date] = per_day.get(rec.cycle_date, 0) + 1
    days = [(today - timedelta(days=i)).isoformat() for i in range(7)]
    weekly = [(d, per_day.get(d, 0)) for d in days]

    logger.debug("Stats for %s (%s): %d/%d completed", today, weekday_name(today), completed, total)
    return RoutineStats(
        total_routines=total,
        completed_routines=completed,
        completion_rate=_percent(completed, total),
        today_routines=len(todays),
        today_completed=today_completed,
        repeat_stats=repeat_stats,
        weekly_completions=weekly,
        streak=_streak(set(per_day), today),
    )
