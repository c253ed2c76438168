"""Routine model operations — pure business logic.

Repeat-day toggling, "is it due today" checks, boundary validation of
routine payloads and list reordering.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from src.data.models import WEEKDAYS, Routine, RoutineFile
from src.ports.routine_port import RoutineNotFoundError


_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

# Short forms accepted from chat input, e.g. "mon,wed,fri"
_DAY_ALIASES: dict[str, str] = {day[:3]: day for day in WEEKDAYS}
_DAY_ALIASES.update({day: day for day in WEEKDAYS})


class InvalidDayError(ValueError):
    """Raised when a value is not one of the seven recognized weekdays."""


class InvalidRoutineError(ValueError):
    """Raised when a routine payload is malformed."""


def normalize_day(day: str) -> str:
    """Return the canonical weekday name for *day*.

    Raises InvalidDayError for anything that is not a weekday.
    """
    if not isinstance(day, str):
        raise InvalidDayError(f"Invalid day: {day!r}")
    canonical = _DAY_ALIASES.get(day.strip().lower())
    if canonical is None:
        raise InvalidDayError(f"Invalid day: {day!r}")
    return canonical


def toggle_day(routine: Routine, day: str) -> frozenset[str]:
    """Return the routine's repeat days with *day* added or removed.

    The routine itself is not touched.
    """
    canonical = normalize_day(day)
    if canonical in routine.repeat_days:
        return routine.repeat_days - {canonical}
    return routine.repeat_days | {canonical}


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def is_scheduled_today(routine: Routine, today: date, manual: bool = False) -> bool:
    """True if the routine is due on *today*.

    Routines with no repeat days never come due automatically; they are due
    only when explicitly invoked (``manual=True``).
    """
    if not routine.repeat_days:
        return manual
    return weekday_name(today) in routine.repeat_days


def due_routines(routines: list[Routine], now: datetime) -> list[Routine]:
    """Return routines whose notification should fire at *now* (minute precision)."""
    hm = now.strftime("%H:%M")
    return [
        r for r in routines
        if r.notification and r.time == hm and is_scheduled_today(r, now.date())
    ]


def parse_days(text: str) -> frozenset[str]:
    """Parse "mon,wed fri" / "monday, friday" into a repeat-day set.

    "" and "none" mean no repeat days.
    """
    raw = text.strip().lower()
    if not raw or raw == "none":
        return frozenset()
    if raw in ("daily", "everyday"):
        return frozenset(WEEKDAYS)
    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    return frozenset(normalize_day(p) for p in parts)


def sorted_routines(routines: list[Routine]) -> list[Routine]:
    """Display order: explicit sort_order, then trigger time."""
    return sorted(routines, key=lambda r: (r.sort_order, r.time, r.title))


def move_routine(routines: list[Routine], routine_id: str, new_index: int) -> list[Routine]:
    """Move one routine to *new_index* and renumber sort_order.

    Returns new Routine objects; the input list is not mutated. An index past
    either end is clamped.
    """
    ordered = list(routines)
    old_index = next(
        (i for i, r in enumerate(ordered) if r.id == routine_id), None
    )
    if old_index is None:
        raise RoutineNotFoundError(routine_id)

    new_index = max(0, min(new_index, len(ordered) - 1))
    item = ordered.pop(old_index)
    ordered.insert(new_index, item)
    return [replace(r, sort_order=i) for i, r in enumerate(ordered)]


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRoutineError(f"'{key}' is required")
    return value.strip()


def _optional_bool(payload: dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if not isinstance(value, bool):
        raise InvalidRoutineError(f"'{key}' must be a boolean, got {value!r}")
    return value


def _optional_datetime(value: Any, key: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise InvalidRoutineError(f"'{key}' is not an ISO datetime: {value!r}") from exc
    raise InvalidRoutineError(f"'{key}' must be a datetime, got {value!r}")


def _parse_files(raw: Any) -> list[RoutineFile]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidRoutineError("'files' must be a list")
    files: list[RoutineFile] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("name"):
            raise InvalidRoutineError(f"Malformed file entry: {item!r}")
        files.append(RoutineFile(name=str(item["name"]), data_ref=str(item.get("data", ""))))
    return files


def parse_routine(payload: dict[str, Any]) -> Routine:
    """Build a Routine from an untrusted dict (JSON body, stored row, form).

    Accepts ``repeat`` as an alias of ``repeat_days``.
    """
    if not isinstance(payload, dict):
        raise InvalidRoutineError("Routine payload must be an object")

    routine_id = _require_str(payload, "id")
    title = _require_str(payload, "title")
    time_str = _require_str(payload, "time")
    if not _TIME_RE.match(time_str):
        raise InvalidRoutineError(f"'time' must be HH:MM, got {time_str!r}")

    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InvalidRoutineError("'user_id' must be an integer")

    raw_days = payload.get("repeat_days", payload.get("repeat", []))
    if isinstance(raw_days, str) or not hasattr(raw_days, "__iter__"):
        raise InvalidRoutineError("'repeat_days' must be a list of day names")
    try:
        repeat_days = frozenset(normalize_day(d) for d in raw_days)
    except InvalidDayError as exc:
        raise InvalidRoutineError(str(exc)) from exc

    color = payload.get("color") or "#000000"
    if not isinstance(color, str) or not _COLOR_RE.match(color):
        raise InvalidRoutineError(f"'color' must be #RRGGBB, got {color!r}")

    sort_order = payload.get("sort_order", 0)
    if not isinstance(sort_order, int) or isinstance(sort_order, bool):
        raise InvalidRoutineError("'sort_order' must be an integer")

    return Routine(
        id=routine_id,
        user_id=user_id,
        title=title,
        time=time_str,
        repeat_days=repeat_days,
        message=str(payload.get("message") or ""),
        color=color,
        completed=_optional_bool(payload, "completed"),
        notification=_optional_bool(payload, "notification"),
        before_image=payload.get("before_image"),
        after_image=payload.get("after_image"),
        files=_parse_files(payload.get("files")),
        sort_order=sort_order,
        created_at=_optional_datetime(payload.get("created_at"), "created_at"),
        updated_at=_optional_datetime(payload.get("updated_at"), "updated_at"),
    )
