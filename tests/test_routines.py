"""Tests for src.core.routines — repeat days, scheduling, validation, ordering."""

from datetime import date, datetime

import pytest

from src.core.routines import (
    InvalidDayError,
    InvalidRoutineError,
    due_routines,
    is_scheduled_today,
    move_routine,
    normalize_day,
    parse_days,
    parse_routine,
    sorted_routines,
    toggle_day,
)
from src.data.models import WEEKDAYS
from src.ports.routine_port import RoutineNotFoundError

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)


# ---------------------------------------------------------------------------
# toggle_day
# ---------------------------------------------------------------------------


class TestToggleDay:
    def test_adds_missing_day(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday"}))
        assert toggle_day(r, "friday") == {"monday", "friday"}

    def test_removes_present_day(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday", "friday"}))
        assert toggle_day(r, "monday") == {"friday"}

    @pytest.mark.parametrize("day", WEEKDAYS)
    def test_self_inverse(self, make_routine, day):
        r = make_routine(repeat_days=frozenset({"monday", "thursday"}))
        once = make_routine(repeat_days=toggle_day(r, day))
        assert toggle_day(once, day) == r.repeat_days

    def test_does_not_mutate_routine(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday"}))
        toggle_day(r, "sunday")
        assert r.repeat_days == {"monday"}

    def test_accepts_short_and_mixed_case(self, make_routine):
        r = make_routine(repeat_days=frozenset())
        assert toggle_day(r, "Wed") == {"wednesday"}

    @pytest.mark.parametrize("bad", ["invalid", "", "funday", "0", None, 3])
    def test_invalid_day_raises(self, make_routine, bad):
        with pytest.raises(InvalidDayError):
            toggle_day(make_routine(), bad)

    def test_invalid_day_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_day("someday")


# ---------------------------------------------------------------------------
# is_scheduled_today / due_routines
# ---------------------------------------------------------------------------


class TestIsScheduledToday:
    def test_monday_only(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday"}))
        assert is_scheduled_today(r, MONDAY) is True
        assert is_scheduled_today(r, TUESDAY) is False

    def test_empty_set_never_due_automatically(self, make_routine):
        r = make_routine(repeat_days=frozenset())
        assert is_scheduled_today(r, MONDAY) is False

    def test_empty_set_due_when_manual(self, make_routine):
        r = make_routine(repeat_days=frozenset())
        assert is_scheduled_today(r, MONDAY, manual=True) is True

    def test_manual_flag_does_not_override_repeat_days(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday"}))
        assert is_scheduled_today(r, TUESDAY, manual=True) is False

    def test_accepts_datetime(self, make_routine):
        r = make_routine(repeat_days=frozenset({"monday"}))
        assert is_scheduled_today(r, datetime(2026, 10, 19, 23, 59)) is True


class TestDueRoutines:
    def test_matches_minute_and_day(self, make_routine):
        due = make_routine(id="a", time="07:00")
        wrong_time = make_routine(id="b", time="07:01")
        wrong_day = make_routine(id="c", repeat_days=frozenset({"tuesday"}))
        silent = make_routine(id="d", notification=False)
        manual = make_routine(id="e", repeat_days=frozenset())
        result = due_routines(
            [due, wrong_time, wrong_day, silent, manual], datetime(2026, 10, 19, 7, 0, 42),
        )
        assert [r.id for r in result] == ["a"]


# ---------------------------------------------------------------------------
# parse_days
# ---------------------------------------------------------------------------


class TestParseDays:
    def test_short_forms(self):
        assert parse_days("mon,wed fri") == {"monday", "wednesday", "friday"}

    def test_full_names_with_spaces(self):
        assert parse_days(" Monday, Sunday ") == {"monday", "sunday"}

    def test_duplicates_collapse(self):
        assert parse_days("mon,monday,Mon") == {"monday"}

    def test_daily(self):
        assert parse_days("daily") == set(WEEKDAYS)

    def test_none_and_empty(self):
        assert parse_days("") == frozenset()
        assert parse_days("none") == frozenset()

    def test_invalid(self):
        with pytest.raises(InvalidDayError):
            parse_days("mon,xyz")


# ---------------------------------------------------------------------------
# move_routine / sorted_routines
# ---------------------------------------------------------------------------


class TestMoveRoutine:
    def _three(self, make_routine):
        return [
            make_routine(id="a", sort_order=0),
            make_routine(id="b", sort_order=1),
            make_routine(id="c", sort_order=2),
        ]

    def test_move_down(self, make_routine):
        moved = move_routine(self._three(make_routine), "a", 2)
        assert [r.id for r in moved] == ["b", "c", "a"]
        assert [r.sort_order for r in moved] == [0, 1, 2]

    def test_move_up(self, make_routine):
        moved = move_routine(self._three(make_routine), "c", 0)
        assert [r.id for r in moved] == ["c", "a", "b"]

    def test_index_is_clamped(self, make_routine):
        routines = self._three(make_routine)
        assert [r.id for r in move_routine(routines, "a", 99)] == ["b", "c", "a"]
        assert [r.id for r in move_routine(routines, "c", -5)] == ["c", "a", "b"]

    def test_input_not_mutated(self, make_routine):
        routines = self._three(make_routine)
        move_routine(routines, "a", 2)
        assert [r.id for r in routines] == ["a", "b", "c"]
        assert routines[0].sort_order == 0

    def test_unknown_id(self, make_routine):
        with pytest.raises(RoutineNotFoundError):
            move_routine(self._three(make_routine), "zzz", 0)

    def test_sorted_routines_uses_order_then_time(self, make_routine):
        routines = [
            make_routine(id="late", sort_order=0, time="09:00"),
            make_routine(id="early", sort_order=0, time="06:00"),
            make_routine(id="first", sort_order=-1, time="23:00"),
        ]
        assert [r.id for r in sorted_routines(routines)] == ["first", "early", "late"]


# ---------------------------------------------------------------------------
# parse_routine
# ---------------------------------------------------------------------------


def _payload(**overrides):
    payload = {
        "id": "r1",
        "user_id": 12345,
        "title": "Stretch",
        "time": "07:00",
        "repeat_days": ["monday"],
        "message": "Time to stretch",
    }
    payload.update(overrides)
    return payload


class TestParseRoutine:
    def test_valid_payload(self):
        r = parse_routine(_payload())
        assert r.id == "r1"
        assert r.repeat_days == {"monday"}
        assert r.completed is False
        assert r.notification is False
        assert r.color == "#000000"

    def test_repeat_alias_and_duplicates(self):
        payload = _payload(repeat=["mon", "monday", "Fri"])
        del payload["repeat_days"]
        r = parse_routine(payload)
        assert r.repeat_days == {"monday", "friday"}

    def test_files_and_timestamps(self):
        r = parse_routine(_payload(
            files=[{"name": "plan.pdf", "data": "blob://1"}],
            created_at="2026-10-19T07:00:00",
        ))
        assert r.files[0].name == "plan.pdf"
        assert r.files[0].data_ref == "blob://1"
        assert r.created_at == datetime(2026, 10, 19, 7, 0)

    @pytest.mark.parametrize("key", ["id", "title", "time"])
    def test_missing_required(self, key):
        payload = _payload()
        del payload[key]
        with pytest.raises(InvalidRoutineError):
            parse_routine(payload)

    @pytest.mark.parametrize("bad_time", ["7:00", "24:00", "12:60", "noon"])
    def test_bad_time(self, bad_time):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(time=bad_time))

    def test_bad_day(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(repeat_days=["caturday"]))

    def test_days_as_string_rejected(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(repeat_days="monday"))

    def test_non_bool_flag_rejected(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(completed="yes"))

    def test_non_int_user_rejected(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(user_id="12345"))

    def test_malformed_file_rejected(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(files=[{"data": "x"}]))

    @pytest.mark.parametrize("bad_color", ["red", "#FFF", "EF4444", "#GG0000"])
    def test_bad_color(self, bad_color):
        with pytest.raises(InvalidRoutineError):
            parse_routine(_payload(color=bad_color))

    def test_color_kept(self):
        assert parse_routine(_payload(color="#EF4444")).color == "#EF4444"

    def test_not_a_dict(self):
        with pytest.raises(InvalidRoutineError):
            parse_routine(["r1"])
