from datetime import date, datetime

import pytest
from tablebook.domain.calendar import ServiceWindow, SlotCalendar, parse_date, parse_time
from tablebook.domain.errors import InvalidDateError


def _calendar(**overrides: object) -> SlotCalendar:
    kwargs: dict[str, object] = {
        "interval_minutes": 30,
        "max_capacity_per_slot": 50,
    }
    kwargs.update(overrides)
    return SlotCalendar.from_config(["12:00-15:30", "19:00-22:30"], **kwargs)  # type: ignore[arg-type]


def test_default_windows_produce_sixteen_slots() -> None:
    slots = _calendar().slots_for_date(date(2031, 3, 17))
    assert len(slots) == 16
    assert slots[:3] == ["12:00", "12:30", "13:00"]
    assert "15:30" in slots
    assert "16:00" not in slots
    assert slots[-1] == "22:30"


def test_slots_are_identical_for_every_date() -> None:
    calendar = _calendar()
    assert calendar.slots_for_date(date(2031, 1, 1)) == calendar.slots_for_date(date(2031, 7, 4))


def test_slots_for_date_rejects_non_dates() -> None:
    calendar = _calendar()
    with pytest.raises(InvalidDateError):
        calendar.slots_for_date("2031-03-17")  # type: ignore[arg-type]
    with pytest.raises(InvalidDateError):
        calendar.slots_for_date(datetime(2031, 3, 17, 19, 0))


def test_is_slot() -> None:
    calendar = _calendar()
    day = date(2031, 3, 17)
    assert calendar.is_slot(day, "22:30")
    assert not calendar.is_slot(day, "23:45")
    assert not calendar.is_slot(day, "19:15")


def test_capacity_overrides_apply_per_time() -> None:
    calendar = _calendar(capacity_overrides={"21:00": 20})
    assert calendar.capacity_for("21:00") == 20
    assert calendar.capacity_for("19:00") == 50


def test_overlapping_windows_do_not_duplicate_slots() -> None:
    calendar = SlotCalendar.from_config(
        ["12:00-13:00", "12:30-14:00"], interval_minutes=30, max_capacity_per_slot=10
    )
    assert calendar.slots_for_date(date(2031, 3, 17)) == ["12:00", "12:30", "13:00", "13:30", "14:00"]


def test_window_must_not_end_before_it_starts() -> None:
    with pytest.raises(ValueError):
        ServiceWindow.parse("22:00-19:00")
    with pytest.raises(ValueError):
        ServiceWindow.parse("19:00")


def test_parse_time_requires_zero_padding() -> None:
    assert parse_time("09:30").hour == 9
    with pytest.raises(ValueError):
        parse_time("9:30")
    with pytest.raises(ValueError):
        parse_time("25:00")


def test_parse_date_accepts_iso_strings_and_dates() -> None:
    assert parse_date("2031-03-17") == date(2031, 3, 17)
    assert parse_date(date(2031, 3, 17)) == date(2031, 3, 17)
    for bad in ("17/03/2031", "", None, 20310317, datetime(2031, 3, 17)):
        with pytest.raises(InvalidDateError):
            parse_date(bad)
