import json
from datetime import date, time

from salonbook.domain.scheduling.working_hours import (
    DEFAULT_WORKING_WINDOW,
    parse_breaks,
    parse_working_hours,
    serialize_working_hours,
)
from salonbook.shared.errors import StoreError

MONDAY = date(2024, 6, 3)
SUNDAY = date(2024, 6, 9)


def test_missing_hours_fall_back_to_default_window():
    result = parse_working_hours(None)

    assert result.ok
    assert result.value is DEFAULT_WORKING_WINDOW
    assert result.value.for_day(SUNDAY).hours.start == time(9, 0)


def test_per_weekday_shape_with_breaks():
    raw = {
        "monday": {
            "start": "09:00",
            "end": "17:00",
            "breaks": [{"startTime": "12:00", "endTime": "13:00", "title": "Lunch"}],
        },
        "sunday": None,
    }

    window = parse_working_hours(raw).value

    monday = window.for_day(MONDAY)
    assert monday.hours.end == time(17, 0)
    assert [b.title for b in monday.breaks] == ["Lunch"]
    assert window.for_day(SUNDAY) is None


def test_legacy_shape_maps_sunday_based_days():
    window = parse_working_hours({"start": 10, "end": 18, "daysOfWeek": [0, 1]}).value

    assert sorted(window.days) == [0, 6]  # Monday and Sunday
    assert window.for_day(MONDAY).hours.start == time(10, 0)


def test_json_string_is_accepted():
    raw = json.dumps({"tuesday": {"start": "08:30", "end": "12:00"}})

    window = parse_working_hours(raw).value

    assert list(window.days) == [1]


def test_malformed_hours_are_errors_not_defaults():
    for raw in (
        {"monday": {"start": "25:00", "end": "17:00"}},
        {"monday": {"start": "17:00", "end": "09:00"}},
        {"funday": {"start": "09:00", "end": "17:00"}},
        {"monday": {"start": "09:00", "end": "12:00", "breaks": [{"start": "11:30", "end": "12:30"}]}},
        "not json",
        ["monday"],
    ):
        result = parse_working_hours(raw)
        assert not result.ok, raw
        assert isinstance(result.error, StoreError)


def test_parse_breaks_accepts_both_key_styles_and_sorts():
    result = parse_breaks(
        [
            {"start": "15:00", "end": "15:15"},
            {"startTime": "12:00", "endTime": "12:30", "title": "Lunch"},
        ]
    )

    assert result.ok
    assert [(b.start, b.title) for b in result.value] == [(time(12, 0), "Lunch"), (time(15, 0), "")]


def test_parse_breaks_reports_garbage():
    assert parse_breaks(None).value == ()
    assert not parse_breaks({"startTime": "12:00"}).ok
    assert not parse_breaks([{"startTime": "noon", "endTime": "13:00"}]).ok


def test_serialize_then_parse_keeps_the_window():
    raw = {
        "monday": {
            "start": "09:00",
            "end": "17:00",
            "breaks": [{"startTime": "12:00", "endTime": "13:00", "title": "Lunch"}],
        }
    }
    window = parse_working_hours(raw).value

    assert parse_working_hours(serialize_working_hours(window)).value == window
