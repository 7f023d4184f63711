"""
Working-window parsing for members.

Stored working hours come in two shapes:

    {"monday": {"start": "09:00", "end": "17:00",
                "breaks": [{"startTime": "12:00", "endTime": "13:00", "title": "Lunch"}]},
     "sunday": null}

    {"start": 9, "end": 17, "daysOfWeek": [1, 2, 3, 4, 5]}   # 0 = Sunday

Parsing never falls back to a default on malformed data: it returns Err so
the caller can tell "member has no hours" from "stored hours are broken".
"""

import json
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Optional

from ...shared.errors import SchedulingError, StoreError
from ...shared.result import Err, Ok, Result
from ...shared.validators import parse_clock_time
from .intervals import ClockRange

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class DayWindow:
    hours: ClockRange
    breaks: tuple[ClockRange, ...] = ()


@dataclass(frozen=True)
class WorkingWindow:
    # Keyed by date.weekday(): 0 = Monday
    days: dict[int, DayWindow] = field(default_factory=dict)

    def for_day(self, day: date) -> Optional[DayWindow]:
        return self.days.get(day.weekday())


DEFAULT_DAY = DayWindow(ClockRange(time(9, 0), time(17, 0)))
DEFAULT_WORKING_WINDOW = WorkingWindow({weekday: DEFAULT_DAY for weekday in range(7)})


def _load(raw: Any) -> Any:
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def parse_breaks(raw: Any) -> Result:
    """Parse a stored break list into ClockRanges"""
    if raw is None:
        return Ok(())
    try:
        items = _load(raw)
        if not isinstance(items, list):
            return Err(StoreError(f"Breaks must be a list, got {type(items).__name__}"))
        breaks = []
        for item in items:
            start = item.get("startTime", item.get("start"))
            end = item.get("endTime", item.get("end"))
            breaks.append(
                ClockRange(parse_clock_time(start), parse_clock_time(end), item.get("title") or "")
            )
        return Ok(tuple(sorted(breaks, key=lambda b: b.start)))
    except (ValueError, TypeError, AttributeError, SchedulingError) as e:
        return Err(StoreError(f"Malformed break periods: {e}"))


def _parse_day(day_hours: Any) -> Optional[DayWindow]:
    if day_hours is None:
        return None
    hours = ClockRange(parse_clock_time(day_hours["start"]), parse_clock_time(day_hours["end"]))
    breaks = parse_breaks(day_hours.get("breaks"))
    if not breaks.ok:
        raise breaks.error
    for b in breaks.value:
        if b.start < hours.start or b.end > hours.end:
            raise StoreError("Break falls outside working hours")
    return DayWindow(hours, breaks.value)


def _parse_legacy(data: dict) -> WorkingWindow:
    start, end = data["start"], data["end"]
    if not isinstance(start, int) or not isinstance(end, int):
        raise StoreError("Legacy working hours must use integer hours")
    day = DayWindow(ClockRange(time(start), time(end)))
    js_days = data.get("daysOfWeek")
    if js_days is None:
        weekdays = range(7)
    else:
        # 0 = Sunday in stored data, 0 = Monday in date.weekday()
        weekdays = sorted({(int(d) - 1) % 7 for d in js_days})
    return WorkingWindow({weekday: day for weekday in weekdays})


def parse_working_hours(raw: Any) -> Result:
    """
    Parse a member's stored working hours.

    Returns:
        Ok(WorkingWindow) on success; the default 09:00-17:00 window when
        nothing is stored. Err(StoreError) when the stored value is malformed.
    """
    if raw is None:
        return Ok(DEFAULT_WORKING_WINDOW)
    try:
        data = _load(raw)
        if not isinstance(data, dict):
            return Err(StoreError(f"Working hours must be an object, got {type(data).__name__}"))
        if "start" in data and "end" in data:
            return Ok(_parse_legacy(data))

        unknown = set(data) - set(WEEKDAY_NAMES)
        if unknown:
            return Err(StoreError(f"Unknown weekday keys in working hours: {sorted(unknown)}"))
        days = {}
        for weekday, name in enumerate(WEEKDAY_NAMES):
            window = _parse_day(data.get(name))
            if window is not None:
                days[weekday] = window
        return Ok(WorkingWindow(days))
    except (ValueError, TypeError, KeyError, AttributeError, SchedulingError) as e:
        return Err(e if isinstance(e, StoreError) else StoreError(f"Malformed working hours: {e}"))


def serialize_working_hours(window: WorkingWindow) -> dict:
    """Inverse of parse_working_hours for the per-weekday shape"""
    data: dict[str, Any] = {}
    for weekday, name in enumerate(WEEKDAY_NAMES):
        day = window.days.get(weekday)
        if day is None:
            data[name] = None
            continue
        data[name] = {
            "start": day.hours.start.strftime("%H:%M"),
            "end": day.hours.end.strftime("%H:%M"),
            "breaks": [
                {
                    "startTime": b.start.strftime("%H:%M"),
                    "endTime": b.end.strftime("%H:%M"),
                    "title": b.title,
                }
                for b in day.breaks
            ],
        }
    return data
