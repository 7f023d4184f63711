"""
Time interval value types and comparison primitives.

All intervals are half-open, ``[start, end)``: an interval ending at T and
another starting at T do not overlap.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Union

from ...shared.errors import ValidationError
from ...shared.validators import parse_clock_time


@dataclass(frozen=True, order=True)
class TimeInterval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError("Start time must be before end time")

    @classmethod
    def from_clock(
        cls, day: date, start: Union[str, time], end: Union[str, time]
    ) -> "TimeInterval":
        """Build a date-time interval from a calendar date and two clock times"""
        return cls(
            datetime.combine(day, parse_clock_time(start)),
            datetime.combine(day, parse_clock_time(end)),
        )

    @classmethod
    def starting_at(cls, start: datetime, duration: timedelta) -> "TimeInterval":
        return cls(start, start + duration)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def shift_by(self, delta: timedelta) -> "TimeInterval":
        return TimeInterval(self.start + delta, self.end + delta)


@dataclass(frozen=True)
class ClockRange:
    """A clock-time range with no date, e.g. a working window or a break"""

    start: time
    end: time
    title: str = ""

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(
                f"Invalid range {self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}: "
                "start must be before end"
            )

    @property
    def minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def on(self, day: date) -> TimeInterval:
        return TimeInterval(datetime.combine(day, self.start), datetime.combine(day, self.end))


def overlaps(candidate: TimeInterval, existing: TimeInterval) -> bool:
    """
    Three-way overlap test between a candidate and an existing interval.

    A conflict is any of:
      - the candidate starts during the existing interval
      - the candidate ends during the existing interval
      - the candidate fully contains the existing interval

    For well-formed intervals this is symmetric and equivalent to
    ``candidate.start < existing.end and existing.start < candidate.end``.
    """
    starts_during = existing.start <= candidate.start < existing.end
    ends_during = existing.start < candidate.end <= existing.end
    contains = candidate.start <= existing.start and candidate.end >= existing.end
    return starts_during or ends_during or contains
