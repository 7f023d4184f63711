"""
Scheduling domain: the temporal engine shared by appointments and shifts.

- intervals.py      half-open time ranges and the overlap predicate
- conflicts.py      ConflictDetector over any IntervalStore
- availability.py   bookable slot generation
- recurrence.py     recurrence rule expansion
- working_hours.py  member working-window parsing
- locking.py        per-member write serialization
- filters.py        list filters and query builders
"""

from .availability import AvailabilityComputer, Slot
from .conflicts import CommittedInterval, ConflictDetector, first_conflict
from .intervals import ClockRange, TimeInterval, overlaps
from .recurrence import RecurrencePattern, RecurrenceRule, expand, expand_by_weekday

__all__ = [
    "AvailabilityComputer",
    "ClockRange",
    "CommittedInterval",
    "ConflictDetector",
    "RecurrencePattern",
    "RecurrenceRule",
    "Slot",
    "TimeInterval",
    "expand",
    "expand_by_weekday",
    "first_conflict",
    "overlaps",
]
