"""
Recurrence expansion: turn a seed date and a rule into future occurrence dates.

The seed itself is never part of the output; callers create the seed
occurrence directly and use the expansion for the additional ones.
"""

import enum
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ... import config

# Absolute ceiling on generated occurrences, whatever the rule says
HARD_OCCURRENCE_LIMIT = 365


class RecurrencePattern(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BI_WEEKLY = "BI_WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


# Roughly one year of occurrences when the rule sets no cap
PATTERN_DEFAULT_OCCURRENCES = {
    RecurrencePattern.DAILY: 90,
    RecurrencePattern.WEEKLY: 52,
    RecurrencePattern.BI_WEEKLY: 26,
    RecurrencePattern.MONTHLY: 12,
    RecurrencePattern.CUSTOM: 52,
}


class RecurrenceRule(BaseModel):
    """Immutable description of how a seed occurrence repeats"""

    model_config = ConfigDict(frozen=True)

    pattern: RecurrencePattern
    interval: int = Field(default=1, ge=1)
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)
    # 0 = Sunday ... 6 = Saturday; only read by expand_by_weekday
    days_of_week: Optional[tuple[int, ...]] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v):
        if v is None:
            return v
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
        return tuple(sorted(set(v)))

    @property
    def occurrence_limit(self) -> int:
        requested = self.max_occurrences or PATTERN_DEFAULT_OCCURRENCES[self.pattern]
        return min(requested, config.MAX_RECURRENCE_OCCURRENCES, HARD_OCCURRENCE_LIMIT)


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping to the last day of a shorter month"""
    return day + relativedelta(months=months)


def occurrence_date(start_date: date, rule: RecurrenceRule, n: int) -> date:
    """The n-th occurrence after the seed (n = 0 is the seed)"""
    if rule.pattern is RecurrencePattern.DAILY:
        return start_date + timedelta(days=rule.interval * n)
    if rule.pattern is RecurrencePattern.BI_WEEKLY:
        # Fixed two-week cadence; interval does not apply
        return start_date + timedelta(days=14 * n)
    if rule.pattern is RecurrencePattern.MONTHLY:
        # Anchored on the seed so Jan 31 -> Feb 29 -> Mar 31
        return add_months(start_date, rule.interval * n)
    # WEEKLY and CUSTOM
    return start_date + timedelta(days=7 * rule.interval * n)


def expand(start_date: date, rule: RecurrenceRule) -> list[date]:
    """
    Expand a rule into the ordered occurrence dates after ``start_date``.

    Stops at ``rule.end_date`` (inclusive) or after ``occurrence_limit``
    dates, whichever comes first. WEEKLY and CUSTOM step by 7 * interval
    days and ignore ``days_of_week``; see ``expand_by_weekday``.
    """
    limit = rule.occurrence_limit
    dates = []
    n = 1
    while len(dates) < limit:
        current = occurrence_date(start_date, rule, n)
        if rule.end_date is not None and current > rule.end_date:
            break
        dates.append(current)
        n += 1
    return dates


def expand_by_weekday(start_date: date, rule: RecurrenceRule) -> list[date]:
    """
    Per-weekday expansion for WEEKLY and CUSTOM rules with ``days_of_week``.

    Every ``interval``-th week (counted from the seed's Monday-based week),
    each selected weekday after the seed is an occurrence. Rules of other
    patterns, or without ``days_of_week``, expand exactly like ``expand``.
    """
    if rule.pattern not in (RecurrencePattern.WEEKLY, RecurrencePattern.CUSTOM) or not rule.days_of_week:
        return expand(start_date, rule)

    # Stored weekdays are 0 = Sunday; date.weekday() is 0 = Monday
    offsets = sorted((d - 1) % 7 for d in rule.days_of_week)
    first_week = start_date - timedelta(days=start_date.weekday())
    limit = rule.occurrence_limit

    dates = []
    week = 0
    while len(dates) < limit:
        week_start = first_week + timedelta(days=7 * rule.interval * week)
        for offset in offsets:
            current = week_start + timedelta(days=offset)
            if current <= start_date:
                continue
            if rule.end_date is not None and current > rule.end_date:
                return dates
            dates.append(current)
            if len(dates) >= limit:
                break
        week += 1
    return dates
