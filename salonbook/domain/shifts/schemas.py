"""Shift domain schemas - Pydantic models for validation"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models import IntervalStatus
from ...shared.errors import ValidationError
from ...shared.validators import format_clock_time, parse_clock_time
from ..scheduling.recurrence import RecurrencePattern


def _normalize_clock(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        return format_clock_time(parse_clock_time(v))
    except ValidationError as e:
        raise ValueError(e.message) from e


class BreakPeriod(BaseModel):
    """A break inside a shift, stored as {"startTime", "endTime", "title"}"""

    model_config = ConfigDict(populate_by_name=True)

    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    title: Optional[str] = None  # e.g., "Lunch", "Coffee Break"

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v):
        return _normalize_clock(v)


class ShiftCreate(BaseModel):
    """Schema for creating a shift"""

    member_id: int
    date: dt.date
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    breaks: list[BreakPeriod] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v):
        return _normalize_clock(v)


class ShiftUpdate(BaseModel):
    """Schema for updating a shift; changing date or times re-checks conflicts"""

    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    status: Optional[IntervalStatus] = None
    breaks: Optional[list[BreakPeriod]] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v):
        return _normalize_clock(v)


class ShiftResponse(BaseModel):
    """Schema for shift response"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    org_id: str
    member_id: int
    date: dt.date
    start_time: str
    end_time: str
    duration: float  # hours
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    breaks: Optional[list[BreakPeriod]] = None
    status: IntervalStatus
    is_recurring: bool
    recurrence_pattern: Optional[RecurrencePattern] = None
    parent_shift_id: Optional[int] = None
    occurrence_number: int = 0
    created_by: str


class ShiftPage(BaseModel):
    items: list[ShiftResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class OccurrenceFailure(BaseModel):
    """A recurrence date that was not created"""

    date: dt.date
    occurrence_number: int
    reason: str
    conflicting_start: Optional[dt.datetime] = None


class RecurringShiftResult(BaseModel):
    parent_shift: ShiftResponse
    recurring_shifts: list[ShiftResponse]
    failed_occurrences: list[OccurrenceFailure]

    @property
    def total_shifts_created(self) -> int:
        return len(self.recurring_shifts) + 1


class DaySchedule(BaseModel):
    date: dt.date
    day_name: str  # Monday, Tuesday, etc.
    shifts: list[ShiftResponse]
    total_hours: float


class WeeklySchedule(BaseModel):
    week_start: dt.date
    week_end: dt.date
    days: list[DaySchedule]


class ShiftStats(BaseModel):
    total_shifts: int = 0
    scheduled_shifts: int = 0
    confirmed_shifts: int = 0
    in_progress_shifts: int = 0
    completed_shifts: int = 0
    cancelled_shifts: int = 0
    no_show_shifts: int = 0
    total_hours: float = 0.0
    average_shift_duration: float = 0.0
