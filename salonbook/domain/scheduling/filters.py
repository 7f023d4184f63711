"""Explicit list filters and the builders that turn them into query predicates"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Query

from ...models import Appointment, IntervalStatus, Shift
from ...shared.errors import ValidationError


def _discriminator(filters) -> str:
    parts = []
    for name, value in sorted(asdict(filters).items()):
        if value is None:
            continue
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif isinstance(value, IntervalStatus):
            value = value.value
        parts.append(f"{name}={value}")
    return ",".join(parts) or "all"


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError("start_date must not be after end_date")


@dataclass(frozen=True)
class AppointmentFilters:
    member_id: Optional[int] = None
    service_id: Optional[int] = None
    client_id: Optional[str] = None
    status: Optional[IntervalStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    walk_in: Optional[bool] = None

    def __post_init__(self):
        _check_range(self.start_date, self.end_date)

    def cache_discriminator(self) -> str:
        return _discriminator(self)


@dataclass(frozen=True)
class ShiftFilters:
    member_id: Optional[int] = None
    status: Optional[IntervalStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    include_recurring: bool = True

    def __post_init__(self):
        _check_range(self.start_date, self.end_date)

    def cache_discriminator(self) -> str:
        return _discriminator(self)


def apply_appointment_filters(query: Query, filters: AppointmentFilters) -> Query:
    if filters.member_id is not None:
        query = query.filter(Appointment.member_id == filters.member_id)
    if filters.service_id is not None:
        query = query.filter(Appointment.service_id == filters.service_id)
    if filters.client_id is not None:
        query = query.filter(Appointment.client_id == filters.client_id)
    if filters.status is not None:
        query = query.filter(Appointment.status == IntervalStatus(filters.status).value)
    if filters.start_date is not None:
        query = query.filter(
            Appointment.start_time >= datetime.combine(filters.start_date, time.min)
        )
    if filters.end_date is not None:
        # end_date is inclusive: everything before the next midnight
        query = query.filter(
            Appointment.start_time < datetime.combine(filters.end_date + timedelta(days=1), time.min)
        )
    if filters.walk_in is True:
        query = query.filter(Appointment.client_id.is_(None))
    elif filters.walk_in is False:
        query = query.filter(Appointment.client_id.isnot(None))
    return query


def apply_shift_filters(query: Query, filters: ShiftFilters) -> Query:
    if filters.member_id is not None:
        query = query.filter(Shift.member_id == filters.member_id)
    if filters.status is not None:
        query = query.filter(Shift.status == IntervalStatus(filters.status).value)
    if filters.start_date is not None:
        query = query.filter(Shift.date >= filters.start_date)
    if filters.end_date is not None:
        query = query.filter(Shift.date <= filters.end_date)
    if not filters.include_recurring:
        query = query.filter(Shift.is_recurring.is_(False))
    return query
