"""Shift repository - Database operations for shifts"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ACTIVE_STATUSES, Shift
from ..scheduling.conflicts import CommittedInterval
from ..scheduling.filters import ShiftFilters, apply_shift_filters
from ..scheduling.intervals import TimeInterval


def shift_interval(shift: Shift) -> TimeInterval:
    return TimeInterval.from_clock(shift.date, shift.start_time, shift.end_time)


class ShiftRepository:
    """Repository for shift database operations; also the shift IntervalStore"""

    def __init__(self, db: Session):
        self.db = db

    def find_active_intervals(
        self,
        tenant_id: str,
        resource_id: int,
        window: TimeInterval,
        exclude_id: Optional[int] = None,
    ) -> list[CommittedInterval]:
        # Shifts never cross midnight, so the calendar dates touched by the window suffice
        last_day = (window.end - timedelta(microseconds=1)).date()
        query = self.db.query(Shift).filter(
            Shift.org_id == tenant_id,
            Shift.member_id == resource_id,
            Shift.status.in_(ACTIVE_STATUSES),
            Shift.date >= window.start.date(),
            Shift.date <= last_day,
        )
        if exclude_id is not None:
            query = query.filter(Shift.id != exclude_id)

        intervals = []
        for shift in query.all():
            interval = shift_interval(shift)
            intervals.append(
                CommittedInterval(
                    shift.id, interval.start, interval.end, shift.status, shift.title or "Untitled"
                )
            )
        return intervals

    def get_shift(self, tenant_id: str, shift_id: int) -> Optional[Shift]:
        return self.db.query(Shift).filter(Shift.id == shift_id, Shift.org_id == tenant_id).first()

    def list_shifts(
        self, tenant_id: str, filters: ShiftFilters, skip: int = 0, limit: int = 20
    ) -> tuple[list[Shift], int]:
        query = apply_shift_filters(self.db.query(Shift).filter(Shift.org_id == tenant_id), filters)
        total = query.count()
        items = query.order_by(Shift.date, Shift.start_time).offset(skip).limit(limit).all()
        return items, total

    def find_shifts(self, tenant_id: str, filters: ShiftFilters) -> list[Shift]:
        query = apply_shift_filters(self.db.query(Shift).filter(Shift.org_id == tenant_id), filters)
        return query.order_by(Shift.date, Shift.start_time).all()

    def add(self, shift: Shift) -> Shift:
        self.db.add(shift)
        self.db.flush()
        return shift

    def delete(self, shift: Shift) -> None:
        # Children of a recurring parent go with it (relationship cascade)
        self.db.delete(shift)
