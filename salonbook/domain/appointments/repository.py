"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ACTIVE_STATUSES, Appointment
from ..scheduling.conflicts import CommittedInterval
from ..scheduling.filters import AppointmentFilters, apply_appointment_filters
from ..scheduling.intervals import TimeInterval


class AppointmentRepository:
    """Repository for appointment database operations.

    Doubles as the IntervalStore the conflict detector and the
    availability computer read from.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_active_intervals(
        self,
        tenant_id: str,
        resource_id: int,
        window: TimeInterval,
        exclude_id: Optional[int] = None,
    ) -> list[CommittedInterval]:
        query = self.db.query(Appointment).filter(
            Appointment.org_id == tenant_id,
            Appointment.member_id == resource_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < window.end,
            Appointment.end_time > window.start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)

        return [
            CommittedInterval(a.id, a.start_time, a.end_time, a.status)
            for a in query.order_by(Appointment.start_time).all()
        ]

    def get_appointment(self, tenant_id: str, appointment_id: int) -> Optional[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.org_id == tenant_id)
            .first()
        )

    def list_appointments(
        self, tenant_id: str, filters: AppointmentFilters, skip: int = 0, limit: int = 20
    ) -> tuple[list[Appointment], int]:
        query = apply_appointment_filters(
            self.db.query(Appointment).filter(Appointment.org_id == tenant_id), filters
        )
        total = query.count()
        items = query.order_by(Appointment.start_time).offset(skip).limit(limit).all()
        return items, total

    def get_member_appointments_between(
        self, tenant_id: str, member_id: int, start: datetime, end: datetime
    ) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.org_id == tenant_id,
                Appointment.member_id == member_id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.start_time >= start,
                Appointment.start_time <= end,
            )
            .order_by(Appointment.start_time)
            .all()
        )

    def add(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment
