import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import backref, relationship
from sqlalchemy.sql import func

from .database import Base


class IntervalStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Only these statuses block new bookings
ACTIVE_STATUSES = (
    IntervalStatus.SCHEDULED.value,
    IntervalStatus.CONFIRMED.value,
    IntervalStatus.IN_PROGRESS.value,
)
TERMINAL_STATUSES = (
    IntervalStatus.COMPLETED.value,
    IntervalStatus.CANCELLED.value,
    IntervalStatus.NO_SHOW.value,
)


class Member(Base):
    """Staff member: the bookable resource"""

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    username = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    # Per-weekday window with breaks, or legacy {"start": 9, "end": 17, "daysOfWeek": [...]}
    working_hours = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="member")
    shifts = relationship("Shift", back_populates="member", foreign_keys="Shift.member_id")
    services = relationship("MemberService", back_populates="member", cascade="all, delete-orphan")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())


class MemberService(Base):
    """Which member provides which service"""

    __tablename__ = "member_services"
    __table_args__ = (UniqueConstraint("member_id", "service_id", name="uq_member_service"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    member = relationship("Member", back_populates="services")
    service = relationship("Service")


class Appointment(Base):
    """Booked appointment: a committed interval on full date-times"""

    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_member_window", "member_id", "start_time", "end_time"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    client_id = Column(String(255), nullable=True)  # Null for walk-ins

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, nullable=True)

    # SCHEDULED → CONFIRMED → IN_PROGRESS → COMPLETED, or CANCELLED / NO_SHOW
    status = Column(String(20), default=IntervalStatus.SCHEDULED.value, nullable=False, index=True)

    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(255), nullable=True)
    booked_by = Column(String(255), nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    member = relationship("Member", back_populates="appointments")
    service = relationship("Service")


class Shift(Base):
    """Staff shift on a calendar date with HH:MM clock times"""

    __tablename__ = "shifts"
    __table_args__ = (Index("ix_shifts_member_date", "member_id", "date"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Float, nullable=False)  # hours

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    color = Column(String(7), default="#3B82F6")
    breaks = Column(JSON, nullable=True)  # [{"startTime": "12:00", "endTime": "12:30", "title": "Lunch"}]
    status = Column(String(20), default=IntervalStatus.SCHEDULED.value, nullable=False, index=True)

    # Recurrence: the parent stores the rule, children point back to it
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_pattern = Column(String(20), nullable=True)
    recurrence_rule = Column(JSON, nullable=True)
    parent_shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=True, index=True)
    occurrence_number = Column(Integer, default=0, nullable=False)

    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    member = relationship("Member", back_populates="shifts", foreign_keys=[member_id])
    children = relationship(
        "Shift",
        backref=backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
        order_by="Shift.occurrence_number",
    )
