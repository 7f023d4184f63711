"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...models import IntervalStatus
from ...shared.validators import to_naive_utc


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment; end time comes from the service duration"""

    member_id: int
    service_id: int
    start_time: datetime
    client_id: Optional[str] = None  # None books a walk-in
    notes: Optional[str] = None
    internal_notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v)


class AppointmentUpdate(BaseModel):
    """Schema for updating an appointment; a new start_time reschedules it"""

    start_time: Optional[datetime] = None
    status: Optional[IntervalStatus] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def normalize_start(cls, v):
        return to_naive_utc(v) if v is not None else v


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    org_id: str
    member_id: int
    service_id: int
    client_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    price: Optional[float] = None
    status: IntervalStatus
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    booked_by: str


class AppointmentPage(BaseModel):
    items: list[AppointmentResponse]
    total: int
    page: int
    limit: int
    total_pages: int
