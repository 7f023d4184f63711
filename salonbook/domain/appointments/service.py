"""Appointment service - Booking, rescheduling and availability for appointments"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...cache import CacheCoordinator, CacheFamily, CacheTTL
from ...models import ACTIVE_STATUSES, TERMINAL_STATUSES, Appointment, IntervalStatus
from ...shared.errors import NotFoundError, StoreError, ValidationError
from ...shared.validators import to_naive_utc, utcnow, validate_tenant_id
from ..members.repository import MemberRepository
from ..scheduling.availability import AvailabilityComputer, Slot
from ..scheduling.conflicts import ConflictDetector
from ..scheduling.filters import AppointmentFilters
from ..scheduling.intervals import TimeInterval
from ..scheduling.locking import resource_lock
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentPage, AppointmentResponse, AppointmentUpdate

logger = logging.getLogger(__name__)

FAMILY = CacheFamily.APPOINTMENT.value


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session, coordinator: CacheCoordinator):
        self.db = db
        self.coordinator = coordinator
        self.repo = AppointmentRepository(db)
        self.members = MemberRepository(db)
        self.detector = ConflictDetector(self.repo, subject="appointment")
        self.availability = AvailabilityComputer(self.repo, self.members, coordinator)

    # ------------------------------------------------------------------
    # Cache keys
    # ------------------------------------------------------------------

    @staticmethod
    def _detail_key(tenant_id: str, appointment_id: int) -> str:
        return CacheCoordinator.key(CacheFamily.APPOINTMENT, tenant_id, "id", appointment_id)

    @staticmethod
    def _list_key(tenant_id: str, filters: AppointmentFilters, page: int, limit: int) -> str:
        return CacheCoordinator.key(
            CacheFamily.APPOINTMENT, tenant_id, "list", filters.cache_discriminator(), page, limit
        )

    def _invalidate(self, tenant_id: str) -> None:
        self.coordinator.invalidate(tenant_id, CacheFamily.APPOINTMENT)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_or_404(self, tenant_id: str, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(tenant_id, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def get_appointment(self, tenant_id: str, appointment_id: int) -> AppointmentResponse:
        tenant_id = validate_tenant_id(tenant_id)
        return self.coordinator.get_or_compute(
            self._detail_key(tenant_id, appointment_id),
            CacheTTL.DETAIL,
            lambda: AppointmentResponse.model_validate(self._get_or_404(tenant_id, appointment_id)),
            encode=lambda r: r.model_dump(mode="json"),
            decode=AppointmentResponse.model_validate,
        )

    def list_appointments(
        self,
        tenant_id: str,
        filters: Optional[AppointmentFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AppointmentPage:
        tenant_id = validate_tenant_id(tenant_id)
        filters = filters or AppointmentFilters()
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        def compute() -> AppointmentPage:
            items, total = self.repo.list_appointments(
                tenant_id, filters, skip=(page - 1) * limit, limit=limit
            )
            return AppointmentPage(
                items=[AppointmentResponse.model_validate(a) for a in items],
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit) if total else 0,
            )

        return self.coordinator.get_or_compute(
            self._list_key(tenant_id, filters, page, limit),
            CacheTTL.LIST,
            compute,
            encode=lambda p: p.model_dump(mode="json"),
            decode=AppointmentPage.model_validate,
        )

    def get_member_upcoming_appointments(
        self, tenant_id: str, member_id: int, days: int = 7, now: Optional[datetime] = None
    ) -> list[AppointmentResponse]:
        tenant_id = validate_tenant_id(tenant_id)
        if days < 1:
            raise ValidationError("days must be positive")
        if not self.members.get_member(tenant_id, member_id):
            raise NotFoundError("Member not found")

        start = now or utcnow()
        items = self.repo.get_member_appointments_between(
            tenant_id, member_id, start, start + timedelta(days=days)
        )
        return [AppointmentResponse.model_validate(a) for a in items]

    def check_member_availability(
        self,
        tenant_id: str,
        member_id: int,
        service_id: int,
        day: Union[str, date],
        slot_granularity: Optional[int] = None,
        use_cache: bool = True,
    ) -> tuple[Slot, ...]:
        """Bookable slots for a member providing a service on one day"""
        tenant_id = validate_tenant_id(tenant_id)
        member = self.members.get_member(tenant_id, member_id)
        if not member:
            raise NotFoundError("Member not found")
        service = self.members.get_service(tenant_id, service_id)
        if not service:
            raise NotFoundError("Service not found")
        if not self.members.provides_service(tenant_id, member_id, service_id):
            raise ValidationError("This member does not provide the selected service")

        return self.availability.compute_slots(
            tenant_id,
            member_id,
            day,
            service.duration,
            slot_granularity=slot_granularity,
            use_cache=use_cache,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_appointment(
        self, tenant_id: str, data: AppointmentCreate, booked_by: str
    ) -> AppointmentResponse:
        """Book an appointment after checking the member is free"""
        tenant_id = validate_tenant_id(tenant_id)

        member = self.members.get_member(tenant_id, data.member_id)
        if not member:
            raise NotFoundError("Member not found")
        service = self.members.get_service(tenant_id, data.service_id)
        if not service:
            raise NotFoundError("Service not found")
        if not self.members.provides_service(tenant_id, data.member_id, data.service_id):
            raise ValidationError("This member does not provide the selected service")

        start = data.start_time
        end = start + timedelta(minutes=service.duration)

        with resource_lock(self.db, tenant_id, data.member_id, FAMILY):
            self.detector.ensure_no_conflict(tenant_id, data.member_id, start, end)
            try:
                appointment = self.repo.add(
                    Appointment(
                        org_id=tenant_id,
                        member_id=data.member_id,
                        service_id=data.service_id,
                        client_id=data.client_id,
                        start_time=start,
                        end_time=end,
                        duration=service.duration,
                        price=service.price,
                        notes=data.notes,
                        internal_notes=data.internal_notes,
                        booked_by=booked_by,
                        status=IntervalStatus.SCHEDULED.value,
                    )
                )
                self.db.commit()
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to create appointment: {e}")
                raise StoreError("Failed to create appointment") from e

        self.db.refresh(appointment)
        self._invalidate(tenant_id)
        logger.info(
            f"📅 Appointment {appointment.id} created for member {data.member_id} "
            f"at {start.isoformat()} (client: {data.client_id or 'walk-in'}, org: {tenant_id})"
        )
        return AppointmentResponse.model_validate(appointment)

    def update_appointment(
        self, tenant_id: str, appointment_id: int, data: AppointmentUpdate
    ) -> AppointmentResponse:
        """Update notes/status, or reschedule when start_time is given"""
        tenant_id = validate_tenant_id(tenant_id)
        existing = self._get_or_404(tenant_id, appointment_id)

        if existing.status in TERMINAL_STATUSES and (data.start_time or data.status):
            raise ValidationError("Cannot modify completed, cancelled, or no-show appointments")

        resulting_status = IntervalStatus(data.status).value if data.status else existing.status

        with resource_lock(self.db, tenant_id, existing.member_id, FAMILY):
            if data.start_time:
                moved = TimeInterval(existing.start_time, existing.end_time).shift_by(
                    data.start_time - existing.start_time
                )
                # Only intervals that stay active can collide
                if resulting_status in ACTIVE_STATUSES:
                    self.detector.ensure_no_conflict(
                        tenant_id, existing.member_id, moved.start, moved.end,
                        exclude_interval_id=existing.id,
                    )
                existing.start_time = moved.start
                existing.end_time = moved.end

            if data.status:
                existing.status = IntervalStatus(data.status).value
            if data.notes is not None:
                existing.notes = data.notes
            if data.internal_notes is not None:
                existing.internal_notes = data.internal_notes
            if data.cancellation_reason is not None:
                existing.cancellation_reason = data.cancellation_reason
                existing.cancelled_at = utcnow()
            if data.cancelled_by is not None:
                existing.cancelled_by = data.cancelled_by

            try:
                self.db.commit()
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to update appointment {appointment_id}: {e}")
                raise StoreError("Failed to update appointment") from e

        self.db.refresh(existing)
        self._invalidate(tenant_id)
        logger.info(f"Appointment {appointment_id} updated (org: {tenant_id})")
        return AppointmentResponse.model_validate(existing)

    def cancel_appointment(
        self, tenant_id: str, appointment_id: int, reason: str, cancelled_by: str
    ) -> AppointmentResponse:
        return self.update_appointment(
            tenant_id,
            appointment_id,
            AppointmentUpdate(
                status=IntervalStatus.CANCELLED,
                cancellation_reason=reason,
                cancelled_by=cancelled_by,
            ),
        )

    def reschedule_appointment(
        self,
        tenant_id: str,
        appointment_id: int,
        new_start_time: datetime,
        notes: Optional[str] = None,
    ) -> AppointmentResponse:
        return self.update_appointment(
            tenant_id,
            appointment_id,
            AppointmentUpdate(start_time=to_naive_utc(new_start_time), notes=notes),
        )
