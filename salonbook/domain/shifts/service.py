"""Shift service - Shift CRUD, recurring series, weekly schedules and stats"""

import logging
import math
from datetime import date, timedelta
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...cache import CacheCoordinator, CacheFamily, CacheTTL
from ...models import ACTIVE_STATUSES, TERMINAL_STATUSES, IntervalStatus, Shift
from ...shared.errors import NotFoundError, StoreError, ValidationError
from ...shared.validators import minutes_between, parse_clock_time, parse_date, validate_tenant_id
from ..members.repository import MemberRepository
from ..scheduling.conflicts import ConflictDetector
from ..scheduling.filters import ShiftFilters
from ..scheduling.intervals import ClockRange, TimeInterval
from ..scheduling.locking import resource_lock
from ..scheduling.recurrence import RecurrenceRule, expand, expand_by_weekday
from ..scheduling.working_hours import parse_breaks
from .repository import ShiftRepository
from .schemas import (
    BreakPeriod,
    DaySchedule,
    OccurrenceFailure,
    RecurringShiftResult,
    ShiftCreate,
    ShiftPage,
    ShiftResponse,
    ShiftStats,
    ShiftUpdate,
    WeeklySchedule,
)

logger = logging.getLogger(__name__)

FAMILY = CacheFamily.SHIFT.value

MIN_SHIFT_MINUTES = 30
MAX_SHIFT_MINUTES = 12 * 60
DEFAULT_COLOR = "#3B82F6"


def validate_shift_times(start_time: str, end_time: str) -> None:
    """Shifts run 30 minutes to 12 hours within one day"""
    start = parse_clock_time(start_time)
    end = parse_clock_time(end_time)
    length = minutes_between(start, end)

    if length <= 0:
        raise ValidationError("Start time must be before end time")
    if length < MIN_SHIFT_MINUTES:
        raise ValidationError("Shift must be at least 30 minutes long")
    if length > MAX_SHIFT_MINUTES:
        raise ValidationError("Shift cannot be longer than 12 hours")


def validate_breaks(breaks: list[BreakPeriod], start_time: str, end_time: str) -> None:
    shift = ClockRange(parse_clock_time(start_time), parse_clock_time(end_time))
    ranges = sorted(
        (ClockRange(parse_clock_time(b.start_time), parse_clock_time(b.end_time)) for b in breaks),
        key=lambda r: r.start,
    )
    for i, current in enumerate(ranges):
        if current.start < shift.start or current.end > shift.end:
            raise ValidationError("Breaks must fall within the shift")
        if i and ranges[i - 1].end > current.start:
            raise ValidationError("Breaks must not overlap")


def calculate_duration(start_time: str, end_time: str) -> float:
    """Shift length in hours"""
    return minutes_between(parse_clock_time(start_time), parse_clock_time(end_time)) / 60


def serialize_breaks(breaks: list[BreakPeriod]) -> list[dict]:
    return [b.model_dump(by_alias=True) for b in breaks]


class ShiftService:
    """Service layer for shift business logic"""

    def __init__(self, db: Session, coordinator: CacheCoordinator):
        self.db = db
        self.coordinator = coordinator
        self.repo = ShiftRepository(db)
        self.members = MemberRepository(db)
        self.detector = ConflictDetector(self.repo, subject="shift")

    def _key(self, tenant_id: str, *parts) -> str:
        return CacheCoordinator.key(CacheFamily.SHIFT, tenant_id, *parts)

    def _invalidate(self, tenant_id: str) -> None:
        self.coordinator.invalidate(tenant_id, CacheFamily.SHIFT)

    def _to_response(self, shift: Shift) -> ShiftResponse:
        parsed = parse_breaks(shift.breaks)
        if not parsed.ok:
            raise StoreError(f"Shift {shift.id} has unreadable breaks") from parsed.error
        fields = {name: getattr(shift, name) for name in ShiftResponse.model_fields if name != "breaks"}
        breaks = [
            BreakPeriod(
                start_time=b.start.strftime("%H:%M"),
                end_time=b.end.strftime("%H:%M"),
                title=b.title or None,
            )
            for b in parsed.value
        ]
        return ShiftResponse(**fields, breaks=breaks)

    def _get_or_404(self, tenant_id: str, shift_id: int) -> Shift:
        shift = self.repo.get_shift(tenant_id, shift_id)
        if not shift:
            raise NotFoundError("Shift not found")
        return shift

    def _require_member(self, tenant_id: str, member_id: int) -> None:
        if not self.members.get_member(tenant_id, member_id):
            raise NotFoundError("Member not found")

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to {action}: {e}")
            raise StoreError(f"Failed to {action}") from e

    def _build_shift(
        self, tenant_id: str, data: ShiftCreate, day: date, created_by: str, **extra
    ) -> Shift:
        return Shift(
            org_id=tenant_id,
            member_id=data.member_id,
            date=day,
            start_time=data.start_time,
            end_time=data.end_time,
            duration=calculate_duration(data.start_time, data.end_time),
            title=data.title,
            description=data.description,
            color=data.color or DEFAULT_COLOR,
            breaks=serialize_breaks(data.breaks),
            status=IntervalStatus.SCHEDULED.value,
            created_by=created_by,
            **extra,
        )

    # ==================== SHIFT CRUD OPERATIONS ====================

    def create_shift(self, tenant_id: str, data: ShiftCreate, created_by: str) -> ShiftResponse:
        tenant_id = validate_tenant_id(tenant_id)
        validate_shift_times(data.start_time, data.end_time)
        validate_breaks(data.breaks, data.start_time, data.end_time)
        self._require_member(tenant_id, data.member_id)

        candidate = TimeInterval.from_clock(data.date, data.start_time, data.end_time)
        with resource_lock(self.db, tenant_id, data.member_id, FAMILY):
            self.detector.ensure_no_conflict(
                tenant_id, data.member_id, candidate.start, candidate.end
            )
            try:
                shift = self.repo.add(self._build_shift(tenant_id, data, data.date, created_by))
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to create shift: {e}")
                raise StoreError("Failed to create shift") from e
            self._commit("create shift")

        self.db.refresh(shift)
        self._invalidate(tenant_id)
        logger.info(f"🗓️ Shift {shift.id} created for member {data.member_id} on {data.date}")
        return self._to_response(shift)

    def create_recurring_shift(
        self,
        tenant_id: str,
        data: ShiftCreate,
        rule: RecurrenceRule,
        created_by: str,
        per_weekday: bool = False,
    ) -> RecurringShiftResult:
        """
        Create a parent shift and its recurring occurrences in one transaction.

        The parent must be free or nothing is created. Each occurrence is
        checked on its own: conflicting dates are skipped and reported in
        ``failed_occurrences`` while later dates are still created.

        Args:
            per_weekday: expand WEEKLY/CUSTOM rules over ``rule.days_of_week``
                instead of the fixed 7 * interval day cadence
        """
        tenant_id = validate_tenant_id(tenant_id)
        validate_shift_times(data.start_time, data.end_time)
        validate_breaks(data.breaks, data.start_time, data.end_time)
        if rule.end_date is not None and rule.end_date < data.date:
            raise ValidationError("Recurrence end date must not be before the first shift")
        self._require_member(tenant_id, data.member_id)

        dates = expand_by_weekday(data.date, rule) if per_weekday else expand(data.date, rule)
        rule_json = rule.model_dump(mode="json")
        created: list[Shift] = []
        failed: list[OccurrenceFailure] = []

        with resource_lock(self.db, tenant_id, data.member_id, FAMILY):
            first = TimeInterval.from_clock(data.date, data.start_time, data.end_time)
            self.detector.ensure_no_conflict(tenant_id, data.member_id, first.start, first.end)

            try:
                parent = self.repo.add(
                    self._build_shift(
                        tenant_id,
                        data,
                        data.date,
                        created_by,
                        is_recurring=True,
                        recurrence_pattern=rule.pattern.value,
                        recurrence_rule=rule_json,
                        occurrence_number=0,
                    )
                )

                for number, day in enumerate(dates, start=1):
                    candidate = TimeInterval.from_clock(day, data.start_time, data.end_time)
                    conflict = self.detector.find_conflict(
                        tenant_id, data.member_id, candidate.start, candidate.end
                    )
                    if conflict is not None:
                        failed.append(
                            OccurrenceFailure(
                                date=day,
                                occurrence_number=number,
                                reason=f'Conflicts with "{conflict.label or "Untitled"}" at '
                                f"{conflict.start.strftime('%H:%M')}",
                                conflicting_start=conflict.start,
                            )
                        )
                        continue
                    created.append(
                        self.repo.add(
                            self._build_shift(
                                tenant_id,
                                data,
                                day,
                                created_by,
                                is_recurring=True,
                                recurrence_pattern=rule.pattern.value,
                                parent_shift_id=parent.id,
                                occurrence_number=number,
                            )
                        )
                    )
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to create recurring shift series: {e}")
                raise StoreError("Failed to create recurring shift") from e
            self._commit("create recurring shift")

        self._invalidate(tenant_id)
        logger.info(
            f"🔁 Recurring {rule.pattern.value} shift {parent.id} for member {data.member_id}: "
            f"{len(created) + 1} created, {len(failed)} skipped"
        )
        if failed:
            logger.warning(
                f"⚠️ Skipped occurrences for shift {parent.id}: "
                f"{', '.join(f.date.isoformat() for f in failed)}"
            )
        return RecurringShiftResult(
            parent_shift=self._to_response(parent),
            recurring_shifts=[self._to_response(s) for s in created],
            failed_occurrences=failed,
        )

    def get_shift(self, tenant_id: str, shift_id: int) -> ShiftResponse:
        tenant_id = validate_tenant_id(tenant_id)
        return self.coordinator.get_or_compute(
            self._key(tenant_id, "id", shift_id),
            CacheTTL.DETAIL,
            lambda: self._to_response(self._get_or_404(tenant_id, shift_id)),
            encode=lambda r: r.model_dump(mode="json", by_alias=True),
            decode=ShiftResponse.model_validate,
        )

    def list_shifts(
        self,
        tenant_id: str,
        filters: Optional[ShiftFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> ShiftPage:
        tenant_id = validate_tenant_id(tenant_id)
        filters = filters or ShiftFilters()
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        def compute() -> ShiftPage:
            items, total = self.repo.list_shifts(
                tenant_id, filters, skip=(page - 1) * limit, limit=limit
            )
            return ShiftPage(
                items=[self._to_response(s) for s in items],
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit) if total else 0,
            )

        return self.coordinator.get_or_compute(
            self._key(tenant_id, "list", filters.cache_discriminator(), page, limit),
            CacheTTL.LIST,
            compute,
            encode=lambda p: p.model_dump(mode="json", by_alias=True),
            decode=ShiftPage.model_validate,
        )

    def update_shift(
        self, tenant_id: str, shift_id: int, data: ShiftUpdate, updated_by: str
    ) -> ShiftResponse:
        tenant_id = validate_tenant_id(tenant_id)
        shift = self._get_or_404(tenant_id, shift_id)

        new_date = data.date or shift.date
        new_start = data.start_time or shift.start_time
        new_end = data.end_time or shift.end_time
        times_changed = data.date is not None or data.start_time is not None or data.end_time is not None

        if times_changed:
            validate_shift_times(new_start, new_end)
        if data.breaks is not None:
            validate_breaks(data.breaks, new_start, new_end)
        elif times_changed:
            validate_breaks(self._to_response(shift).breaks or [], new_start, new_end)

        # A cancelled or finished shift coming back must not overlap what replaced it
        reactivating = (
            data.status is not None
            and IntervalStatus(data.status).value in ACTIVE_STATUSES
            and shift.status in TERMINAL_STATUSES
        )

        with resource_lock(self.db, tenant_id, shift.member_id, FAMILY):
            resulting_status = IntervalStatus(data.status).value if data.status else shift.status
            if resulting_status in ACTIVE_STATUSES and (times_changed or reactivating):
                candidate = TimeInterval.from_clock(new_date, new_start, new_end)
                self.detector.ensure_no_conflict(
                    tenant_id, shift.member_id, candidate.start, candidate.end,
                    exclude_interval_id=shift.id,
                )
            if times_changed:
                shift.date = new_date
                shift.start_time = new_start
                shift.end_time = new_end
                shift.duration = calculate_duration(new_start, new_end)

            if data.title is not None:
                shift.title = data.title
            if data.description is not None:
                shift.description = data.description
            if data.color:
                shift.color = data.color
            if data.status:
                shift.status = IntervalStatus(data.status).value
            if data.breaks is not None:
                shift.breaks = serialize_breaks(data.breaks)

            self._commit("update shift")

        self.db.refresh(shift)
        self._invalidate(tenant_id)
        logger.info(f"Shift {shift_id} updated by {updated_by}")
        return self._to_response(shift)

    def delete_shift(self, tenant_id: str, shift_id: int) -> dict:
        """Delete a shift; deleting a recurring parent deletes its occurrences too"""
        tenant_id = validate_tenant_id(tenant_id)
        shift = self._get_or_404(tenant_id, shift_id)
        child_count = len(shift.children) if shift.parent_shift_id is None else 0

        with resource_lock(self.db, tenant_id, shift.member_id, FAMILY):
            try:
                self.repo.delete(shift)
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to delete shift {shift_id}: {e}")
                raise StoreError("Failed to delete shift") from e
            self._commit("delete shift")

        self._invalidate(tenant_id)
        logger.info(f"🗑️ Shift {shift_id} deleted ({child_count} occurrences removed)")
        return {"success": True, "deleted_occurrences": child_count}

    # ==================== SCHEDULES & STATS ====================

    def get_weekly_schedule(
        self, tenant_id: str, week_start: Union[str, date], member_id: Optional[int] = None
    ) -> WeeklySchedule:
        tenant_id = validate_tenant_id(tenant_id)
        start = parse_date(week_start)
        end = start + timedelta(days=6)

        def compute() -> WeeklySchedule:
            shifts = self.repo.find_shifts(
                tenant_id, ShiftFilters(member_id=member_id, start_date=start, end_date=end)
            )
            days = []
            for offset in range(7):
                day = start + timedelta(days=offset)
                day_shifts = [s for s in shifts if s.date == day]
                days.append(
                    DaySchedule(
                        date=day,
                        day_name=day.strftime("%A"),
                        shifts=[self._to_response(s) for s in day_shifts],
                        total_hours=sum(calculate_duration(s.start_time, s.end_time) for s in day_shifts),
                    )
                )
            return WeeklySchedule(week_start=start, week_end=end, days=days)

        return self.coordinator.get_or_compute(
            self._key(tenant_id, "week", start.isoformat(), member_id or "all"),
            CacheTTL.LIST,
            compute,
            encode=lambda w: w.model_dump(mode="json", by_alias=True),
            decode=WeeklySchedule.model_validate,
        )

    def get_shift_stats(
        self,
        tenant_id: str,
        member_id: Optional[int] = None,
        start_date: Union[str, date, None] = None,
        end_date: Union[str, date, None] = None,
    ) -> ShiftStats:
        tenant_id = validate_tenant_id(tenant_id)
        filters = ShiftFilters(
            member_id=member_id,
            start_date=parse_date(start_date) if start_date else None,
            end_date=parse_date(end_date) if end_date else None,
        )

        def compute() -> ShiftStats:
            stats = ShiftStats()
            counters = {
                IntervalStatus.SCHEDULED.value: "scheduled_shifts",
                IntervalStatus.CONFIRMED.value: "confirmed_shifts",
                IntervalStatus.IN_PROGRESS.value: "in_progress_shifts",
                IntervalStatus.COMPLETED.value: "completed_shifts",
                IntervalStatus.CANCELLED.value: "cancelled_shifts",
                IntervalStatus.NO_SHOW.value: "no_show_shifts",
            }
            for shift in self.repo.find_shifts(tenant_id, filters):
                stats.total_shifts += 1
                stats.total_hours += calculate_duration(shift.start_time, shift.end_time)
                field = counters.get(shift.status)
                if field:
                    setattr(stats, field, getattr(stats, field) + 1)
            if stats.total_shifts:
                stats.average_shift_duration = stats.total_hours / stats.total_shifts
            return stats

        return self.coordinator.get_or_compute(
            self._key(tenant_id, "stats", filters.cache_discriminator()),
            CacheTTL.LIST,
            compute,
            encode=lambda s: s.model_dump(mode="json"),
            decode=ShiftStats.model_validate,
        )

