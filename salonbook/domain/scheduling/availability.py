"""
Bookable slot generation for a member on one calendar date.

Slots are derived on demand and never stored. A short-lived cache entry per
(tenant, member, date, duration, granularity) may serve repeat requests; it
is dropped whenever the tenant's appointments or members change.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Protocol, Union

from ... import config
from ...cache import CacheCoordinator, CacheFamily, CacheTTL
from ...shared.validators import parse_date, validate_duration, validate_tenant_id
from .conflicts import CommittedInterval, IntervalStore, first_conflict
from .intervals import TimeInterval
from .working_hours import WorkingWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool

    def to_dict(self) -> dict:
        return {
            "startTime": self.start.isoformat(),
            "endTime": self.end.isoformat(),
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Slot":
        return cls(
            datetime.fromisoformat(data["startTime"]),
            datetime.fromisoformat(data["endTime"]),
            bool(data["available"]),
        )


class WorkingWindowSource(Protocol):
    def find_working_window(self, tenant_id: str, resource_id: int) -> WorkingWindow:
        """Raise NotFoundError for unknown members, StoreError for unreadable hours"""
        ...


class AvailabilityComputer:
    def __init__(
        self,
        intervals: IntervalStore,
        windows: WorkingWindowSource,
        coordinator: Optional[CacheCoordinator] = None,
        default_granularity: timedelta = timedelta(minutes=config.DEFAULT_SLOT_MINUTES),
    ):
        self.intervals = intervals
        self.windows = windows
        self.coordinator = coordinator
        self.default_granularity = default_granularity

    @staticmethod
    def cache_key(
        tenant_id: str, resource_id: int, day: date, duration: timedelta, granularity: timedelta
    ) -> str:
        return CacheCoordinator.key(
            CacheFamily.APPOINTMENT,
            tenant_id,
            "availability",
            resource_id,
            day.isoformat(),
            int(duration.total_seconds() // 60),
            int(granularity.total_seconds() // 60),
        )

    def compute_slots(
        self,
        tenant_id: str,
        resource_id: int,
        day: Union[str, date],
        service_duration: Union[int, timedelta],
        slot_granularity: Union[int, timedelta, None] = None,
        use_cache: bool = True,
    ) -> tuple[Slot, ...]:
        """
        Compute ordered slots for one day.

        Args:
            tenant_id: Organization the member belongs to
            resource_id: Member id
            day: Calendar date (YYYY-MM-DD or date)
            service_duration: Minutes or timedelta each slot must cover
            slot_granularity: Step between slot starts (default 30 minutes)
            use_cache: False bypasses the cache for both read and write

        Returns:
            Slots in start order; empty when the member does not work that day
            or the service does not fit in the working window.
        """
        tenant_id = validate_tenant_id(tenant_id)
        day = parse_date(day)
        duration = validate_duration(service_duration, "service duration")
        granularity = validate_duration(
            slot_granularity if slot_granularity is not None else self.default_granularity,
            "slot granularity",
        )

        def compute() -> tuple[Slot, ...]:
            return self._compute(tenant_id, resource_id, day, duration, granularity)

        if not use_cache or self.coordinator is None:
            return compute()

        return self.coordinator.get_or_compute(
            self.cache_key(tenant_id, resource_id, day, duration, granularity),
            CacheTTL.AVAILABILITY,
            compute,
            encode=lambda slots: [s.to_dict() for s in slots],
            decode=lambda items: tuple(Slot.from_dict(item) for item in items),
        )

    def _compute(
        self,
        tenant_id: str,
        resource_id: int,
        day: date,
        duration: timedelta,
        granularity: timedelta,
    ) -> tuple[Slot, ...]:
        window = self.windows.find_working_window(tenant_id, resource_id)
        day_window = window.for_day(day)
        if day_window is None:
            logger.debug(f"Member {resource_id} does not work on {day.isoformat()}")
            return ()

        working = day_window.hours.on(day)
        if duration > working.duration:
            return ()

        # Breaks block like commitments that have no status
        blocking = list(self.intervals.find_active_intervals(tenant_id, resource_id, working))
        blocking.extend(
            CommittedInterval(None, b.on(day).start, b.on(day).end, label=b.title or "Break")
            for b in day_window.breaks
        )

        slots = []
        start = working.start
        while start < working.end:
            end = start + duration
            if end > working.end:
                break
            candidate = TimeInterval(start, end)
            slots.append(Slot(start, end, first_conflict(candidate, blocking) is None))
            start += granularity

        logger.debug(
            f"📅 Computed {len(slots)} slots for member {resource_id} on {day.isoformat()}"
        )
        return tuple(slots)
