"""
Conflict detection for committed intervals of a single resource.

The detector is read-only. Callers that write must run the check and the
write under ``resource_lock`` so two requests cannot both pass the check
before either commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from ...shared.errors import ConflictError
from .intervals import TimeInterval, overlaps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommittedInterval:
    """A persisted, active time range bound to one resource"""

    id: Optional[int]
    start: datetime
    end: datetime
    status: Optional[str] = None
    label: str = ""

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)


class IntervalStore(Protocol):
    def find_active_intervals(
        self,
        tenant_id: str,
        resource_id: int,
        window: TimeInterval,
        exclude_id: Optional[int] = None,
    ) -> Sequence[CommittedInterval]:
        """Active-status intervals of the resource that may overlap ``window``"""
        ...


def first_conflict(
    candidate: TimeInterval, existing: Iterable[CommittedInterval]
) -> Optional[CommittedInterval]:
    """Return the earliest existing interval that overlaps the candidate"""
    for item in sorted(existing, key=lambda i: (i.start, i.end)):
        if overlaps(candidate, item.interval):
            return item
    return None


class ConflictDetector:
    """Decides whether a candidate interval collides with a resource's commitments"""

    def __init__(self, store: IntervalStore, subject: str = "appointment"):
        self.store = store
        self.subject = subject

    def find_conflict(
        self,
        tenant_id: str,
        resource_id: int,
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_interval_id: Optional[int] = None,
    ) -> Optional[CommittedInterval]:
        candidate = TimeInterval(candidate_start, candidate_end)
        existing = self.store.find_active_intervals(
            tenant_id, resource_id, candidate, exclude_id=exclude_interval_id
        )
        return first_conflict(candidate, existing)

    def has_conflict(
        self,
        tenant_id: str,
        resource_id: int,
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_interval_id: Optional[int] = None,
    ) -> bool:
        return (
            self.find_conflict(
                tenant_id, resource_id, candidate_start, candidate_end, exclude_interval_id
            )
            is not None
        )

    def ensure_no_conflict(
        self,
        tenant_id: str,
        resource_id: int,
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_interval_id: Optional[int] = None,
    ) -> None:
        """Raise ConflictError naming the first conflicting interval's start"""
        conflict = self.find_conflict(
            tenant_id, resource_id, candidate_start, candidate_end, exclude_interval_id
        )
        if conflict is None:
            return

        logger.info(
            f"⛔ {self.subject.capitalize()} conflict for member {resource_id} "
            f"({candidate_start.isoformat()} - {candidate_end.isoformat()}) "
            f"with #{conflict.id} at {conflict.start.isoformat()}"
        )
        described = f' "{conflict.label}"' if conflict.label else ""
        raise ConflictError(
            f"Member is not available at this time. Conflicting {self.subject}{described} at "
            f"{conflict.start.strftime('%Y-%m-%d %H:%M')}",
            conflicting_start=conflict.start,
            conflicting_end=conflict.end,
            conflicting_id=conflict.id,
        )
