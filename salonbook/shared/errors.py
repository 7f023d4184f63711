"""Scheduling error taxonomy shared by every domain service"""

from datetime import datetime
from typing import Optional


class SchedulingError(Exception):
    """Base error for the scheduling engine"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Input rejected before any store access"""

    status_code = 400


class NotFoundError(SchedulingError):
    """Referenced record does not exist or belongs to another tenant"""

    status_code = 404


class ConflictError(SchedulingError):
    """Candidate interval overlaps an existing active interval"""

    status_code = 409

    def __init__(
        self,
        message: str,
        conflicting_start: datetime,
        conflicting_end: Optional[datetime] = None,
        conflicting_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.conflicting_start = conflicting_start
        self.conflicting_end = conflicting_end
        self.conflicting_id = conflicting_id


class StoreError(SchedulingError):
    """Persistence failure or unreadable stored data"""

    status_code = 500
