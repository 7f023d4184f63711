"""Member service - working-hours maintenance that feeds availability"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...cache import CacheCoordinator, CacheFamily, CacheTTL
from ...models import Member
from ...shared.errors import NotFoundError, StoreError, ValidationError
from ...shared.validators import validate_tenant_id
from ..scheduling.working_hours import parse_working_hours, serialize_working_hours
from .repository import MemberRepository

logger = logging.getLogger(__name__)


class MemberService:
    def __init__(self, db: Session, coordinator: CacheCoordinator):
        self.db = db
        self.coordinator = coordinator
        self.repo = MemberRepository(db)

    def get_member(self, tenant_id: str, member_id: int) -> Member:
        tenant_id = validate_tenant_id(tenant_id)
        member = self.repo.get_member(tenant_id, member_id)
        if not member:
            raise NotFoundError("Member not found")
        return member

    def get_working_hours(self, tenant_id: str, member_id: int) -> dict:
        """Normalized per-weekday working hours, cached for an hour"""
        tenant_id = validate_tenant_id(tenant_id)
        key = CacheCoordinator.key(CacheFamily.MEMBER, tenant_id, "working-hours", member_id)
        return self.coordinator.get_or_compute(
            key,
            CacheTTL.DETAIL,
            lambda: serialize_working_hours(self.repo.find_working_window(tenant_id, member_id)),
        )

    def update_working_hours(
        self, tenant_id: str, member_id: int, working_hours: Optional[dict], updated_by: str
    ) -> Member:
        """Replace a member's working hours; availability views are dropped"""
        tenant_id = validate_tenant_id(tenant_id)
        parsed = parse_working_hours(working_hours)
        if not parsed.ok:
            raise ValidationError(parsed.error.message) from parsed.error

        member = self.get_member(tenant_id, member_id)
        try:
            member = self.repo.update_working_hours(member, working_hours)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update working hours for member {member_id}: {e}")
            raise StoreError("Failed to update working hours") from e

        # Availability is derived from working hours, so appointments go too
        self.coordinator.invalidate(tenant_id, CacheFamily.MEMBER, CacheFamily.APPOINTMENT)
        logger.info(f"🕘 Working hours updated for member {member_id} by {updated_by}")
        return member
