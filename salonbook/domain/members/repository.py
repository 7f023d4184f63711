"""Member repository - Database operations for members and the services they provide"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Member, MemberService, Service
from ...shared.errors import NotFoundError
from ..scheduling.working_hours import WorkingWindow, parse_working_hours


class MemberRepository:
    """Repository for member lookups used by the scheduling engine"""

    def __init__(self, db: Session):
        self.db = db

    def get_member(self, tenant_id: str, member_id: int) -> Optional[Member]:
        return (
            self.db.query(Member)
            .filter(Member.id == member_id, Member.org_id == tenant_id)
            .first()
        )

    def get_service(self, tenant_id: str, service_id: int) -> Optional[Service]:
        return (
            self.db.query(Service)
            .filter(Service.id == service_id, Service.org_id == tenant_id)
            .first()
        )

    def provides_service(self, tenant_id: str, member_id: int, service_id: int) -> bool:
        return (
            self.db.query(MemberService.id)
            .filter(
                MemberService.member_id == member_id,
                MemberService.service_id == service_id,
                MemberService.org_id == tenant_id,
            )
            .first()
            is not None
        )

    def find_working_window(self, tenant_id: str, member_id: int) -> WorkingWindow:
        """Working window of a member; unreadable stored hours raise StoreError"""
        member = self.get_member(tenant_id, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        parsed = parse_working_hours(member.working_hours)
        if not parsed.ok:
            raise parsed.error
        return parsed.value

    def update_working_hours(self, member: Member, working_hours: Optional[dict]) -> Member:
        member.working_hours = working_hours
        self.db.commit()
        self.db.refresh(member)
        return member
