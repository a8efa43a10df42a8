import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import AuditEntry, CaseAccess
from coordinator.repositories.base_repository import BaseRepository


class CaseAccessRepository(BaseRepository[CaseAccess]):
    """Role membership of identities on cases."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CaseAccess)

    async def grant(self, case_id: uuid.UUID, user_id: str, role: str) -> CaseAccess:
        """Grant a role, returning the existing membership if already held."""
        query = select(CaseAccess).where(
            CaseAccess.case_id == case_id,
            CaseAccess.user_id == user_id,
            CaseAccess.role == role,
        )
        result = await self.session.execute(query)
        existing = result.scalar_one_or_none()
        if existing:
            return existing
        return await self.create(case_id=case_id, user_id=user_id, role=role)

    async def get_members(self, case_id: uuid.UUID, role: str) -> List[str]:
        query = (
            select(CaseAccess.user_id)
            .where(CaseAccess.case_id == case_id, CaseAccess.role == role)
            .distinct()
            .order_by(CaseAccess.user_id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())


class AuditEntryRepository(BaseRepository[AuditEntry]):
    """Read access to the audit trail."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AuditEntry)

    async def list_for_case(
        self, case_id: uuid.UUID, action_type: Optional[str] = None
    ) -> List[AuditEntry]:
        query = select(AuditEntry).where(AuditEntry.case_id == case_id)
        if action_type is not None:
            query = query.where(AuditEntry.action_type == action_type)
        result = await self.session.execute(query.order_by(AuditEntry.created_at.asc()))
        return list(result.scalars().all())
