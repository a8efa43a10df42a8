import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import AgentDependency
from coordinator.repositories.base_repository import BaseRepository
from coordinator.schemas.enums import DependencyStatus

# Statuses that still gate downstream work
UNSATISFIED_STATUSES = (DependencyStatus.PENDING.value, DependencyStatus.BLOCKED.value)


class DependencyRepository(BaseRepository[AgentDependency]):
    """Repository for agent-to-agent dependencies."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AgentDependency)

    async def get_pending_for(
        self, target_agent: str, case_id: Optional[uuid.UUID] = None
    ) -> List[AgentDependency]:
        query = select(AgentDependency).where(
            AgentDependency.target_agent == target_agent,
            AgentDependency.status == DependencyStatus.PENDING.value,
        )
        if case_id is not None:
            query = query.where(AgentDependency.case_id == case_id)
        query = query.order_by(AgentDependency.created_at.asc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_unsatisfied(self, entity_type: str, entity_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(AgentDependency).where(
            AgentDependency.source_entity_type == entity_type,
            AgentDependency.source_entity_id == entity_id,
            AgentDependency.status.in_(UNSATISFIED_STATUSES),
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_active(self, case_id: uuid.UUID) -> int:
        return await self.count({"case_id": case_id, "status": DependencyStatus.PENDING.value})
