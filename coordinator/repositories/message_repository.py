import uuid
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import AgentMessage
from coordinator.repositories.base_repository import BaseRepository
from coordinator.schemas.enums import PRIORITY_RANK, MessageStatus
from coordinator.schemas.messages import MessageFilter

# Unknown priorities sort after every known one
_PRIORITY_ORDER = case(PRIORITY_RANK, value=AgentMessage.priority, else_=len(PRIORITY_RANK))


class MessageRepository(BaseRepository[AgentMessage]):
    """Repository for inter-agent messages."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AgentMessage)

    async def get_pending(
        self,
        to_agent: str,
        case_id: Optional[uuid.UUID] = None,
        limit: int = 50,
    ) -> List[AgentMessage]:
        """Pending messages for a recipient, most urgent and oldest first."""
        query = select(AgentMessage).where(
            AgentMessage.to_agent == to_agent,
            AgentMessage.status == MessageStatus.PENDING.value,
        )
        if case_id is not None:
            query = query.where(AgentMessage.case_id == case_id)
        query = query.order_by(_PRIORITY_ORDER, AgentMessage.created_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def search(self, filter: MessageFilter, limit: int = 100) -> List[AgentMessage]:
        """Messages matching every set filter field, newest first."""
        query = select(AgentMessage)
        if filter.case_id is not None:
            query = query.where(AgentMessage.case_id == filter.case_id)
        if filter.from_agent:
            query = query.where(AgentMessage.from_agent == filter.from_agent)
        if filter.to_agent:
            query = query.where(AgentMessage.to_agent == filter.to_agent)
        if filter.message_type is not None:
            query = query.where(AgentMessage.message_type == filter.message_type.value)
        if filter.status is not None:
            query = query.where(AgentMessage.status == filter.status.value)
        if filter.priority is not None:
            query = query.where(AgentMessage.priority == filter.priority.value)
        if filter.correlation_id is not None:
            query = query.where(AgentMessage.correlation_id == filter.correlation_id)
        if filter.since is not None:
            query = query.where(AgentMessage.created_at >= filter.since)
        query = query.order_by(AgentMessage.created_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_conversation(self, correlation_id: uuid.UUID) -> List[AgentMessage]:
        """The originating message plus every message correlated to it."""
        query = (
            select(AgentMessage)
            .where(
                or_(
                    AgentMessage.id == correlation_id,
                    AgentMessage.correlation_id == correlation_id,
                )
            )
            .order_by(AgentMessage.created_at.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_case(self, case_id: uuid.UUID, status: Optional[str] = None) -> int:
        filters = {"case_id": case_id}
        if status is not None:
            filters["status"] = status
        return await self.count(filters)

    async def type_breakdown(self, case_id: uuid.UUID) -> Dict[str, int]:
        query = (
            select(AgentMessage.message_type, func.count())
            .where(AgentMessage.case_id == case_id)
            .group_by(AgentMessage.message_type)
        )
        result = await self.session.execute(query)
        return {message_type: count for message_type, count in result.all()}
