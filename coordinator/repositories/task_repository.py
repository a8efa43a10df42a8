import uuid
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import CollaborativeTask
from coordinator.repositories.base_repository import BaseRepository
from coordinator.schemas.enums import TaskStatus

ACTIVE_TASK_STATUSES = (TaskStatus.INITIALIZED.value, TaskStatus.IN_PROGRESS.value)


class TaskRepository(BaseRepository[CollaborativeTask]):
    """Repository for collaborative tasks."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CollaborativeTask)

    async def get_active(self, case_id: uuid.UUID) -> List[CollaborativeTask]:
        query = (
            select(CollaborativeTask)
            .where(
                CollaborativeTask.case_id == case_id,
                CollaborativeTask.status.in_(ACTIVE_TASK_STATUSES),
            )
            .order_by(CollaborativeTask.created_at.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_active(self, case_id: uuid.UUID) -> int:
        query = select(func.count()).select_from(CollaborativeTask).where(
            CollaborativeTask.case_id == case_id,
            CollaborativeTask.status.in_(ACTIVE_TASK_STATUSES),
        )
        result = await self.session.execute(query)
        return result.scalar_one()
