import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import (
    ApprovalAction,
    ApprovalRequest,
    WorkflowDefinition,
    WorkflowInstance,
)
from coordinator.repositories.base_repository import BaseRepository
from coordinator.schemas.enums import RequestStatus


class WorkflowDefinitionRepository(BaseRepository[WorkflowDefinition]):
    """Repository for approval workflow definitions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowDefinition)

    async def get_by_name(self, name: str) -> Optional[WorkflowDefinition]:
        query = select(WorkflowDefinition).where(WorkflowDefinition.name == name).limit(1)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_applicable(
        self, entity_type: str, case_id: Optional[uuid.UUID] = None
    ) -> Optional[WorkflowDefinition]:
        """Active definition for an entity type.

        A definition created for the case wins over the system default;
        ties go to the oldest definition.
        """
        query = select(WorkflowDefinition).where(
            WorkflowDefinition.entity_type == entity_type,
            WorkflowDefinition.active.is_(True),
        )
        if case_id is not None:
            query = query.where(
                or_(
                    WorkflowDefinition.case_id == case_id,
                    WorkflowDefinition.is_system_workflow.is_(True),
                )
            ).order_by(WorkflowDefinition.case_id.is_(None), WorkflowDefinition.created_at.asc())
        else:
            query = query.where(WorkflowDefinition.is_system_workflow.is_(True)).order_by(
                WorkflowDefinition.created_at.asc()
            )
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_definitions(
        self, entity_type: Optional[str] = None, active_only: bool = True
    ) -> List[WorkflowDefinition]:
        query = select(WorkflowDefinition)
        if entity_type is not None:
            query = query.where(WorkflowDefinition.entity_type == entity_type)
        if active_only:
            query = query.where(WorkflowDefinition.active.is_(True))
        result = await self.session.execute(query.order_by(WorkflowDefinition.name))
        return list(result.scalars().all())


class WorkflowInstanceRepository(BaseRepository[WorkflowInstance]):
    """Repository for workflow instances."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowInstance)

    async def get_history(self, entity_type: str, entity_id: uuid.UUID) -> List[WorkflowInstance]:
        query = (
            select(WorkflowInstance)
            .where(
                WorkflowInstance.entity_type == entity_type,
                WorkflowInstance.entity_id == entity_id,
            )
            .order_by(WorkflowInstance.initiated_at.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())


class ApprovalRequestRepository(BaseRepository[ApprovalRequest]):
    """Repository for per-approver approval requests."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ApprovalRequest)

    async def get_pending(
        self, instance_id: uuid.UUID, approver_id: str
    ) -> Optional[ApprovalRequest]:
        """The approver's single pending request on an instance, if any."""
        query = select(ApprovalRequest).where(
            ApprovalRequest.workflow_instance_id == instance_id,
            ApprovalRequest.approver_id == approver_id,
            ApprovalRequest.status == RequestStatus.PENDING.value,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_instance(
        self,
        instance_id: uuid.UUID,
        status: Optional[str] = None,
        step_number: Optional[int] = None,
    ) -> List[ApprovalRequest]:
        query = select(ApprovalRequest).where(ApprovalRequest.workflow_instance_id == instance_id)
        if status is not None:
            query = query.where(ApprovalRequest.status == status)
        if step_number is not None:
            query = query.where(ApprovalRequest.step_number == step_number)
        query = query.order_by(ApprovalRequest.step_number, ApprovalRequest.created_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_pending(
        self, instance_id: uuid.UUID, step_number: Optional[int] = None
    ) -> int:
        query = select(func.count()).select_from(ApprovalRequest).where(
            ApprovalRequest.workflow_instance_id == instance_id,
            ApprovalRequest.status == RequestStatus.PENDING.value,
        )
        if step_number is not None:
            query = query.where(ApprovalRequest.step_number == step_number)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def get_pending_for_approver(self, approver_id: str) -> List[ApprovalRequest]:
        """Pending requests for an approver, earliest deadline first, open-ended last."""
        query = (
            select(ApprovalRequest)
            .where(
                ApprovalRequest.approver_id == approver_id,
                ApprovalRequest.status == RequestStatus.PENDING.value,
            )
            .order_by(
                ApprovalRequest.deadline.is_(None),
                ApprovalRequest.deadline.asc(),
                ApprovalRequest.created_at.asc(),
            )
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_expired(self, now: datetime) -> List[ApprovalRequest]:
        query = (
            select(ApprovalRequest)
            .where(
                ApprovalRequest.status == RequestStatus.PENDING.value,
                ApprovalRequest.deadline.is_not(None),
                ApprovalRequest.deadline < now,
            )
            .order_by(ApprovalRequest.deadline.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def reassign(
        self,
        request_id: uuid.UUID,
        current_approver: str,
        new_approver: str,
        original_approver: str,
    ) -> bool:
        """Move a pending request to another approver if it is still theirs to move."""
        try:
            statement = (
                update(ApprovalRequest)
                .where(
                    ApprovalRequest.id == request_id,
                    ApprovalRequest.approver_id == current_approver,
                    ApprovalRequest.status == RequestStatus.PENDING.value,
                )
                .values(approver_id=new_approver, original_approver_id=original_approver)
            )
            result = await self.session.execute(statement)
            await self.session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error reassigning approval request {request_id}: {str(e)}", exc_info=True)
            raise

    async def delete_pending(self, instance_id: uuid.UUID) -> int:
        """Remove every still-pending request of an instance."""
        try:
            statement = (
                delete(ApprovalRequest)
                .where(
                    ApprovalRequest.workflow_instance_id == instance_id,
                    ApprovalRequest.status == RequestStatus.PENDING.value,
                )
                .execution_options(synchronize_session="fetch")
            )
            result = await self.session.execute(statement)
            await self.session.commit()
            return result.rowcount
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error deleting pending requests for {instance_id}: {str(e)}", exc_info=True)
            raise


class ApprovalActionRepository(BaseRepository[ApprovalAction]):
    """Append-only log of approver decisions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ApprovalAction)

    async def list_for_instance(self, instance_id: uuid.UUID) -> List[ApprovalAction]:
        query = (
            select(ApprovalAction)
            .where(ApprovalAction.workflow_instance_id == instance_id)
            .order_by(ApprovalAction.created_at.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
