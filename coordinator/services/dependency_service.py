"""Dependency graph between agents' outputs."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.events import EventChannel
from coordinator.core.exceptions import (
    DependencyNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from coordinator.database.models import AgentDependency
from coordinator.repositories.dependency_repository import (
    UNSATISFIED_STATUSES,
    DependencyRepository,
)
from coordinator.schemas.enums import (
    DependencyStatus,
    DependencyType,
    EntityKind,
    MessagePriority,
    MessageType,
)
from coordinator.schemas.events import EventKind
from coordinator.services.base_service import BaseService
from coordinator.services.message_bus import MessageBusService
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, utc_now

LOGGER = get_logger(__name__)


class DependencyService(BaseService):
    """Records that one agent's output blocks another agent's progress.

    Creation notifies the target agent and resolution notifies the source
    agent, each through exactly one bus message.
    """

    def __init__(
        self,
        session: AsyncSession,
        message_bus: Optional[MessageBusService] = None,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(session, events=events, clock=clock)
        self.dependency_repo = DependencyRepository(session)
        self.message_bus = message_bus or MessageBusService(session, events=events, clock=clock)

    async def create(
        self,
        case_id: UUID,
        source_agent: str,
        target_agent: str,
        dependency_type: DependencyType,
        source_entity_type: EntityKind,
        source_entity_id: UUID,
    ) -> AgentDependency:
        """Record a dependency and tell the target agent about it."""
        return await self.execute(
            self._create,
            case_id,
            source_agent,
            target_agent,
            dependency_type,
            source_entity_type,
            source_entity_id,
        )

    async def _create(
        self,
        case_id: UUID,
        source_agent: str,
        target_agent: str,
        dependency_type: DependencyType,
        source_entity_type: EntityKind,
        source_entity_id: UUID,
    ) -> AgentDependency:
        if source_agent == target_agent:
            raise ValidationError(f"Agent {source_agent} cannot depend on itself")
        dependency_type = DependencyType(dependency_type)
        source_entity_type = EntityKind(source_entity_type)

        LOGGER.info(
            f"Creating {dependency_type.value} dependency {source_agent} -> {target_agent} "
            f"on {source_entity_type.value} {source_entity_id}"
        )
        dependency = await self.dependency_repo.create(
            case_id=case_id,
            source_agent=source_agent,
            target_agent=target_agent,
            dependency_type=dependency_type.value,
            source_entity_type=source_entity_type.value,
            source_entity_id=source_entity_id,
            status=DependencyStatus.PENDING.value,
            created_at=self.clock(),
        )

        await self.message_bus.send(
            source_agent,
            target_agent,
            case_id,
            MessageType.DEPENDENCY_UPDATE,
            f"New dependency: {dependency_type.value}",
            {
                "dependency_id": dependency.id,
                "dependency_type": dependency_type.value,
                "source_entity_type": source_entity_type.value,
                "source_entity_id": source_entity_id,
            },
            MessagePriority.HIGH,
        )
        return dependency

    async def resolve(
        self,
        dependency_id: UUID,
        target_entity_type: EntityKind,
        target_entity_id: UUID,
        resolution_data: Optional[Dict[str, Any]] = None,
    ) -> AgentDependency:
        """Mark a dependency satisfied and hand the result back to its source agent."""
        return await self.execute(
            self._resolve, dependency_id, target_entity_type, target_entity_id, resolution_data
        )

    async def _resolve(
        self,
        dependency_id: UUID,
        target_entity_type: EntityKind,
        target_entity_id: UUID,
        resolution_data: Optional[Dict[str, Any]],
    ) -> AgentDependency:
        target_entity_type = EntityKind(target_entity_type)
        resolution = to_jsonable_python(resolution_data or {})

        dependency = await self._transition(
            dependency_id,
            DependencyStatus.SATISFIED,
            target_entity_type=target_entity_type.value,
            target_entity_id=target_entity_id,
            resolution_data=resolution,
            resolved_at=self.clock(),
        )

        await self.message_bus.send(
            dependency.target_agent,
            dependency.source_agent,
            dependency.case_id,
            MessageType.DEPENDENCY_UPDATE,
            "Dependency resolved",
            {
                "dependency_id": dependency.id,
                "target_entity_type": target_entity_type.value,
                "target_entity_id": target_entity_id,
                "resolution_data": resolution,
            },
            MessagePriority.NORMAL,
        )
        self.emit(
            EventKind.DEPENDENCY_RESOLVED,
            dependency.case_id,
            dependency_id=str(dependency.id),
            source_agent=dependency.source_agent,
            target_agent=dependency.target_agent,
        )
        return dependency

    async def block(self, dependency_id: UUID, reason: str) -> AgentDependency:
        return await self.execute(
            self._transition, dependency_id, DependencyStatus.BLOCKED, status_reason=reason
        )

    async def cancel(self, dependency_id: UUID, reason: Optional[str] = None) -> AgentDependency:
        return await self.execute(
            self._transition,
            dependency_id,
            DependencyStatus.CANCELLED,
            status_reason=reason,
            resolved_at=self.clock(),
        )

    async def _transition(
        self, dependency_id: UUID, target: DependencyStatus, **values: Any
    ) -> AgentDependency:
        # Satisfied and cancelled are terminal
        updated = await self.dependency_repo.update_if_status(
            dependency_id, UNSATISFIED_STATUSES, status=target.value, **values
        )
        dependency = await self._get(dependency_id)
        if not updated:
            raise InvalidStatusTransitionError(
                "Dependency", dependency_id, dependency.status, target.value
            )
        LOGGER.info(f"Dependency {dependency_id} -> {target.value}")
        return dependency

    async def get(self, dependency_id: UUID) -> AgentDependency:
        return await self.execute(self._get, dependency_id)

    async def _get(self, dependency_id: UUID) -> AgentDependency:
        dependency = await self.dependency_repo.get_by_id(dependency_id)
        if not dependency:
            raise DependencyNotFoundError(f"Dependency not found: {dependency_id}")
        return dependency

    async def pending_for(
        self, target_agent: str, case_id: Optional[UUID] = None
    ) -> List[AgentDependency]:
        """Pending dependencies the agent is expected to satisfy, oldest first."""
        return await self.execute(self.dependency_repo.get_pending_for, target_agent, case_id)

    async def has_unsatisfied(self, entity_type: EntityKind, entity_id: UUID) -> bool:
        """Whether work on the entity is still gated by a pending or blocked dependency."""
        count = await self.execute(
            self.dependency_repo.count_unsatisfied, EntityKind(entity_type).value, entity_id
        )
        return count > 0
