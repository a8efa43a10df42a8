"""Inter-agent message bus.

Messages are durable rows; ``pending`` always reads the store. The event
published on send is only a hint for live observers.
"""

from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.config import settings
from coordinator.core.events import EventChannel
from coordinator.core.exceptions import (
    InvalidStatusTransitionError,
    MessageNotFoundError,
    ValidationError,
)
from coordinator.database.models import AgentMessage
from coordinator.repositories.dependency_repository import DependencyRepository
from coordinator.repositories.message_repository import MessageRepository
from coordinator.repositories.task_repository import TaskRepository
from coordinator.schemas.enums import MessagePriority, MessageStatus, MessageType
from coordinator.schemas.events import EventKind
from coordinator.schemas.messages import CommunicationStats, MessageFilter
from coordinator.services.base_service import BaseService
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, utc_now

LOGGER = get_logger(__name__)

_PENDING = MessageStatus.PENDING.value
_DELIVERED = MessageStatus.DELIVERED.value
_ACKNOWLEDGED = MessageStatus.ACKNOWLEDGED.value


class MessageBusService(BaseService):
    """Durable, priority-ordered message passing between agent identities."""

    def __init__(
        self,
        session: AsyncSession,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(session, events=events, clock=clock)
        self.message_repo = MessageRepository(session)
        self.dependency_repo = DependencyRepository(session)
        self.task_repo = TaskRepository(session)

    async def send(
        self,
        from_agent: str,
        to_agent: str,
        case_id: UUID,
        message_type: MessageType,
        subject: str,
        payload: Optional[Dict[str, Any]] = None,
        priority: MessagePriority = MessagePriority.NORMAL,
        correlation_id: Optional[UUID] = None,
    ) -> AgentMessage:
        """Persist a message for ``to_agent`` and notify live observers.

        Args:
            from_agent: Sending agent identity
            to_agent: Receiving agent identity
            case_id: Owning case
            message_type: One of the closed message types
            subject: Free-text subject line
            payload: Structured body
            priority: Delivery priority
            correlation_id: Id of the request this message answers

        Returns:
            The stored message
        """
        return await self.execute(
            self._send,
            from_agent,
            to_agent,
            case_id,
            message_type,
            subject,
            payload,
            priority,
            correlation_id,
        )

    async def _send(
        self,
        from_agent: str,
        to_agent: str,
        case_id: UUID,
        message_type: MessageType,
        subject: str,
        payload: Optional[Dict[str, Any]],
        priority: MessagePriority,
        correlation_id: Optional[UUID],
    ) -> AgentMessage:
        if not from_agent or not to_agent:
            raise ValidationError("Both sender and recipient agent identities are required")
        message_type = MessageType(message_type)
        priority = MessagePriority(priority)

        LOGGER.info(
            f"Sending {message_type.value} message {from_agent} -> {to_agent} "
            f"(priority={priority.value}, case={case_id})"
        )
        message = await self.message_repo.create(
            case_id=case_id,
            from_agent=from_agent,
            to_agent=to_agent,
            message_type=message_type.value,
            priority=priority.value,
            subject=subject,
            payload=to_jsonable_python(payload or {}),
            status=_PENDING,
            correlation_id=correlation_id,
            created_at=self.clock(),
        )

        self.emit(
            EventKind.MESSAGE_SENT,
            case_id,
            message_id=str(message.id),
            from_agent=from_agent,
            to_agent=to_agent,
            message_type=message_type.value,
            priority=priority.value,
            correlation_id=str(correlation_id) if correlation_id else None,
        )
        return message

    async def pending(
        self,
        to_agent: str,
        case_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[AgentMessage]:
        """Pending messages for an agent: critical first, then oldest first."""
        return await self.execute(
            self.message_repo.get_pending,
            to_agent,
            case_id,
            limit or settings.default_message_page_size,
        )

    async def get(self, message_id: UUID) -> AgentMessage:
        return await self.execute(self._get, message_id)

    async def _get(self, message_id: UUID) -> AgentMessage:
        message = await self.message_repo.get_by_id(message_id)
        if not message:
            raise MessageNotFoundError(f"Message not found: {message_id}")
        return message

    async def mark_delivered(self, message_id: UUID) -> AgentMessage:
        return await self.execute(
            self._transition,
            message_id,
            MessageStatus.DELIVERED,
            (_PENDING,),
            delivered_at=self.clock(),
        )

    async def acknowledge(
        self, message_id: UUID, response: Optional[Dict[str, Any]] = None
    ) -> AgentMessage:
        values: Dict[str, Any] = {"acknowledged_at": self.clock()}
        if response is not None:
            values["response"] = to_jsonable_python(response)
        return await self.execute(
            self._transition,
            message_id,
            MessageStatus.ACKNOWLEDGED,
            (_PENDING, _DELIVERED),
            **values,
        )

    async def complete(
        self, message_id: UUID, response: Optional[Dict[str, Any]] = None
    ) -> AgentMessage:
        """Mark a message processed, storing the recipient's response."""
        values: Dict[str, Any] = {"processed_at": self.clock()}
        if response is not None:
            values["response"] = to_jsonable_python(response)
        message = await self.execute(
            self._transition,
            message_id,
            MessageStatus.PROCESSED,
            (_PENDING, _DELIVERED, _ACKNOWLEDGED),
            **values,
        )
        self.emit(
            EventKind.MESSAGE_COMPLETED,
            message.case_id,
            message_id=str(message.id),
            from_agent=message.from_agent,
            to_agent=message.to_agent,
        )
        return message

    async def abandon(self, message_id: UUID, reason: str) -> AgentMessage:
        """Give up on a message that has not been processed."""
        return await self.execute(
            self._transition,
            message_id,
            MessageStatus.FAILED,
            (_PENDING, _DELIVERED, _ACKNOWLEDGED),
            failure_reason=reason,
        )

    async def _transition(
        self,
        message_id: UUID,
        target: MessageStatus,
        allowed_from: Sequence[str],
        **values: Any,
    ) -> AgentMessage:
        updated = await self.message_repo.update_if_status(
            message_id, allowed_from, status=target.value, **values
        )
        message = await self._get(message_id)
        if not updated:
            raise InvalidStatusTransitionError("Message", message_id, message.status, target.value)
        LOGGER.info(f"Message {message_id} -> {target.value}")
        return message

    async def search(self, filter: MessageFilter, limit: Optional[int] = None) -> List[AgentMessage]:
        return await self.execute(
            self.message_repo.search, filter, limit or settings.default_search_limit
        )

    async def conversation(self, correlation_id: UUID) -> List[AgentMessage]:
        """The request identified by ``correlation_id`` and every reply to it."""
        return await self.execute(self.message_repo.get_conversation, correlation_id)

    async def stats(self, case_id: UUID) -> CommunicationStats:
        return await self.execute(self._stats, case_id)

    async def _stats(self, case_id: UUID) -> CommunicationStats:
        return CommunicationStats(
            total_messages=await self.message_repo.count_for_case(case_id),
            pending_messages=await self.message_repo.count_for_case(case_id, _PENDING),
            active_dependencies=await self.dependency_repo.count_active(case_id),
            active_tasks=await self.task_repo.count_active(case_id),
            message_breakdown=await self.message_repo.type_breakdown(case_id),
        )
