"""Message bus routes."""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from coordinator.api.dependencies import get_message_bus
from coordinator.api.v1.errors import to_http_exception
from coordinator.core.exceptions import AppError
from coordinator.schemas.enums import MessagePriority, MessageStatus, MessageType
from coordinator.schemas.messages import (
    AbandonMessageRequest,
    CommunicationStats,
    MessageFilter,
    MessageRead,
    MessageResponseBody,
    SendMessageRequest,
)
from coordinator.services.message_bus import MessageBusService

router = APIRouter()

BusDep = Annotated[MessageBusService, Depends(get_message_bus)]


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageRead,
    summary="Send a message to another agent",
    operation_id="send_agent_message",
)
async def send_message(request: SendMessageRequest, bus: BusDep) -> MessageRead:
    try:
        message = await bus.send(
            request.from_agent,
            request.to_agent,
            request.case_id,
            request.message_type,
            request.subject,
            request.payload,
            request.priority,
            request.correlation_id,
        )
    except AppError as e:
        raise to_http_exception(e)
    return MessageRead.model_validate(message)


@router.get(
    "/pending/{agent_id}",
    response_model=List[MessageRead],
    summary="Pending messages for an agent, highest priority first",
    operation_id="list_pending_agent_messages",
)
async def pending_messages(
    agent_id: str,
    bus: BusDep,
    case_id: Optional[UUID] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
) -> List[MessageRead]:
    try:
        messages = await bus.pending(agent_id, case_id, limit)
    except AppError as e:
        raise to_http_exception(e)
    return [MessageRead.model_validate(m) for m in messages]


@router.get(
    "/search",
    response_model=List[MessageRead],
    summary="Search messages",
    operation_id="search_agent_messages",
)
async def search_messages(
    bus: BusDep,
    case_id: Optional[UUID] = None,
    from_agent: Optional[str] = None,
    to_agent: Optional[str] = None,
    message_type: Optional[MessageType] = None,
    message_status: Optional[MessageStatus] = Query(None, alias="status"),
    priority: Optional[MessagePriority] = None,
    correlation_id: Optional[UUID] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
) -> List[MessageRead]:
    search_filter = MessageFilter(
        case_id=case_id,
        from_agent=from_agent,
        to_agent=to_agent,
        message_type=message_type,
        status=message_status,
        priority=priority,
        correlation_id=correlation_id,
    )
    try:
        messages = await bus.search(search_filter, limit)
    except AppError as e:
        raise to_http_exception(e)
    return [MessageRead.model_validate(m) for m in messages]


@router.get(
    "/stats/{case_id}",
    response_model=CommunicationStats,
    summary="Communication statistics for a case",
    operation_id="get_case_communication_stats",
)
async def communication_stats(case_id: UUID, bus: BusDep) -> CommunicationStats:
    try:
        return await bus.stats(case_id)
    except AppError as e:
        raise to_http_exception(e)


@router.get(
    "/conversations/{correlation_id}",
    response_model=List[MessageRead],
    summary="A request message and its replies, oldest first",
    operation_id="get_message_conversation",
)
async def conversation(correlation_id: UUID, bus: BusDep) -> List[MessageRead]:
    try:
        messages = await bus.conversation(correlation_id)
    except AppError as e:
        raise to_http_exception(e)
    return [MessageRead.model_validate(m) for m in messages]


@router.get("/{message_id}", response_model=MessageRead, operation_id="get_agent_message")
async def get_message(message_id: UUID, bus: BusDep) -> MessageRead:
    try:
        return MessageRead.model_validate(await bus.get(message_id))
    except AppError as e:
        raise to_http_exception(e)


@router.post("/{message_id}/delivered", response_model=MessageRead, operation_id="mark_message_delivered")
async def mark_delivered(message_id: UUID, bus: BusDep) -> MessageRead:
    try:
        return MessageRead.model_validate(await bus.mark_delivered(message_id))
    except AppError as e:
        raise to_http_exception(e)


@router.post("/{message_id}/acknowledge", response_model=MessageRead, operation_id="acknowledge_message")
async def acknowledge(message_id: UUID, body: MessageResponseBody, bus: BusDep) -> MessageRead:
    try:
        return MessageRead.model_validate(await bus.acknowledge(message_id, body.response))
    except AppError as e:
        raise to_http_exception(e)


@router.post("/{message_id}/complete", response_model=MessageRead, operation_id="complete_message")
async def complete(message_id: UUID, body: MessageResponseBody, bus: BusDep) -> MessageRead:
    try:
        return MessageRead.model_validate(await bus.complete(message_id, body.response))
    except AppError as e:
        raise to_http_exception(e)


@router.post("/{message_id}/abandon", response_model=MessageRead, operation_id="abandon_message")
async def abandon(message_id: UUID, body: AbandonMessageRequest, bus: BusDep) -> MessageRead:
    try:
        return MessageRead.model_validate(await bus.abandon(message_id, body.reason))
    except AppError as e:
        raise to_http_exception(e)
