"""Dependency factories shared by the v1 endpoints.

Each request gets services bound to its own session. Tests and embedding
applications swap collaborators through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.collaborators import (
    CaseAccessRoleResolver,
    CollaboratorGateway,
    DatabaseAuditSink,
    FindingSource,
    LoggingNotificationSink,
    StaticFindingSource,
)
from coordinator.core.database import async_session_maker, get_async_session
from coordinator.core.events import EventChannel, event_channel
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.services.collaborative_task_service import CollaborativeTaskService
from coordinator.services.dependency_service import DependencyService
from coordinator.services.message_bus import MessageBusService
from coordinator.services.red_flag_service import RedFlagService

# Findings live with the analyzers; embedding applications override this
default_finding_source = StaticFindingSource()

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


async def get_finding_source() -> FindingSource:
    return default_finding_source


async def get_event_channel() -> EventChannel:
    return event_channel


async def get_gateway(db_session: SessionDep) -> CollaboratorGateway:
    """Role resolution from case_access, logged notifications, audit rows."""
    return CollaboratorGateway(
        CaseAccessRoleResolver(db_session),
        notifications=LoggingNotificationSink(),
        audit=DatabaseAuditSink(async_session_maker),
    )


async def get_message_bus(
    db_session: SessionDep,
    events: Annotated[EventChannel, Depends(get_event_channel)],
) -> MessageBusService:
    return MessageBusService(db_session, events=events)


async def get_dependency_service(
    db_session: SessionDep,
    message_bus: Annotated[MessageBusService, Depends(get_message_bus)],
    events: Annotated[EventChannel, Depends(get_event_channel)],
) -> DependencyService:
    return DependencyService(db_session, message_bus=message_bus, events=events)


async def get_task_service(
    db_session: SessionDep,
    message_bus: Annotated[MessageBusService, Depends(get_message_bus)],
    events: Annotated[EventChannel, Depends(get_event_channel)],
) -> CollaborativeTaskService:
    return CollaborativeTaskService(db_session, message_bus=message_bus, events=events)


async def get_approval_service(
    db_session: SessionDep,
    gateway: Annotated[CollaboratorGateway, Depends(get_gateway)],
    finding_source: Annotated[FindingSource, Depends(get_finding_source)],
    events: Annotated[EventChannel, Depends(get_event_channel)],
) -> ApprovalWorkflowService:
    return ApprovalWorkflowService(
        db_session, gateway=gateway, finding_source=finding_source, events=events
    )


async def get_red_flag_service(
    db_session: SessionDep,
    gateway: Annotated[CollaboratorGateway, Depends(get_gateway)],
    finding_source: Annotated[FindingSource, Depends(get_finding_source)],
    message_bus: Annotated[MessageBusService, Depends(get_message_bus)],
    approvals: Annotated[ApprovalWorkflowService, Depends(get_approval_service)],
    events: Annotated[EventChannel, Depends(get_event_channel)],
) -> RedFlagService:
    return RedFlagService(
        db_session,
        finding_source,
        gateway=gateway,
        message_bus=message_bus,
        approvals=approvals,
        events=events,
    )
