"""Approval workflow routes."""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from coordinator.api.dependencies import get_approval_service
from coordinator.api.v1.errors import to_http_exception
from coordinator.core.exceptions import AppError
from coordinator.schemas.approvals import (
    ApprovalActionRead,
    ApprovalRequestRead,
    ApproveRequest,
    CancelWorkflowRequest,
    CreateDefinitionRequest,
    DelegateRequest,
    InitiateWorkflowRequest,
    RejectRequest,
    RequestChangesRequest,
    WorkflowDefinitionConfig,
    WorkflowDefinitionRead,
    WorkflowInstanceRead,
)
from coordinator.schemas.enums import ApprovalEntityType, RequestStatus
from coordinator.schemas.red_flags import SweepResult
from coordinator.services.approval_workflow_service import ApprovalWorkflowService

router = APIRouter()

ApprovalServiceDep = Annotated[ApprovalWorkflowService, Depends(get_approval_service)]


@router.get(
    "/definitions",
    response_model=List[WorkflowDefinitionRead],
    operation_id="list_workflow_definitions",
)
async def list_definitions(
    service: ApprovalServiceDep, entity_type: Optional[ApprovalEntityType] = None
) -> List[WorkflowDefinitionRead]:
    try:
        definitions = await service.list_definitions(entity_type)
    except AppError as e:
        raise to_http_exception(e)
    return [WorkflowDefinitionRead.model_validate(d) for d in definitions]


@router.post(
    "/definitions",
    status_code=status.HTTP_201_CREATED,
    response_model=WorkflowDefinitionRead,
    summary="Create a custom workflow definition, optionally scoped to a case",
    operation_id="create_workflow_definition",
)
async def create_definition(
    request: CreateDefinitionRequest, service: ApprovalServiceDep
) -> WorkflowDefinitionRead:
    config = WorkflowDefinitionConfig.model_validate(request.model_dump(exclude={"case_id"}))
    try:
        definition = await service.create_definition(config, request.case_id)
    except AppError as e:
        raise to_http_exception(e)
    return WorkflowDefinitionRead.model_validate(definition)


@router.post(
    "/workflows",
    status_code=status.HTTP_201_CREATED,
    response_model=WorkflowInstanceRead,
    summary="Start an approval workflow for an entity",
    operation_id="initiate_approval_workflow",
)
async def initiate_workflow(
    request: InitiateWorkflowRequest, service: ApprovalServiceDep
) -> WorkflowInstanceRead:
    try:
        instance = await service.initiate(
            request.case_id,
            request.entity_type,
            request.entity_id,
            request.entity_title,
            request.initiated_by,
            request.workflow_definition_id,
        )
    except AppError as e:
        raise to_http_exception(e)
    return WorkflowInstanceRead.model_validate(instance)


@router.get(
    "/pending/{approver_id}",
    response_model=List[ApprovalRequestRead],
    summary="An approver's pending requests, soonest deadline first",
    operation_id="list_pending_approvals",
)
async def pending_for_approver(
    approver_id: str, service: ApprovalServiceDep
) -> List[ApprovalRequestRead]:
    try:
        requests = await service.pending_for(approver_id)
    except AppError as e:
        raise to_http_exception(e)
    return [ApprovalRequestRead.model_validate(r) for r in requests]


@router.get(
    "/history/{entity_type}/{entity_id}",
    response_model=List[WorkflowInstanceRead],
    operation_id="get_entity_approval_history",
)
async def entity_history(
    entity_type: ApprovalEntityType, entity_id: UUID, service: ApprovalServiceDep
) -> List[WorkflowInstanceRead]:
    try:
        instances = await service.history(entity_type, entity_id)
    except AppError as e:
        raise to_http_exception(e)
    return [WorkflowInstanceRead.model_validate(i) for i in instances]


@router.post(
    "/timeouts/sweep",
    response_model=SweepResult,
    summary="Time out pending requests past their deadline",
    operation_id="sweep_approval_timeouts",
)
async def sweep_timeouts(service: ApprovalServiceDep) -> SweepResult:
    try:
        timed_out = await service.process_timeouts()
    except AppError as e:
        raise to_http_exception(e)
    return SweepResult(processed=timed_out)


@router.get(
    "/workflows/{instance_id}",
    response_model=WorkflowInstanceRead,
    operation_id="get_approval_workflow",
)
async def get_workflow(instance_id: UUID, service: ApprovalServiceDep) -> WorkflowInstanceRead:
    try:
        return WorkflowInstanceRead.model_validate(await service.get_instance(instance_id))
    except AppError as e:
        raise to_http_exception(e)


@router.get(
    "/workflows/{instance_id}/requests",
    response_model=List[ApprovalRequestRead],
    operation_id="list_workflow_requests",
)
async def workflow_requests(
    instance_id: UUID,
    service: ApprovalServiceDep,
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
) -> List[ApprovalRequestRead]:
    try:
        requests = await service.requests(instance_id, request_status)
    except AppError as e:
        raise to_http_exception(e)
    return [ApprovalRequestRead.model_validate(r) for r in requests]


@router.get(
    "/workflows/{instance_id}/actions",
    response_model=List[ApprovalActionRead],
    operation_id="list_workflow_actions",
)
async def workflow_actions(
    instance_id: UUID, service: ApprovalServiceDep
) -> List[ApprovalActionRead]:
    try:
        actions = await service.actions(instance_id)
    except AppError as e:
        raise to_http_exception(e)
    return [ApprovalActionRead.model_validate(a) for a in actions]


@router.post(
    "/workflows/{instance_id}/approve",
    response_model=WorkflowInstanceRead,
    operation_id="approve_workflow_request",
)
async def approve(
    instance_id: UUID, request: ApproveRequest, service: ApprovalServiceDep
) -> WorkflowInstanceRead:
    try:
        instance = await service.approve(instance_id, request.approver_id, request.comments)
    except AppError as e:
        raise to_http_exception(e)
    return WorkflowInstanceRead.model_validate(instance)


@router.post(
    "/workflows/{instance_id}/reject",
    response_model=WorkflowInstanceRead,
    operation_id="reject_workflow_request",
)
async def reject(
    instance_id: UUID, request: RejectRequest, service: ApprovalServiceDep
) -> WorkflowInstanceRead:
    try:
        instance = await service.reject(instance_id, request.approver_id, request.reason)
    except AppError as e:
        raise to_http_exception(e)
    return WorkflowInstanceRead.model_validate(instance)


@router.post(
    "/workflows/{instance_id}/delegate",
    response_model=ApprovalRequestRead,
    operation_id="delegate_workflow_request",
)
async def delegate(
    instance_id: UUID, request: DelegateRequest, service: ApprovalServiceDep
) -> ApprovalRequestRead:
    try:
        approval_request = await service.delegate(
            instance_id, request.approver_id, request.delegate_to, request.reason
        )
    except AppError as e:
        raise to_http_exception(e)
    return ApprovalRequestRead.model_validate(approval_request)


@router.post(
    "/workflows/{instance_id}/request-changes",
    response_model=ApprovalActionRead,
    operation_id="request_workflow_changes",
)
async def request_changes(
    instance_id: UUID, request: RequestChangesRequest, service: ApprovalServiceDep
) -> ApprovalActionRead:
    try:
        action = await service.request_changes(instance_id, request.approver_id, request.changes)
    except AppError as e:
        raise to_http_exception(e)
    return ApprovalActionRead.model_validate(action)


@router.post(
    "/workflows/{instance_id}/cancel",
    response_model=WorkflowInstanceRead,
    operation_id="cancel_approval_workflow",
)
async def cancel(
    instance_id: UUID, request: CancelWorkflowRequest, service: ApprovalServiceDep
) -> WorkflowInstanceRead:
    try:
        instance = await service.cancel(instance_id, request.actor_id, request.reason)
    except AppError as e:
        raise to_http_exception(e)
    return WorkflowInstanceRead.model_validate(instance)
