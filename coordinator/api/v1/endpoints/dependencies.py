"""Dependency graph routes."""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from coordinator.api.dependencies import get_dependency_service
from coordinator.api.v1.errors import to_http_exception
from coordinator.core.exceptions import AppError
from coordinator.schemas.enums import EntityKind
from coordinator.schemas.tasks import (
    CreateDependencyRequest,
    DependencyRead,
    ResolveDependencyRequest,
)
from coordinator.services.dependency_service import DependencyService

router = APIRouter()

DependencyServiceDep = Annotated[DependencyService, Depends(get_dependency_service)]


class StatusReasonRequest(BaseModel):
    reason: Optional[str] = None


class UnsatisfiedResponse(BaseModel):
    entity_type: EntityKind
    entity_id: UUID
    has_unsatisfied: bool


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=DependencyRead,
    summary="Record a dependency between two agents",
    operation_id="create_agent_dependency",
)
async def create_dependency(
    request: CreateDependencyRequest, service: DependencyServiceDep
) -> DependencyRead:
    try:
        dependency = await service.create(
            request.case_id,
            request.source_agent,
            request.target_agent,
            request.dependency_type,
            request.source_entity.entity_type,
            request.source_entity.entity_id,
        )
    except AppError as e:
        raise to_http_exception(e)
    return DependencyRead.model_validate(dependency)


@router.get(
    "/pending/{agent_id}",
    response_model=List[DependencyRead],
    operation_id="list_pending_dependencies",
)
async def pending_dependencies(
    agent_id: str, service: DependencyServiceDep, case_id: Optional[UUID] = None
) -> List[DependencyRead]:
    try:
        dependencies = await service.pending_for(agent_id, case_id)
    except AppError as e:
        raise to_http_exception(e)
    return [DependencyRead.model_validate(d) for d in dependencies]


@router.get(
    "/unsatisfied/{entity_type}/{entity_id}",
    response_model=UnsatisfiedResponse,
    summary="Whether an entity still waits on pending or blocked dependencies",
    operation_id="check_unsatisfied_dependencies",
)
async def has_unsatisfied(
    entity_type: EntityKind, entity_id: UUID, service: DependencyServiceDep
) -> UnsatisfiedResponse:
    try:
        waiting = await service.has_unsatisfied(entity_type, entity_id)
    except AppError as e:
        raise to_http_exception(e)
    return UnsatisfiedResponse(entity_type=entity_type, entity_id=entity_id, has_unsatisfied=waiting)


@router.get("/{dependency_id}", response_model=DependencyRead, operation_id="get_agent_dependency")
async def get_dependency(dependency_id: UUID, service: DependencyServiceDep) -> DependencyRead:
    try:
        return DependencyRead.model_validate(await service.get(dependency_id))
    except AppError as e:
        raise to_http_exception(e)


@router.post(
    "/{dependency_id}/resolve",
    response_model=DependencyRead,
    operation_id="resolve_agent_dependency",
)
async def resolve_dependency(
    dependency_id: UUID, request: ResolveDependencyRequest, service: DependencyServiceDep
) -> DependencyRead:
    try:
        dependency = await service.resolve(
            dependency_id,
            request.target_entity.entity_type,
            request.target_entity.entity_id,
            request.resolution_data,
        )
    except AppError as e:
        raise to_http_exception(e)
    return DependencyRead.model_validate(dependency)


@router.post("/{dependency_id}/block", response_model=DependencyRead, operation_id="block_agent_dependency")
async def block_dependency(
    dependency_id: UUID, request: StatusReasonRequest, service: DependencyServiceDep
) -> DependencyRead:
    try:
        return DependencyRead.model_validate(await service.block(dependency_id, request.reason))
    except AppError as e:
        raise to_http_exception(e)


@router.post("/{dependency_id}/cancel", response_model=DependencyRead, operation_id="cancel_agent_dependency")
async def cancel_dependency(
    dependency_id: UUID, request: StatusReasonRequest, service: DependencyServiceDep
) -> DependencyRead:
    try:
        return DependencyRead.model_validate(await service.cancel(dependency_id, request.reason))
    except AppError as e:
        raise to_http_exception(e)
