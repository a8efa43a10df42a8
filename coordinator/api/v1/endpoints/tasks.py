"""Collaborative task routes."""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from coordinator.api.dependencies import get_task_service
from coordinator.api.v1.errors import to_http_exception
from coordinator.core.exceptions import AppError
from coordinator.schemas.tasks import CreateTaskRequest, ProgressUpdateRequest, TaskRead
from coordinator.services.collaborative_task_service import CollaborativeTaskService

router = APIRouter()

TaskServiceDep = Annotated[CollaborativeTaskService, Depends(get_task_service)]


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=TaskRead,
    summary="Start a collaborative task across several agents",
    operation_id="create_collaborative_task",
)
async def create_task(request: CreateTaskRequest, service: TaskServiceDep) -> TaskRead:
    try:
        task = await service.create(
            request.case_id,
            request.task_name,
            request.description,
            request.orchestrator_agent,
            request.participating_agents,
            request.dependencies,
        )
    except AppError as e:
        raise to_http_exception(e)
    return TaskRead.model_validate(task)


@router.get("/active/{case_id}", response_model=List[TaskRead], operation_id="list_active_tasks")
async def active_tasks(case_id: UUID, service: TaskServiceDep) -> List[TaskRead]:
    try:
        tasks = await service.active(case_id)
    except AppError as e:
        raise to_http_exception(e)
    return [TaskRead.model_validate(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskRead, operation_id="get_collaborative_task")
async def get_task(task_id: UUID, service: TaskServiceDep) -> TaskRead:
    try:
        return TaskRead.model_validate(await service.get(task_id))
    except AppError as e:
        raise to_http_exception(e)


@router.post(
    "/{task_id}/progress",
    response_model=TaskRead,
    summary="Report a participant's progress",
    operation_id="update_task_progress",
)
async def update_progress(
    task_id: UUID, request: ProgressUpdateRequest, service: TaskServiceDep
) -> TaskRead:
    try:
        task = await service.update_progress(task_id, request.agent_id, request.status, request.result)
    except AppError as e:
        raise to_http_exception(e)
    return TaskRead.model_validate(task)
