"""Red-flag detection and escalation routes."""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from coordinator.api.dependencies import get_red_flag_service
from coordinator.api.v1.errors import to_http_exception
from coordinator.core.exceptions import AppError
from coordinator.schemas.enums import RedFlagStatus, Severity
from coordinator.schemas.red_flags import (
    AssignRedFlagRequest,
    EscalationHistoryRead,
    RedFlagPatternConfig,
    RedFlagPatternRead,
    RedFlagRead,
    ScanRequest,
    SetPatternActiveRequest,
    SweepResult,
    UpdateRedFlagStatusRequest,
)
from coordinator.services.red_flag_service import RedFlagService

router = APIRouter()

RedFlagServiceDep = Annotated[RedFlagService, Depends(get_red_flag_service)]


@router.get("/patterns", response_model=List[RedFlagPatternRead], operation_id="list_red_flag_patterns")
async def list_patterns(
    service: RedFlagServiceDep, active_only: bool = False
) -> List[RedFlagPatternRead]:
    try:
        patterns = await service.list_patterns(active_only)
    except AppError as e:
        raise to_http_exception(e)
    return [RedFlagPatternRead.model_validate(p) for p in patterns]


@router.post(
    "/patterns",
    status_code=status.HTTP_201_CREATED,
    response_model=RedFlagPatternRead,
    operation_id="create_red_flag_pattern",
)
async def create_pattern(
    request: RedFlagPatternConfig, service: RedFlagServiceDep
) -> RedFlagPatternRead:
    try:
        return RedFlagPatternRead.model_validate(await service.create_pattern(request))
    except AppError as e:
        raise to_http_exception(e)


@router.put(
    "/patterns/{pattern_id}/active",
    response_model=RedFlagPatternRead,
    operation_id="set_red_flag_pattern_active",
)
async def set_pattern_active(
    pattern_id: UUID, request: SetPatternActiveRequest, service: RedFlagServiceDep
) -> RedFlagPatternRead:
    try:
        pattern = await service.set_pattern_active(pattern_id, request.active)
    except AppError as e:
        raise to_http_exception(e)
    return RedFlagPatternRead.model_validate(pattern)


@router.post(
    "/scan",
    status_code=status.HTTP_201_CREATED,
    response_model=List[RedFlagRead],
    summary="Scan a finding against every active pattern",
    operation_id="scan_finding_for_red_flags",
)
async def scan(request: ScanRequest, service: RedFlagServiceDep) -> List[RedFlagRead]:
    try:
        flags = await service.scan(request.finding_id, request.case_id)
    except AppError as e:
        raise to_http_exception(e)
    return [RedFlagRead.model_validate(f) for f in flags]


@router.post(
    "/sweep",
    response_model=SweepResult,
    summary="Mark overdue flags and walk their escalation chains",
    operation_id="sweep_overdue_red_flags",
)
async def sweep_overdue(service: RedFlagServiceDep) -> SweepResult:
    try:
        return await service.process_overdue()
    except AppError as e:
        raise to_http_exception(e)


@router.get(
    "/cases/{case_id}",
    response_model=List[RedFlagRead],
    summary="Flags of a case, most severe first",
    operation_id="list_case_red_flags",
)
async def list_case_flags(
    case_id: UUID,
    service: RedFlagServiceDep,
    flag_status: Optional[RedFlagStatus] = Query(None, alias="status"),
    severity: Optional[Severity] = None,
    overdue_only: bool = False,
) -> List[RedFlagRead]:
    try:
        flags = await service.list(case_id, flag_status, severity, overdue_only)
    except AppError as e:
        raise to_http_exception(e)
    return [RedFlagRead.model_validate(f) for f in flags]


@router.get("/{flag_id}", response_model=RedFlagRead, operation_id="get_red_flag")
async def get_flag(flag_id: UUID, service: RedFlagServiceDep) -> RedFlagRead:
    try:
        return RedFlagRead.model_validate(await service.get(flag_id))
    except AppError as e:
        raise to_http_exception(e)


@router.get(
    "/{flag_id}/history",
    response_model=List[EscalationHistoryRead],
    operation_id="get_red_flag_history",
)
async def flag_history(flag_id: UUID, service: RedFlagServiceDep) -> List[EscalationHistoryRead]:
    try:
        history = await service.history(flag_id)
    except AppError as e:
        raise to_http_exception(e)
    return [EscalationHistoryRead.model_validate(h) for h in history]


@router.put("/{flag_id}/status", response_model=RedFlagRead, operation_id="update_red_flag_status")
async def update_status(
    flag_id: UUID, request: UpdateRedFlagStatusRequest, service: RedFlagServiceDep
) -> RedFlagRead:
    try:
        flag = await service.update_status(
            flag_id, request.status, request.actor_id, request.notes, request.mitigation_plan
        )
    except AppError as e:
        raise to_http_exception(e)
    return RedFlagRead.model_validate(flag)


@router.post("/{flag_id}/assign", response_model=RedFlagRead, operation_id="assign_red_flag")
async def assign(
    flag_id: UUID, request: AssignRedFlagRequest, service: RedFlagServiceDep
) -> RedFlagRead:
    try:
        flag = await service.assign(flag_id, request.assignee_id, request.actor_id)
    except AppError as e:
        raise to_http_exception(e)
    return RedFlagRead.model_validate(flag)
