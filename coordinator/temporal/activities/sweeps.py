"""Temporal activities running the periodic coordination sweeps.

Each activity opens its own session; the sweeps only transition rows whose
deadline has passed and that are still in their pre-transition state, so a
retried or overlapping run does no harm.
"""

from typing import Dict

from temporalio import activity

from coordinator.core.collaborators import (
    CaseAccessRoleResolver,
    CollaboratorGateway,
    DatabaseAuditSink,
    StaticFindingSource,
)
from coordinator.core.database import async_session_maker
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.services.red_flag_service import RedFlagService
from coordinator.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _gateway(session) -> CollaboratorGateway:
    return CollaboratorGateway(
        CaseAccessRoleResolver(session),
        audit=DatabaseAuditSink(async_session_maker),
    )


@activity.defn
async def sweep_approval_timeouts() -> int:
    """Time out pending approval requests past their deadline.

    Returns:
        Number of requests timed out
    """
    async with async_session_maker() as session:
        service = ApprovalWorkflowService(session, gateway=_gateway(session))
        timed_out = await service.process_timeouts()
    LOGGER.info(f"Approval timeout sweep: {timed_out} request(s) timed out")
    return timed_out


@activity.defn
async def sweep_overdue_red_flags() -> Dict[str, int]:
    """Mark overdue red flags and advance their escalation chains."""
    async with async_session_maker() as session:
        # The overdue sweep never reads findings
        service = RedFlagService(session, StaticFindingSource(), gateway=_gateway(session))
        result = await service.process_overdue()
    LOGGER.info(
        f"Red-flag sweep: {result.processed} newly overdue, {result.escalated} escalated"
    )
    return result.model_dump()
