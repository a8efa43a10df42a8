"""Multi-step approval workflows.

Instances move ``in_progress -> approved | rejected | cancelled | timeout`` and
never leave a terminal status. Every "act on my pending request" operation
re-selects the approver's pending row and applies its change with a
conditional update, so a request consumed by a concurrent actor surfaces as
NoPendingRequestError instead of being applied twice.
"""

from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.collaborators import CollaboratorGateway, FindingSource
from coordinator.core.events import EventChannel
from coordinator.core.exceptions import (
    ConfigurationError,
    DelegationNotAllowedError,
    DuplicatePendingRequestError,
    NoPendingRequestError,
    ValidationError,
    WorkflowDefinitionNotFoundError,
    WorkflowInstanceNotFoundError,
    WorkflowTerminatedError,
)
from coordinator.database.models import (
    ApprovalAction,
    ApprovalRequest,
    WorkflowDefinition,
    WorkflowInstance,
)
from coordinator.repositories.approval_repository import (
    ApprovalActionRepository,
    ApprovalRequestRepository,
    WorkflowDefinitionRepository,
    WorkflowInstanceRepository,
)
from coordinator.schemas.approvals import (
    ApprovalStep,
    AutoApproveConditions,
    WorkflowDefinitionConfig,
)
from coordinator.schemas.enums import (
    TERMINAL_WORKFLOW_STATUSES,
    ApprovalActionType,
    ApprovalEntityType,
    CompletionMode,
    RequestStatus,
    WorkflowStatus,
)
from coordinator.schemas.events import EventKind
from coordinator.services.base_service import BaseService
from coordinator.services.system_definitions import SYSTEM_WORKFLOWS
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, deadline_after, utc_now

LOGGER = get_logger(__name__)

_ACTIVE_INSTANCE = (WorkflowStatus.PENDING.value, WorkflowStatus.IN_PROGRESS.value)
_PENDING_REQUEST = (RequestStatus.PENDING.value,)
_LOW_IMPACT = {"low", "medium"}
SYSTEM_ACTOR = "system"


class ApprovalWorkflowService(BaseService):
    """Configurable sequential, parallel and any-one approval workflows."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[CollaboratorGateway] = None,
        finding_source: Optional[FindingSource] = None,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(session, gateway=gateway, events=events, clock=clock)
        self.finding_source = finding_source
        self.definition_repo = WorkflowDefinitionRepository(session)
        self.instance_repo = WorkflowInstanceRepository(session)
        self.request_repo = ApprovalRequestRepository(session)
        self.action_repo = ApprovalActionRepository(session)

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def seed_system_definitions(self) -> int:
        """Insert the built-in workflows that are missing, matched by name.

        Returns:
            Number of definitions created
        """
        return await self.execute(self._seed_system_definitions)

    async def _seed_system_definitions(self) -> int:
        created = 0
        for config in SYSTEM_WORKFLOWS:
            if await self.definition_repo.get_by_name(config.name):
                continue
            await self._store_definition(config, case_id=None, is_system=True)
            LOGGER.info(f"Seeded system workflow '{config.name}'")
            created += 1
        return created

    async def create_definition(
        self, config: WorkflowDefinitionConfig, case_id: Optional[UUID] = None
    ) -> WorkflowDefinition:
        """Store a custom definition, optionally scoped to one case."""
        return await self.execute(self._store_definition, config, case_id, False)

    async def _store_definition(
        self, config: WorkflowDefinitionConfig, case_id: Optional[UUID], is_system: bool
    ) -> WorkflowDefinition:
        return await self.definition_repo.create(
            name=config.name,
            entity_type=config.entity_type.value,
            description=config.description,
            mode=config.mode.value,
            steps=[step.model_dump(mode="json") for step in config.steps],
            auto_approve_conditions=(
                config.auto_approve_conditions.model_dump(mode="json")
                if config.auto_approve_conditions
                else None
            ),
            case_id=case_id,
            is_system_workflow=is_system,
            active=True,
            created_at=self.clock(),
        )

    async def get_definition(self, definition_id: UUID) -> WorkflowDefinition:
        return await self.execute(self._get_definition, definition_id)

    async def _get_definition(self, definition_id: UUID) -> WorkflowDefinition:
        definition = await self.definition_repo.get_by_id(definition_id)
        if not definition:
            raise WorkflowDefinitionNotFoundError(f"Workflow definition not found: {definition_id}")
        return definition

    async def list_definitions(
        self, entity_type: Optional[ApprovalEntityType] = None
    ) -> List[WorkflowDefinition]:
        return await self.execute(
            self.definition_repo.list_definitions,
            ApprovalEntityType(entity_type).value if entity_type else None,
        )

    @staticmethod
    def _config(definition: WorkflowDefinition) -> WorkflowDefinitionConfig:
        try:
            return WorkflowDefinitionConfig.model_validate(
                {
                    "name": definition.name,
                    "entity_type": definition.entity_type,
                    "description": definition.description,
                    "mode": definition.mode,
                    "steps": definition.steps,
                    "auto_approve_conditions": definition.auto_approve_conditions,
                }
            )
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Workflow definition {definition.id} is invalid: {e}", original_error=e
            )

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate(
        self,
        case_id: UUID,
        entity_type: ApprovalEntityType,
        entity_id: UUID,
        entity_title: str,
        initiated_by: str,
        workflow_definition_id: Optional[UUID] = None,
    ) -> WorkflowInstance:
        """Start an approval workflow for an entity.

        Uses the given definition, or the active definition for the entity
        type (a case-specific one before the system default). When the
        definition's auto-approve predicate holds, the instance is created
        already approved and no requests are issued.

        Raises:
            WorkflowDefinitionNotFoundError: No applicable definition
            ConfigurationError: Nobody can act on the first step set
        """
        return await self.execute(
            self._initiate,
            case_id,
            entity_type,
            entity_id,
            entity_title,
            initiated_by,
            workflow_definition_id,
        )

    async def _initiate(
        self,
        case_id: UUID,
        entity_type: ApprovalEntityType,
        entity_id: UUID,
        entity_title: str,
        initiated_by: str,
        workflow_definition_id: Optional[UUID],
    ) -> WorkflowInstance:
        entity_type = ApprovalEntityType(entity_type)
        LOGGER.info(f"Initiating approval workflow for {entity_type.value} {entity_id}")

        if workflow_definition_id:
            definition = await self._get_definition(workflow_definition_id)
            if definition.entity_type != entity_type.value:
                raise ValidationError(
                    f"Definition {definition.name} applies to {definition.entity_type}, "
                    f"not {entity_type.value}"
                )
        else:
            definition = await self.definition_repo.get_applicable(entity_type.value, case_id)
            if not definition:
                raise WorkflowDefinitionNotFoundError(
                    f"No workflow found for entity type: {entity_type.value}"
                )
        config = self._config(definition)

        if config.auto_approve_conditions and await self._should_auto_approve(
            entity_type, entity_id, config.auto_approve_conditions
        ):
            return await self._auto_approve(
                case_id, definition, entity_type, entity_id, entity_title, initiated_by
            )

        now = self.clock()
        if config.mode == CompletionMode.SEQUENTIAL:
            first_step, plan = await self._next_step_plan(case_id, config, 0, now)
        else:
            first_step = 1
            plan = await self._plan_requests(case_id, config.steps, now)
        if not plan:
            raise ConfigurationError(
                f"No approvers resolvable for workflow '{config.name}' on case {case_id}"
            )

        instance = await self.instance_repo.create(
            case_id=case_id,
            workflow_definition_id=definition.id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            entity_title=entity_title,
            status=WorkflowStatus.IN_PROGRESS.value,
            current_step=first_step,
            initiated_by=initiated_by,
            initiated_at=now,
            auto_approved=False,
            details={"workflow_name": config.name, "mode": config.mode.value},
        )
        await self._issue_requests(instance, plan)

        await self.gateway.audit(
            case_id,
            initiated_by,
            "workflow_initiated",
            {
                "workflow_instance_id": instance.id,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "workflow_name": config.name,
            },
        )
        self.emit(
            EventKind.WORKFLOW_INITIATED,
            case_id,
            instance_id=str(instance.id),
            entity_type=entity_type.value,
            entity_id=str(entity_id),
        )
        LOGGER.info(f"Workflow {instance.id} initiated with {len(plan)} request(s)")
        return instance

    async def _should_auto_approve(
        self,
        entity_type: ApprovalEntityType,
        entity_id: UUID,
        conditions: AutoApproveConditions,
    ) -> bool:
        # Only findings carry the attributes the predicate inspects
        if entity_type != ApprovalEntityType.FINDING or conditions.is_empty:
            return False
        if self.finding_source is None:
            return False
        finding = await self.finding_source.get_finding(entity_id)
        if finding is None:
            return False
        if (
            conditions.confidence_threshold is not None
            and finding.confidence_score < conditions.confidence_threshold
        ):
            return False
        if conditions.low_impact_only and (finding.impact_level or "").lower() not in _LOW_IMPACT:
            return False
        if conditions.system_generated_only and not finding.generated_by_agent:
            return False
        return True

    async def _auto_approve(
        self,
        case_id: UUID,
        definition: WorkflowDefinition,
        entity_type: ApprovalEntityType,
        entity_id: UUID,
        entity_title: str,
        initiated_by: str,
    ) -> WorkflowInstance:
        now = self.clock()
        LOGGER.info(f"Auto-approving {entity_type.value} {entity_id}")
        instance = await self.instance_repo.create(
            case_id=case_id,
            workflow_definition_id=definition.id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            entity_title=entity_title,
            status=WorkflowStatus.APPROVED.value,
            current_step=0,
            initiated_by=initiated_by,
            initiated_at=now,
            completed_at=now,
            auto_approved=True,
            details={"workflow_name": definition.name},
        )
        await self.gateway.audit(
            case_id,
            SYSTEM_ACTOR,
            "auto_approved",
            {
                "workflow_instance_id": instance.id,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
            },
        )
        self.emit(
            EventKind.WORKFLOW_COMPLETED,
            case_id,
            instance_id=str(instance.id),
            status=WorkflowStatus.APPROVED.value,
            auto_approved=True,
        )
        return instance

    async def _plan_requests(
        self, case_id: UUID, steps: Sequence[ApprovalStep], now
    ) -> List[Dict[str, Any]]:
        """Resolve steps to one request row per distinct approver.

        Raises:
            ConfigurationError: A required step resolves to nobody
        """
        rows: List[Dict[str, Any]] = []
        seen: Set[str] = set()
        for step in steps:
            if step.approver_user_id:
                approvers = [step.approver_user_id]
            else:
                approvers = await self.gateway.resolve_role(case_id, step.approver_role)
            if not approvers and step.required:
                raise ConfigurationError(
                    f"Required step {step.step_number} has no approver: nobody holds role "
                    f"{step.approver_role.value} on case {case_id}"
                )
            if not approvers:
                LOGGER.warning(
                    f"Step {step.step_number}: no members hold role "
                    f"{step.approver_role.value} on case {case_id}"
                )
                continue
            for approver_id in approvers:
                # At most one pending request per approver and instance
                if approver_id in seen:
                    continue
                seen.add(approver_id)
                rows.append(
                    {
                        "step_number": step.step_number,
                        "approver_id": approver_id,
                        "required": step.required,
                        "can_delegate": step.can_delegate,
                        "deadline": deadline_after(now, step.timeout_hours),
                        "status": RequestStatus.PENDING.value,
                        "created_at": now,
                    }
                )
        return rows

    async def _next_step_plan(
        self, case_id: UUID, config: WorkflowDefinitionConfig, after_step: int, now
    ) -> Tuple[Optional[int], List[Dict[str, Any]]]:
        """First step after ``after_step`` that resolves to at least one approver.

        Only steps made entirely of optional entries are skipped.
        """
        for step_number in range(after_step + 1, config.last_step_number + 1):
            plan = await self._plan_requests(case_id, config.steps_numbered(step_number), now)
            if plan:
                return step_number, plan
            LOGGER.warning(f"Skipping step {step_number} of '{config.name}': nobody to ask")
        return None, []

    async def _issue_requests(
        self, instance: WorkflowInstance, plan: List[Dict[str, Any]]
    ) -> List[ApprovalRequest]:
        requests = await self.request_repo.create_many(
            dict(row, workflow_instance_id=instance.id) for row in plan
        )
        for request in requests:
            await self.gateway.notify(
                instance.case_id,
                request.approver_id,
                "approval_requested",
                f"Approval needed: {instance.entity_title}",
                {
                    "workflow_instance_id": str(instance.id),
                    "entity_type": instance.entity_type,
                    "entity_id": str(instance.entity_id),
                    "step_number": request.step_number,
                    "deadline": request.deadline.isoformat() if request.deadline else None,
                },
                "high",
            )
        return requests

    # ------------------------------------------------------------------
    # Approver actions
    # ------------------------------------------------------------------

    async def _get_instance(self, instance_id: UUID) -> WorkflowInstance:
        instance = await self.instance_repo.get_by_id(instance_id)
        if not instance:
            raise WorkflowInstanceNotFoundError(f"Workflow instance not found: {instance_id}")
        return instance

    async def _get_active_instance(self, instance_id: UUID) -> WorkflowInstance:
        instance = await self._get_instance(instance_id)
        if instance.status in TERMINAL_WORKFLOW_STATUSES:
            raise WorkflowTerminatedError(
                f"Workflow instance {instance_id} is already {instance.status}"
            )
        return instance

    async def _get_pending_request(self, instance_id: UUID, approver_id: str) -> ApprovalRequest:
        request = await self.request_repo.get_pending(instance_id, approver_id)
        if not request:
            raise NoPendingRequestError(instance_id, approver_id)
        return request

    async def _resolve_request(
        self, request: ApprovalRequest, status: RequestStatus, approver_id: str
    ) -> None:
        resolved = await self.request_repo.update_if_status(
            request.id, _PENDING_REQUEST, status=status.value, resolved_at=self.clock()
        )
        if not resolved:
            raise NoPendingRequestError(request.workflow_instance_id, approver_id)

    async def _log_action(
        self,
        instance: WorkflowInstance,
        step_number: int,
        actor_id: str,
        action: ApprovalActionType,
        comments: Optional[str] = None,
        delegated_to: Optional[str] = None,
    ) -> ApprovalAction:
        return await self.action_repo.create(
            workflow_instance_id=instance.id,
            step_number=step_number,
            actor_id=actor_id,
            action=action.value,
            delegated_to=delegated_to,
            comments=comments,
            created_at=self.clock(),
        )

    async def approve(
        self, instance_id: UUID, approver_id: str, comments: Optional[str] = None
    ) -> WorkflowInstance:
        """Approve the approver's pending request and advance the workflow.

        Raises:
            WorkflowInstanceNotFoundError: Unknown instance
            WorkflowTerminatedError: Instance already finished
            NoPendingRequestError: The approver has nothing pending here
        """
        return await self.execute(self._approve, instance_id, approver_id, comments)

    async def _approve(
        self, instance_id: UUID, approver_id: str, comments: Optional[str]
    ) -> WorkflowInstance:
        instance = await self._get_active_instance(instance_id)
        request = await self._get_pending_request(instance_id, approver_id)
        definition = await self._get_definition(instance.workflow_definition_id)
        config = self._config(definition)
        # Resolve the next step first so a failed lookup leaves the request pending
        advance = await self._plan_advance(instance, config, request)

        await self._resolve_request(request, RequestStatus.APPROVED, approver_id)
        await self._log_action(
            instance, request.step_number, approver_id, ApprovalActionType.APPROVED, comments
        )
        LOGGER.info(f"Workflow {instance_id}: step {request.step_number} approved by {approver_id}")

        await self.gateway.audit(
            instance.case_id,
            approver_id,
            "approval_granted",
            {
                "workflow_instance_id": instance.id,
                "entity_type": instance.entity_type,
                "entity_id": instance.entity_id,
                "comments": comments,
            },
        )
        self.emit(
            EventKind.APPROVAL_GRANTED,
            instance.case_id,
            instance_id=str(instance.id),
            approver_id=approver_id,
            step=request.step_number,
        )

        await self._check_completion(instance, config, request.step_number, advance)
        return await self._get_instance(instance_id)

    async def _plan_advance(
        self,
        instance: WorkflowInstance,
        config: WorkflowDefinitionConfig,
        request: ApprovalRequest,
    ) -> Optional[Tuple[Optional[int], List[Dict[str, Any]]]]:
        """Next sequential step, when approving ``request`` would close its step."""
        if config.mode != CompletionMode.SEQUENTIAL:
            return None
        siblings = await self.request_repo.list_for_instance(
            instance.id, step_number=request.step_number
        )
        others = [r for r in siblings if r.id != request.id]
        if any(r.status == RequestStatus.PENDING.value for r in others):
            return None
        if any(r.required and r.status != RequestStatus.APPROVED.value for r in others):
            return None
        return await self._next_step_plan(
            instance.case_id, config, request.step_number, self.clock()
        )

    async def _check_completion(
        self,
        instance: WorkflowInstance,
        config: WorkflowDefinitionConfig,
        step_number: int,
        advance: Optional[Tuple[Optional[int], List[Dict[str, Any]]]] = None,
    ) -> None:
        if config.mode == CompletionMode.ANY_ONE:
            await self._finish(instance, WorkflowStatus.APPROVED)
            return

        if config.mode == CompletionMode.PARALLEL:
            if await self.request_repo.count_pending(instance.id) > 0:
                return
            requests = await self.request_repo.list_for_instance(instance.id)
            # Every request must be approved; a lapsed one can never be
            if any(r.status != RequestStatus.APPROVED.value for r in requests):
                await self._finish(instance, WorkflowStatus.TIMEOUT)
            else:
                await self._finish(instance, WorkflowStatus.APPROVED)
            return

        if await self.request_repo.count_pending(instance.id, step_number) > 0:
            return
        requests = await self.request_repo.list_for_instance(instance.id, step_number=step_number)
        if any(r.required and r.status != RequestStatus.APPROVED.value for r in requests):
            await self._finish(instance, WorkflowStatus.TIMEOUT)
            return

        if advance is None:
            advance = await self._next_step_plan(
                instance.case_id, config, step_number, self.clock()
            )
        next_step, plan = advance
        if next_step is None:
            await self._finish(instance, WorkflowStatus.APPROVED)
            return

        advanced = await self.instance_repo.update_if_status(
            instance.id, _ACTIVE_INSTANCE, current_step=next_step
        )
        if not advanced:
            LOGGER.info(f"Workflow {instance.id} finished concurrently; not advancing")
            return
        await self._issue_requests(instance, plan)
        LOGGER.info(f"Workflow {instance.id} advanced to step {next_step}")

    async def _finish(
        self,
        instance: WorkflowInstance,
        status: WorkflowStatus,
        actor_id: str = SYSTEM_ACTOR,
    ) -> bool:
        """Move an active instance to a terminal status and retire open requests."""
        finished = await self.instance_repo.update_if_status(
            instance.id, _ACTIVE_INSTANCE, status=status.value, completed_at=self.clock()
        )
        if not finished:
            return False
        removed = await self.request_repo.delete_pending(instance.id)
        LOGGER.info(f"Workflow {instance.id} -> {status.value} ({removed} open request(s) retired)")

        if status in (WorkflowStatus.APPROVED, WorkflowStatus.TIMEOUT):
            await self.gateway.notify(
                instance.case_id,
                instance.initiated_by,
                "workflow_approved" if status == WorkflowStatus.APPROVED else "workflow_timeout",
                (
                    "Approval workflow completed successfully"
                    if status == WorkflowStatus.APPROVED
                    else "Approval workflow timed out"
                ),
                {
                    "workflow_instance_id": str(instance.id),
                    "entity_type": instance.entity_type,
                    "entity_id": str(instance.entity_id),
                },
                "normal" if status == WorkflowStatus.APPROVED else "high",
            )
        await self.gateway.audit(
            instance.case_id,
            actor_id,
            "workflow_completed",
            {"workflow_instance_id": instance.id, "status": status.value},
        )
        self.emit(
            EventKind.WORKFLOW_COMPLETED,
            instance.case_id,
            instance_id=str(instance.id),
            entity_type=instance.entity_type,
            entity_id=str(instance.entity_id),
            status=status.value,
        )
        return True

    async def reject(self, instance_id: UUID, approver_id: str, reason: str) -> WorkflowInstance:
        """Reject the approver's request; one rejection ends the workflow in every mode."""
        return await self.execute(self._reject, instance_id, approver_id, reason)

    async def _reject(self, instance_id: UUID, approver_id: str, reason: str) -> WorkflowInstance:
        instance = await self._get_active_instance(instance_id)
        request = await self._get_pending_request(instance_id, approver_id)
        await self._resolve_request(request, RequestStatus.REJECTED, approver_id)
        await self._log_action(
            instance, request.step_number, approver_id, ApprovalActionType.REJECTED, reason
        )

        finished = await self.instance_repo.update_if_status(
            instance.id,
            _ACTIVE_INSTANCE,
            status=WorkflowStatus.REJECTED.value,
            completed_at=self.clock(),
        )
        removed = await self.request_repo.delete_pending(instance.id)
        LOGGER.info(
            f"Workflow {instance_id} rejected by {approver_id}; {removed} open request(s) cancelled"
        )
        if finished:
            await self.gateway.notify(
                instance.case_id,
                instance.initiated_by,
                "approval_rejected",
                f"Approval rejected by {approver_id}",
                {
                    "workflow_instance_id": str(instance.id),
                    "entity_type": instance.entity_type,
                    "entity_id": str(instance.entity_id),
                    "reason": reason,
                },
                "high",
            )
            await self.gateway.audit(
                instance.case_id,
                approver_id,
                "approval_rejected",
                {
                    "workflow_instance_id": instance.id,
                    "entity_type": instance.entity_type,
                    "entity_id": instance.entity_id,
                    "reason": reason,
                },
            )
            self.emit(
                EventKind.APPROVAL_REJECTED,
                instance.case_id,
                instance_id=str(instance.id),
                approver_id=approver_id,
                reason=reason,
            )
        return await self._get_instance(instance_id)

    async def delegate(
        self,
        instance_id: UUID,
        approver_id: str,
        delegate_to: str,
        reason: Optional[str] = None,
    ) -> ApprovalRequest:
        """Hand the approver's pending request over to another identity.

        The request keeps its step, deadline and history; it is reassigned in
        place and remembers the first approver it was issued to.

        Raises:
            DelegationNotAllowedError: The request's step forbids delegation
            DuplicatePendingRequestError: The delegate already has a pending
                request on this instance
        """
        return await self.execute(self._delegate, instance_id, approver_id, delegate_to, reason)

    async def _delegate(
        self,
        instance_id: UUID,
        approver_id: str,
        delegate_to: str,
        reason: Optional[str],
    ) -> ApprovalRequest:
        if not delegate_to or delegate_to == approver_id:
            raise ValidationError("Delegate must be a different identity")
        instance = await self._get_active_instance(instance_id)
        request = await self._get_pending_request(instance_id, approver_id)
        if not request.can_delegate:
            raise DelegationNotAllowedError(
                f"Delegation not allowed for step {request.step_number} of workflow {instance_id}"
            )
        if await self.request_repo.get_pending(instance_id, delegate_to):
            raise DuplicatePendingRequestError(
                f"{delegate_to} already has a pending request on workflow {instance_id}"
            )

        original = request.original_approver_id or approver_id
        if not await self.request_repo.reassign(request.id, approver_id, delegate_to, original):
            raise NoPendingRequestError(instance_id, approver_id)
        await self._log_action(
            instance,
            request.step_number,
            approver_id,
            ApprovalActionType.DELEGATED,
            reason,
            delegated_to=delegate_to,
        )
        LOGGER.info(f"Workflow {instance_id}: {approver_id} delegated to {delegate_to}")

        await self.gateway.notify(
            instance.case_id,
            delegate_to,
            "approval_delegated",
            f"Approval delegated from {approver_id}: {instance.entity_title}",
            {
                "workflow_instance_id": str(instance.id),
                "entity_type": instance.entity_type,
                "entity_id": str(instance.entity_id),
                "delegated_by": approver_id,
            },
            "high",
        )
        await self.gateway.audit(
            instance.case_id,
            approver_id,
            "approval_delegated",
            {"workflow_instance_id": instance.id, "delegated_to": delegate_to, "reason": reason},
        )
        return await self.request_repo.get_by_id(request.id)

    async def request_changes(
        self, instance_id: UUID, approver_id: str, changes: str
    ) -> ApprovalAction:
        """Ask the initiator for changes; the request stays pending."""
        return await self.execute(self._request_changes, instance_id, approver_id, changes)

    async def _request_changes(
        self, instance_id: UUID, approver_id: str, changes: str
    ) -> ApprovalAction:
        instance = await self._get_active_instance(instance_id)
        request = await self._get_pending_request(instance_id, approver_id)
        action = await self._log_action(
            instance,
            request.step_number,
            approver_id,
            ApprovalActionType.REQUESTED_CHANGES,
            changes,
        )
        await self.gateway.notify(
            instance.case_id,
            instance.initiated_by,
            "changes_requested",
            f"Changes requested by {approver_id}",
            {
                "workflow_instance_id": str(instance.id),
                "entity_type": instance.entity_type,
                "entity_id": str(instance.entity_id),
                "changes": changes,
            },
            "high",
        )
        await self.gateway.audit(
            instance.case_id,
            approver_id,
            "changes_requested",
            {"workflow_instance_id": instance.id, "changes": changes},
        )
        return action

    async def cancel(
        self, instance_id: UUID, actor_id: str, reason: Optional[str] = None
    ) -> WorkflowInstance:
        """Withdraw an unfinished workflow and its open requests."""
        return await self.execute(self._cancel, instance_id, actor_id, reason)

    async def _cancel(
        self, instance_id: UUID, actor_id: str, reason: Optional[str]
    ) -> WorkflowInstance:
        instance = await self._get_active_instance(instance_id)
        if not await self._finish(instance, WorkflowStatus.CANCELLED, actor_id):
            instance = await self._get_instance(instance_id)
            raise WorkflowTerminatedError(
                f"Workflow instance {instance_id} is already {instance.status}"
            )
        if reason:
            LOGGER.info(f"Workflow {instance_id} cancelled by {actor_id}: {reason}")
        return await self._get_instance(instance_id)

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    async def process_timeouts(self) -> int:
        """Mark pending requests past their deadline as timed out.

        The initiator is told about each one. The instance itself is left
        alone: no approver is substituted, no step is advanced and no status
        is settled. Safe to run repeatedly or concurrently.

        Returns:
            Number of requests timed out by this sweep
        """
        return await self.execute(self._process_timeouts)

    async def _process_timeouts(self) -> int:
        now = self.clock()
        expired = await self.request_repo.get_expired(now)
        LOGGER.info(f"Processing approval timeouts: {len(expired)} candidate(s)")

        timed_out = 0
        for request in expired:
            marked = await self.request_repo.update_if_status(
                request.id, _PENDING_REQUEST, status=RequestStatus.TIMEOUT.value, resolved_at=now
            )
            if not marked:
                continue
            timed_out += 1
            instance = await self.instance_repo.get_by_id(request.workflow_instance_id)
            if not instance:
                continue
            LOGGER.info(f"Approval request {request.id} for {request.approver_id} timed out")
            await self.gateway.notify(
                instance.case_id,
                instance.initiated_by,
                "approval_timeout",
                f"Approval timeout: {instance.entity_title}",
                {
                    "workflow_instance_id": str(instance.id),
                    "approver": request.approver_id,
                    "step_number": request.step_number,
                },
                "critical",
            )
            await self.gateway.audit(
                instance.case_id,
                SYSTEM_ACTOR,
                "approval_timeout",
                {"workflow_instance_id": instance.id, "approver": request.approver_id},
            )

        LOGGER.info(f"Approval timeout sweep finished: {timed_out} request(s) timed out")
        return timed_out

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        return await self.execute(self._get_instance, instance_id)

    async def requests(
        self, instance_id: UUID, status: Optional[RequestStatus] = None
    ) -> List[ApprovalRequest]:
        return await self.execute(
            self.request_repo.list_for_instance,
            instance_id,
            RequestStatus(status).value if status else None,
        )

    async def pending_for(self, approver_id: str) -> List[ApprovalRequest]:
        """An approver's pending requests, soonest deadline first."""
        return await self.execute(self.request_repo.get_pending_for_approver, approver_id)

    async def history(
        self, entity_type: ApprovalEntityType, entity_id: UUID
    ) -> List[WorkflowInstance]:
        return await self.execute(
            self.instance_repo.get_history, ApprovalEntityType(entity_type).value, entity_id
        )

    async def actions(self, instance_id: UUID) -> List[ApprovalAction]:
        return await self.execute(self.action_repo.list_for_instance, instance_id)
