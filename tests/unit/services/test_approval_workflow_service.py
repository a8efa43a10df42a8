"""Unit tests for the approval workflow engine."""

from datetime import timedelta
from uuid import uuid4

import pytest

from coordinator.core.collaborators import CollaboratorGateway, StaticRoleResolver
from coordinator.core.exceptions import (
    AppError,
    ConfigurationError,
    DelegationNotAllowedError,
    DuplicatePendingRequestError,
    NoPendingRequestError,
    ValidationError,
    WorkflowDefinitionNotFoundError,
    WorkflowTerminatedError,
)
from coordinator.schemas.approvals import ApprovalStep, WorkflowDefinitionConfig
from coordinator.schemas.enums import (
    ApprovalActionType,
    ApprovalEntityType,
    CompletionMode,
    RequestStatus,
    Role,
    WorkflowStatus,
)
from coordinator.schemas.events import EventKind
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.utils.time import as_utc

INITIATOR = "orchestrator"


def two_step_review(**overrides) -> WorkflowDefinitionConfig:
    """Analyst then manager, sequentially."""
    config = {
        "name": "Two step review",
        "entity_type": ApprovalEntityType.TEMPLATE_RESPONSE,
        "mode": CompletionMode.SEQUENTIAL,
        "steps": [
            ApprovalStep(step_number=1, approver_role=Role.ANALYST),
            ApprovalStep(step_number=2, approver_role=Role.MANAGER),
        ],
    }
    config.update(overrides)
    return WorkflowDefinitionConfig(**config)


class UnreachableDirectory(StaticRoleResolver):
    """Role directory whose lookups for some roles fail."""

    def __init__(self, members, down=()):
        super().__init__(members)
        self.down = set(down)

    async def resolve(self, case_id, role):
        if role in self.down:
            raise ConnectionError("directory unavailable")
        return await super().resolve(case_id, role)


async def pending_pairs(service, instance_id):
    requests = await service.requests(instance_id, RequestStatus.PENDING)
    return sorted((r.step_number, r.approver_id) for r in requests)


@pytest.fixture
async def seeded(approval_service):
    await approval_service.seed_system_definitions()
    return approval_service


@pytest.fixture
async def two_step_instance(approval_service, case_id):
    definition = await approval_service.create_definition(two_step_review())
    return await approval_service.initiate(
        case_id,
        ApprovalEntityType.TEMPLATE_RESPONSE,
        uuid4(),
        "Management presentation answers",
        INITIATOR,
        definition.id,
    )


@pytest.fixture
async def analysis_plan(seeded, case_id):
    """Parallel: deal lead (required, delegable, 24h) and domain expert (optional, 48h)."""
    return await seeded.initiate(
        case_id, ApprovalEntityType.ANALYSIS_PLAN, uuid4(), "Commercial plan", INITIATOR
    )


class TestDefinitions:
    """Tests for seeding and selecting workflow definitions."""

    async def test_seed_is_idempotent(self, approval_service):
        assert await approval_service.seed_system_definitions() == 5
        assert await approval_service.seed_system_definitions() == 0

        definitions = await approval_service.list_definitions(ApprovalEntityType.FINDING)
        assert {d.name for d in definitions} == {
            "Standard Finding Approval",
            "Critical Finding Approval",
        }
        assert all(d.is_system_workflow for d in definitions)

    async def test_standard_definition_is_the_finding_default(self, seeded, case_id):
        instance = await seeded.initiate(
            case_id, ApprovalEntityType.FINDING, uuid4(), "EBITDA bridge", INITIATOR
        )

        definition = await seeded.get_definition(instance.workflow_definition_id)
        assert definition.name == "Standard Finding Approval"

    async def test_case_specific_definition_wins(self, seeded, case_id):
        custom = await seeded.create_definition(
            two_step_review(name="Case finding review", entity_type=ApprovalEntityType.FINDING),
            case_id=case_id,
        )

        instance = await seeded.initiate(
            case_id, ApprovalEntityType.FINDING, uuid4(), "EBITDA bridge", INITIATOR
        )

        assert instance.workflow_definition_id == custom.id

    async def test_no_definition_for_entity_type(self, approval_service, case_id):
        with pytest.raises(WorkflowDefinitionNotFoundError):
            await approval_service.initiate(
                case_id, ApprovalEntityType.RED_FLAG_RESOLUTION, uuid4(), "x", INITIATOR
            )

    async def test_explicit_definition_must_match_entity_type(self, approval_service, case_id):
        definition = await approval_service.create_definition(two_step_review())

        with pytest.raises(ValidationError):
            await approval_service.initiate(
                case_id, ApprovalEntityType.FINDING, uuid4(), "x", INITIATOR, definition.id
            )


class TestInitiate:
    """Tests for ApprovalWorkflowService.initiate."""

    async def test_sequential_materializes_first_step_only(self, approval_service, two_step_instance):
        assert two_step_instance.status == WorkflowStatus.IN_PROGRESS.value
        assert two_step_instance.current_step == 1
        assert await pending_pairs(approval_service, two_step_instance.id) == [(1, "alice")]

    async def test_parallel_materializes_every_step(self, approval_service, analysis_plan):
        assert await pending_pairs(approval_service, analysis_plan.id) == [
            (1, "dana"),
            (1, "devon"),
        ]

    async def test_deadline_follows_step_timeout(self, approval_service, analysis_plan):
        requests = await approval_service.requests(analysis_plan.id)
        by_approver = {r.approver_id: r for r in requests}

        dana = by_approver["dana"]
        assert as_utc(dana.deadline) == as_utc(dana.created_at) + timedelta(hours=24)
        devon = by_approver["devon"]
        assert as_utc(devon.deadline) == as_utc(devon.created_at) + timedelta(hours=48)

    async def test_approvers_notified_and_initiation_audited(
        self, approval_service, two_step_instance, notifications, audit
    ):
        requested = notifications.of_kind("approval_requested")
        assert [n["identity"] for n in requested] == ["alice"]
        assert requested[0]["priority"] == "high"
        assert "workflow_initiated" in audit.action_types()

    async def test_initiation_emits_event(self, approval_service, events, case_id):
        queue = events.subscribe([EventKind.WORKFLOW_INITIATED])
        definition = await approval_service.create_definition(two_step_review())

        instance = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )

        assert queue.get_nowait().payload["instance_id"] == str(instance.id)

    async def test_unresolvable_first_step(self, session, clock, case_id):
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(StaticRoleResolver()), clock=clock
        )
        definition = await service.create_definition(two_step_review())

        with pytest.raises(ConfigurationError):
            await service.initiate(
                case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
            )

    async def test_sequential_skips_optional_steps_nobody_holds(self, session, clock, case_id):
        """An optional step whose role has no members is skipped."""
        resolver = StaticRoleResolver({Role.MANAGER: ["morgan"]})
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(resolver), clock=clock
        )
        definition = await service.create_definition(
            two_step_review(
                steps=[
                    ApprovalStep(step_number=1, approver_role=Role.ANALYST, required=False),
                    ApprovalStep(step_number=2, approver_role=Role.MANAGER),
                ]
            )
        )

        instance = await service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )

        assert instance.current_step == 2
        assert await pending_pairs(service, instance.id) == [(2, "morgan")]

    async def test_required_step_nobody_holds_fails_initiation(self, session, clock, case_id):
        resolver = StaticRoleResolver({Role.MANAGER: ["morgan"]})
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(resolver), clock=clock
        )
        definition = await service.create_definition(two_step_review())
        entity_id = uuid4()

        with pytest.raises(ConfigurationError):
            await service.initiate(
                case_id, ApprovalEntityType.TEMPLATE_RESPONSE, entity_id, "x", INITIATOR, definition.id
            )

        assert await service.history(ApprovalEntityType.TEMPLATE_RESPONSE, entity_id) == []

    async def test_parallel_required_step_nobody_holds(self, session, clock, case_id):
        resolver = StaticRoleResolver({Role.ANALYST: ["alice"]})
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(resolver), clock=clock
        )
        definition = await service.create_definition(
            two_step_review(mode=CompletionMode.PARALLEL)
        )

        with pytest.raises(ConfigurationError):
            await service.initiate(
                case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
            )

    async def test_resolver_failure_fails_initiation(self, session, clock, case_id):
        service = ApprovalWorkflowService(
            session,
            gateway=CollaboratorGateway(UnreachableDirectory({}, down=[Role.ANALYST])),
            clock=clock,
        )
        definition = await service.create_definition(two_step_review())

        with pytest.raises(AppError) as exc_info:
            await service.initiate(
                case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
            )

        assert isinstance(exc_info.value.original_error, ConnectionError)

    async def test_named_approver_bypasses_role_resolution(self, approval_service, case_id):
        definition = await approval_service.create_definition(
            two_step_review(
                steps=[ApprovalStep(step_number=1, approver_user_id="external-counsel")],
            )
        )

        instance = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )

        assert await pending_pairs(approval_service, instance.id) == [(1, "external-counsel")]


class TestAutoApprove:
    """Tests for the auto-approve fast path."""

    async def test_confident_low_impact_finding_is_auto_approved(
        self, seeded, findings, make_finding, case_id, audit
    ):
        finding = make_finding(confidence=0.97, impact="low")
        findings.add(finding)

        instance = await seeded.initiate(
            case_id, ApprovalEntityType.FINDING, finding.id, finding.title, INITIATOR
        )

        assert instance.status == WorkflowStatus.APPROVED.value
        assert instance.auto_approved is True
        assert instance.completed_at is not None
        assert await seeded.requests(instance.id) == []
        assert "auto_approved" in audit.action_types()

    @pytest.mark.parametrize("confidence,impact", [(0.97, "high"), (0.80, "low")])
    async def test_predicate_must_hold_entirely(
        self, seeded, findings, make_finding, case_id, confidence, impact
    ):
        finding = make_finding(confidence=confidence, impact=impact)
        findings.add(finding)

        instance = await seeded.initiate(
            case_id, ApprovalEntityType.FINDING, finding.id, finding.title, INITIATOR
        )

        assert instance.status == WorkflowStatus.IN_PROGRESS.value
        assert instance.auto_approved is False

    async def test_unknown_finding_goes_through_workflow(self, seeded, case_id):
        instance = await seeded.initiate(
            case_id, ApprovalEntityType.FINDING, uuid4(), "Unindexed", INITIATOR
        )

        assert instance.status == WorkflowStatus.IN_PROGRESS.value


class TestApprove:
    """Tests for approvals and step advancement."""

    async def test_sequential_advance_to_next_approver(self, approval_service, two_step_instance):
        """Analyst approval opens exactly one request, for the manager."""
        updated = await approval_service.approve(two_step_instance.id, "alice", "Looks right")

        assert updated.status == WorkflowStatus.IN_PROGRESS.value
        assert updated.current_step == 2
        assert await pending_pairs(approval_service, two_step_instance.id) == [(2, "morgan")]

    async def test_later_step_cannot_act_early(self, approval_service, two_step_instance):
        with pytest.raises(NoPendingRequestError):
            await approval_service.approve(two_step_instance.id, "morgan")

    async def test_last_step_approves_instance(
        self, approval_service, two_step_instance, notifications, events
    ):
        queue = events.subscribe([EventKind.WORKFLOW_COMPLETED])
        await approval_service.approve(two_step_instance.id, "alice")

        updated = await approval_service.approve(two_step_instance.id, "morgan")

        assert updated.status == WorkflowStatus.APPROVED.value
        assert updated.completed_at is not None
        assert [n["identity"] for n in notifications.of_kind("workflow_approved")] == [INITIATOR]
        assert queue.get_nowait().payload["status"] == WorkflowStatus.APPROVED.value

    async def test_approving_twice_fails(self, approval_service, two_step_instance):
        await approval_service.approve(two_step_instance.id, "alice")

        with pytest.raises(NoPendingRequestError):
            await approval_service.approve(two_step_instance.id, "alice")

    async def test_approval_is_logged(self, approval_service, two_step_instance):
        await approval_service.approve(two_step_instance.id, "alice", "Checked figures")

        actions = await approval_service.actions(two_step_instance.id)

        assert [(a.actor_id, a.action, a.comments) for a in actions] == [
            ("alice", ApprovalActionType.APPROVED.value, "Checked figures")
        ]

    async def test_unreachable_directory_keeps_step_open(self, session, clock, case_id):
        """A failed lookup for the next step leaves the approval unapplied."""
        directory = UnreachableDirectory(
            {Role.ANALYST: ["alice"], Role.MANAGER: ["morgan"]}, down=[Role.MANAGER]
        )
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(directory), clock=clock
        )
        definition = await service.create_definition(two_step_review())
        instance = await service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )

        with pytest.raises(AppError):
            await service.approve(instance.id, "alice")

        unchanged = await service.get_instance(instance.id)
        assert unchanged.status == WorkflowStatus.IN_PROGRESS.value
        assert unchanged.current_step == 1
        assert await pending_pairs(service, instance.id) == [(1, "alice")]
        assert await service.actions(instance.id) == []

        directory.down.clear()
        recovered = await service.approve(instance.id, "alice")

        assert recovered.current_step == 2
        assert await pending_pairs(service, instance.id) == [(2, "morgan")]

    async def test_required_step_without_members_blocks_advance(self, session, clock, case_id):
        """The required manager step is never skipped on the way to approval."""
        resolver = StaticRoleResolver({Role.ANALYST: ["alice"]})
        service = ApprovalWorkflowService(
            session, gateway=CollaboratorGateway(resolver), clock=clock
        )
        definition = await service.create_definition(two_step_review())
        instance = await service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )

        with pytest.raises(ConfigurationError):
            await service.approve(instance.id, "alice")

        unchanged = await service.get_instance(instance.id)
        assert unchanged.status == WorkflowStatus.IN_PROGRESS.value
        assert unchanged.current_step == 1
        assert await pending_pairs(service, instance.id) == [(1, "alice")]

    async def test_parallel_waits_for_every_request(self, approval_service, analysis_plan):
        after_first = await approval_service.approve(analysis_plan.id, "dana")
        assert after_first.status == WorkflowStatus.IN_PROGRESS.value

        after_second = await approval_service.approve(analysis_plan.id, "devon")
        assert after_second.status == WorkflowStatus.APPROVED.value

    async def test_any_one_completes_on_first_approval(self, seeded, case_id):
        instance = await seeded.initiate(
            case_id, ApprovalEntityType.EXECUTIVE_SUMMARY, uuid4(), "IC memo", INITIATOR
        )
        assert len(await pending_pairs(seeded, instance.id)) == 2

        updated = await seeded.approve(instance.id, "blake")

        assert updated.status == WorkflowStatus.APPROVED.value
        assert await pending_pairs(seeded, instance.id) == []


class TestReject:
    """Tests for ApprovalWorkflowService.reject."""

    async def test_single_rejection_ends_parallel_workflow(
        self, approval_service, analysis_plan, notifications, audit
    ):
        updated = await approval_service.reject(analysis_plan.id, "devon", "Scope too narrow")

        assert updated.status == WorkflowStatus.REJECTED.value
        assert await pending_pairs(approval_service, analysis_plan.id) == []
        rejected = notifications.of_kind("approval_rejected")
        assert [n["identity"] for n in rejected] == [INITIATOR]
        assert rejected[0]["payload"]["reason"] == "Scope too narrow"
        assert "approval_rejected" in audit.action_types()

    async def test_sequential_rejection_is_terminal(self, approval_service, two_step_instance):
        await approval_service.approve(two_step_instance.id, "alice")

        updated = await approval_service.reject(two_step_instance.id, "morgan", "Numbers off")

        assert updated.status == WorkflowStatus.REJECTED.value
        with pytest.raises(WorkflowTerminatedError):
            await approval_service.approve(two_step_instance.id, "morgan")


class TestDelegate:
    """Tests for ApprovalWorkflowService.delegate."""

    async def test_delegation_reassigns_request(
        self, approval_service, analysis_plan, notifications
    ):
        request = await approval_service.delegate(analysis_plan.id, "dana", "sam", "On leave")

        assert request.approver_id == "sam"
        assert request.original_approver_id == "dana"
        assert request.status == RequestStatus.PENDING.value
        assert [n["identity"] for n in notifications.of_kind("approval_delegated")] == ["sam"]

        actions = await approval_service.actions(analysis_plan.id)
        assert actions[-1].action == ApprovalActionType.DELEGATED.value
        assert actions[-1].delegated_to == "sam"

    async def test_delegator_loses_the_request(self, approval_service, analysis_plan):
        await approval_service.delegate(analysis_plan.id, "dana", "sam")

        with pytest.raises(NoPendingRequestError):
            await approval_service.approve(analysis_plan.id, "dana")
        await approval_service.approve(analysis_plan.id, "sam")
        updated = await approval_service.approve(analysis_plan.id, "devon")
        assert updated.status == WorkflowStatus.APPROVED.value

    async def test_redelegation_keeps_first_approver(self, approval_service, analysis_plan):
        await approval_service.delegate(analysis_plan.id, "dana", "sam")

        request = await approval_service.delegate(analysis_plan.id, "sam", "riley")

        assert request.original_approver_id == "dana"

    async def test_step_forbidding_delegation(self, approval_service, analysis_plan):
        with pytest.raises(DelegationNotAllowedError):
            await approval_service.delegate(analysis_plan.id, "devon", "sam")

    async def test_delegate_with_pending_request(self, approval_service, analysis_plan):
        with pytest.raises(DuplicatePendingRequestError):
            await approval_service.delegate(analysis_plan.id, "dana", "devon")

    async def test_delegate_to_self(self, approval_service, analysis_plan):
        with pytest.raises(ValidationError):
            await approval_service.delegate(analysis_plan.id, "dana", "dana")


class TestRequestChangesAndCancel:
    """Tests for change requests and cancellation."""

    async def test_request_changes_keeps_request_pending(
        self, approval_service, two_step_instance, notifications
    ):
        action = await approval_service.request_changes(
            two_step_instance.id, "alice", "Add the churn cohort table"
        )

        assert action.action == ApprovalActionType.REQUESTED_CHANGES.value
        assert await pending_pairs(approval_service, two_step_instance.id) == [(1, "alice")]
        changes = notifications.of_kind("changes_requested")
        assert changes[0]["identity"] == INITIATOR

    async def test_cancel_retires_open_requests(self, approval_service, analysis_plan):
        updated = await approval_service.cancel(analysis_plan.id, INITIATOR, "Plan superseded")

        assert updated.status == WorkflowStatus.CANCELLED.value
        assert await pending_pairs(approval_service, analysis_plan.id) == []
        with pytest.raises(WorkflowTerminatedError):
            await approval_service.cancel(analysis_plan.id, INITIATOR)


class TestTimeouts:
    """Tests for the approval timeout sweep."""

    async def test_required_timeout_is_reported_not_resolved(
        self, seeded, case_id, clock, notifications, audit
    ):
        instance = await seeded.initiate(
            case_id, ApprovalEntityType.PHASE_TRANSITION, uuid4(), "Move to deep dive", INITIATOR
        )
        clock.advance(hours=49)

        assert await seeded.process_timeouts() == 1

        updated = await seeded.get_instance(instance.id)
        assert updated.status == WorkflowStatus.IN_PROGRESS.value
        assert updated.current_step == 1
        lapsed = await seeded.requests(instance.id)
        assert [(r.approver_id, r.status) for r in lapsed] == [
            ("dana", RequestStatus.TIMEOUT.value)
        ]
        timeouts = notifications.of_kind("approval_timeout")
        assert [(n["identity"], n["priority"]) for n in timeouts] == [(INITIATOR, "critical")]
        assert notifications.of_kind("workflow_timeout") == []
        assert "approval_timeout" in audit.action_types()

    async def test_sequential_timeout_does_not_open_next_step(
        self, approval_service, case_id, clock
    ):
        definition = await approval_service.create_definition(
            two_step_review(
                steps=[
                    ApprovalStep(
                        step_number=1, approver_role=Role.ANALYST, required=False, timeout_hours=1
                    ),
                    ApprovalStep(step_number=2, approver_role=Role.MANAGER),
                ]
            )
        )
        instance = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )
        clock.advance(hours=2)

        assert await approval_service.process_timeouts() == 1

        updated = await approval_service.get_instance(instance.id)
        assert updated.status == WorkflowStatus.IN_PROGRESS.value
        assert updated.current_step == 1
        assert [r.step_number for r in await approval_service.requests(instance.id)] == [1]

    async def test_sweep_is_idempotent(self, seeded, case_id, clock):
        await seeded.initiate(
            case_id, ApprovalEntityType.PHASE_TRANSITION, uuid4(), "Move to deep dive", INITIATOR
        )
        clock.advance(hours=49)

        assert await seeded.process_timeouts() == 1
        assert await seeded.process_timeouts() == 0

    async def test_nothing_expires_before_deadline(self, seeded, analysis_plan, clock):
        clock.advance(hours=23)

        assert await seeded.process_timeouts() == 0
        assert len(await pending_pairs(seeded, analysis_plan.id)) == 2

    async def test_sweep_never_approves_parallel_instance(self, seeded, analysis_plan, clock):
        await seeded.approve(analysis_plan.id, "dana")
        clock.advance(hours=49)

        assert await seeded.process_timeouts() == 1

        updated = await seeded.get_instance(analysis_plan.id)
        assert updated.status == WorkflowStatus.IN_PROGRESS.value
        assert updated.completed_at is None

    async def test_parallel_with_lapsed_request_is_never_approved(
        self, approval_service, case_id, clock
    ):
        definition = await approval_service.create_definition(
            two_step_review(
                mode=CompletionMode.PARALLEL,
                steps=[
                    ApprovalStep(step_number=1, approver_role=Role.ANALYST),
                    ApprovalStep(
                        step_number=2, approver_role=Role.MANAGER, required=False, timeout_hours=1
                    ),
                ],
            )
        )
        instance = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "x", INITIATOR, definition.id
        )
        clock.advance(hours=2)
        await approval_service.process_timeouts()

        updated = await approval_service.approve(instance.id, "alice")

        assert updated.status == WorkflowStatus.TIMEOUT.value

    async def test_timeout_leaves_other_requests_pending(self, seeded, analysis_plan, clock):
        """The sweep reports a lapse; it never substitutes an approver."""
        clock.advance(hours=25)

        assert await seeded.process_timeouts() == 1

        assert await pending_pairs(seeded, analysis_plan.id) == [(1, "devon")]
        updated = await seeded.get_instance(analysis_plan.id)
        assert updated.status == WorkflowStatus.IN_PROGRESS.value


class TestQueries:
    """Tests for approver inboxes and entity history."""

    async def test_pending_for_orders_by_deadline_open_ended_last(self, seeded, case_id):
        sign_off = await seeded.create_definition(
            two_step_review(
                name="Deal lead sign-off",
                steps=[ApprovalStep(step_number=1, approver_role=Role.DEAL_LEAD)],
            )
        )
        open_ended = await seeded.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, uuid4(), "Q&A", INITIATOR, sign_off.id
        )
        two_days = await seeded.initiate(
            case_id, ApprovalEntityType.PHASE_TRANSITION, uuid4(), "Phase", INITIATOR
        )
        one_day = await seeded.initiate(
            case_id, ApprovalEntityType.ANALYSIS_PLAN, uuid4(), "Plan", INITIATOR
        )

        inbox = await seeded.pending_for("dana")

        assert [r.workflow_instance_id for r in inbox] == [one_day.id, two_days.id, open_ended.id]

    async def test_history_newest_first(self, approval_service, case_id):
        definition = await approval_service.create_definition(two_step_review())
        entity_id = uuid4()
        first = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, entity_id, "v1", INITIATOR, definition.id
        )
        await approval_service.reject(first.id, "alice", "Redo")
        second = await approval_service.initiate(
            case_id, ApprovalEntityType.TEMPLATE_RESPONSE, entity_id, "v2", INITIATOR, definition.id
        )

        history = await approval_service.history(ApprovalEntityType.TEMPLATE_RESPONSE, entity_id)

        assert [i.id for i in history] == [second.id, first.id]
