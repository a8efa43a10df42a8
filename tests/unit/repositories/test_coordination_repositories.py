"""Unit tests for the conditional writes the coordination repositories rely on."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from coordinator.database.models import RedFlagPattern
from coordinator.repositories.approval_repository import ApprovalRequestRepository
from coordinator.repositories.message_repository import MessageRepository
from coordinator.repositories.red_flag_repository import (
    RedFlagInstanceRepository,
    RedFlagPatternRepository,
)
from coordinator.schemas.enums import ApprovalEntityType


@pytest.fixture
async def seeded_instance(approval_service, case_id):
    """Id of an analysis-plan workflow with dana and devon pending."""
    await approval_service.seed_system_definitions()
    instance = await approval_service.initiate(
        case_id, ApprovalEntityType.ANALYSIS_PLAN, uuid4(), "Plan", "orchestrator"
    )
    return instance.id


@pytest.fixture
async def message(session, case_id, clock):
    return await MessageRepository(session).create(
        case_id=case_id,
        from_agent="financial",
        to_agent="legal",
        message_type="request_analysis",
        subject="Review earn-out clause",
        created_at=clock(),
    )


@pytest.fixture
async def flag(session, case_id, clock):
    pattern = await RedFlagPatternRepository(session).create(
        name="Going Concern Doubt",
        category="financial",
        severity="high",
        conditions={},
        escalation_rules={},
        created_at=clock(),
    )
    now = clock()
    return await RedFlagInstanceRepository(session).create(
        case_id=case_id,
        pattern_id=pattern.id,
        finding_id=uuid4(),
        severity="high",
        title="Going Concern Doubt: FY25",
        detected_at=now,
        sla_deadline=now + timedelta(hours=24),
    )


class TestUpdateIfStatus:
    """Tests for BaseRepository.update_if_status."""

    async def test_applies_while_status_allowed(self, session, message):
        repository = MessageRepository(session)

        updated = await repository.update_if_status(
            message.id, ["pending", "delivered"], status="acknowledged"
        )

        assert updated is True
        assert message.status == "acknowledged"

    async def test_refuses_once_status_moved_on(self, session, message):
        repository = MessageRepository(session)
        await repository.update_if_status(message.id, ["pending"], status="processed")

        updated = await repository.update_if_status(message.id, ["pending"], status="failed")

        assert updated is False
        assert (await repository.get_by_id(message.id)).status == "processed"

    async def test_unknown_row(self, session):
        assert not await MessageRepository(session).update_if_status(
            uuid4(), ["pending"], status="processed"
        )


class TestApprovalRequestConstraints:
    """Tests for the pending-request uniqueness rule."""

    async def test_one_pending_request_per_approver(self, session, seeded_instance):
        repository = ApprovalRequestRepository(session)

        with pytest.raises(IntegrityError):
            await repository.create(
                workflow_instance_id=seeded_instance,
                step_number=1,
                approver_id="dana",
            )

    async def test_resolved_requests_do_not_count(self, session, seeded_instance):
        repository = ApprovalRequestRepository(session)
        pending = await repository.get_pending(seeded_instance, "dana")
        await repository.update_if_status(pending.id, ["pending"], status="approved")

        again = await repository.create(
            workflow_instance_id=seeded_instance, step_number=2, approver_id="dana"
        )

        assert again.status == "pending"
        assert await repository.count_pending(seeded_instance, step_number=2) == 1

    async def test_reassign_only_moves_own_pending_request(self, session, seeded_instance):
        repository = ApprovalRequestRepository(session)
        pending = await repository.get_pending(seeded_instance, "dana")

        assert not await repository.reassign(pending.id, "devon", "sam", "devon")
        assert await repository.reassign(pending.id, "dana", "sam", "dana")
        assert await repository.get_pending(seeded_instance, "sam") is not None
        assert await repository.get_pending(seeded_instance, "dana") is None


class TestRedFlagTransitions:
    """Tests for the sweep's guarded flag updates."""

    async def test_mark_overdue_only_once(self, session, flag, clock):
        repository = RedFlagInstanceRepository(session)
        later = clock() + timedelta(hours=25)

        assert [f.id for f in await repository.get_newly_overdue(later)] == [flag.id]
        assert await repository.mark_overdue(flag.id, later)
        assert not await repository.mark_overdue(flag.id, later)
        assert await repository.get_newly_overdue(later) == []
        assert [f.id for f in await repository.get_overdue_active()] == [flag.id]

    async def test_advance_level_requires_expected_level(self, session, flag, clock):
        repository = RedFlagInstanceRepository(session)

        assert await repository.advance_level(flag.id, 0, 1, clock())
        assert not await repository.advance_level(flag.id, 0, 1, clock())
        assert flag.escalation_level == 1

    async def test_pattern_lookup_by_name(self, session, flag):
        repository = RedFlagPatternRepository(session)

        pattern = await repository.get_by_name("Going Concern Doubt")

        assert isinstance(pattern, RedFlagPattern)
        assert pattern.id == flag.pattern_id

