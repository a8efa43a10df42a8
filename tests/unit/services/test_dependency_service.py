"""Unit tests for the dependency graph."""

from uuid import uuid4

import pytest

from coordinator.core.exceptions import (
    DependencyNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from coordinator.schemas.enums import (
    DependencyStatus,
    DependencyType,
    EntityKind,
    MessagePriority,
    MessageType,
)
from coordinator.schemas.events import EventKind


@pytest.fixture
async def dependency(dependency_service, case_id):
    return await dependency_service.create(
        case_id,
        "financial",
        "legal",
        DependencyType.REQUIRES_INPUT,
        EntityKind.FINDING,
        uuid4(),
    )


class TestCreateDependency:
    """Tests for DependencyService.create."""

    async def test_create_stores_pending_dependency(self, dependency):
        assert dependency.status == DependencyStatus.PENDING.value
        assert dependency.target_entity_id is None
        assert dependency.resolved_at is None

    async def test_create_notifies_target_once(self, dependency, message_bus):
        """Exactly one high-priority dependency_update reaches the target agent."""
        inbox = await message_bus.pending("legal")

        assert len(inbox) == 1
        assert inbox[0].from_agent == "financial"
        assert inbox[0].message_type == MessageType.DEPENDENCY_UPDATE.value
        assert inbox[0].priority == MessagePriority.HIGH.value
        assert inbox[0].payload["dependency_id"] == str(dependency.id)

    async def test_agent_cannot_depend_on_itself(self, dependency_service, case_id):
        with pytest.raises(ValidationError):
            await dependency_service.create(
                case_id, "legal", "legal", DependencyType.VALIDATES, EntityKind.ANALYSIS, uuid4()
            )


class TestResolveDependency:
    """Tests for DependencyService.resolve."""

    async def test_resolve_sets_target_and_notifies_source(
        self, dependency_service, dependency, message_bus
    ):
        analysis_id = uuid4()

        resolved = await dependency_service.resolve(
            dependency.id, EntityKind.ANALYSIS, analysis_id, {"summary": "clean"}
        )

        assert resolved.status == DependencyStatus.SATISFIED.value
        assert resolved.target_entity_type == EntityKind.ANALYSIS.value
        assert resolved.target_entity_id == analysis_id
        assert resolved.resolution_data == {"summary": "clean"}
        assert resolved.resolved_at is not None

        replies = await message_bus.pending("financial")
        assert len(replies) == 1
        assert replies[0].from_agent == "legal"
        assert replies[0].priority == MessagePriority.NORMAL.value

    async def test_resolve_emits_event(self, dependency_service, dependency, events):
        queue = events.subscribe([EventKind.DEPENDENCY_RESOLVED])

        await dependency_service.resolve(dependency.id, EntityKind.DOCUMENT, uuid4())

        assert queue.get_nowait().payload["dependency_id"] == str(dependency.id)

    async def test_blocked_dependency_can_still_be_resolved(self, dependency_service, dependency):
        await dependency_service.block(dependency.id, "waiting on data room")

        resolved = await dependency_service.resolve(dependency.id, EntityKind.FINDING, uuid4())

        assert resolved.status == DependencyStatus.SATISFIED.value

    async def test_satisfied_is_terminal(self, dependency_service, dependency):
        await dependency_service.resolve(dependency.id, EntityKind.FINDING, uuid4())

        with pytest.raises(InvalidStatusTransitionError):
            await dependency_service.resolve(dependency.id, EntityKind.FINDING, uuid4())
        with pytest.raises(InvalidStatusTransitionError):
            await dependency_service.cancel(dependency.id)

    async def test_unknown_dependency(self, dependency_service):
        with pytest.raises(DependencyNotFoundError):
            await dependency_service.resolve(uuid4(), EntityKind.FINDING, uuid4())


class TestDependencyQueries:
    """Tests for pending and unsatisfied lookups."""

    async def test_pending_for_target_oldest_first(self, dependency_service, case_id):
        first = await dependency_service.create(
            case_id, "a", "legal", DependencyType.EXTENDS, EntityKind.FINDING, uuid4()
        )
        second = await dependency_service.create(
            case_id, "b", "legal", DependencyType.REFERENCES, EntityKind.FINDING, uuid4()
        )
        await dependency_service.create(
            case_id, "a", "technical", DependencyType.EXTENDS, EntityKind.FINDING, uuid4()
        )

        pending = await dependency_service.pending_for("legal")

        assert [d.id for d in pending] == [first.id, second.id]

    async def test_has_unsatisfied_counts_pending_and_blocked(self, dependency_service, case_id):
        finding_id = uuid4()
        dependency = await dependency_service.create(
            case_id, "financial", "legal", DependencyType.VALIDATES, EntityKind.FINDING, finding_id
        )
        assert await dependency_service.has_unsatisfied(EntityKind.FINDING, finding_id)

        await dependency_service.block(dependency.id, "missing contract")
        assert await dependency_service.has_unsatisfied(EntityKind.FINDING, finding_id)

        await dependency_service.cancel(dependency.id, "no longer needed")
        assert not await dependency_service.has_unsatisfied(EntityKind.FINDING, finding_id)
