"""Unit tests for collaborative task orchestration."""

from uuid import uuid4

import pytest

from coordinator.core.exceptions import (
    InvalidStatusTransitionError,
    TaskNotFoundError,
    UnknownParticipantError,
    ValidationError,
)
from coordinator.schemas.enums import MessageType, ParticipantStatus, TaskStatus
from coordinator.schemas.events import EventKind
from coordinator.services.collaborative_task_service import aggregate_status

PARTICIPANTS = ["financial", "legal", "technical"]


@pytest.fixture
async def task(task_service, case_id):
    return await task_service.create(
        case_id,
        "Quality of earnings",
        "Cross-check adjusted EBITDA",
        "orchestrator",
        PARTICIPANTS,
        [{"agent": "legal", "depends_on": ["financial"]}],
    )


class TestAggregateStatus:
    """Tests for the overall status rule."""

    @pytest.mark.parametrize(
        "progress,expected",
        [
            ({"a": "pending", "b": "pending"}, TaskStatus.INITIALIZED),
            ({"a": "in_progress", "b": "pending"}, TaskStatus.IN_PROGRESS),
            ({"a": "completed", "b": "pending"}, TaskStatus.IN_PROGRESS),
            ({"a": "completed", "b": "completed"}, TaskStatus.COMPLETED),
            ({"a": "failed", "b": "pending"}, TaskStatus.FAILED),
            ({"a": "completed", "b": "failed"}, TaskStatus.FAILED),
        ],
    )
    def test_aggregate_status(self, progress, expected):
        """Failed iff any participant failed, else completed iff all are terminal."""
        assert aggregate_status(progress) == expected


class TestCreateTask:
    """Tests for CollaborativeTaskService.create."""

    async def test_create_initializes_progress(self, task):
        assert task.status == TaskStatus.INITIALIZED.value
        assert task.progress == {agent: "pending" for agent in PARTICIPANTS}
        assert task.results == {}

    async def test_each_participant_gets_only_its_dependencies(self, task, message_bus):
        for agent in PARTICIPANTS:
            inbox = await message_bus.pending(agent)
            assert len(inbox) == 1
            assert inbox[0].message_type == MessageType.REQUEST_ANALYSIS.value
            assert inbox[0].payload["task_id"] == str(task.id)

        legal = (await message_bus.pending("legal"))[0]
        financial = (await message_bus.pending("financial"))[0]
        assert legal.payload["dependencies"] == ["financial"]
        assert financial.payload["dependencies"] == []

    async def test_dependencies_must_name_participants(self, task_service, case_id):
        with pytest.raises(ValidationError):
            await task_service.create(
                case_id, "t", "d", "orchestrator", ["legal"], [{"agent": "ghost", "depends_on": []}]
            )

    async def test_participants_required(self, task_service, case_id):
        with pytest.raises(ValidationError):
            await task_service.create(case_id, "t", "d", "orchestrator", [])


class TestUpdateProgress:
    """Tests for CollaborativeTaskService.update_progress."""

    async def test_progress_moves_task_in_progress(self, task_service, task, message_bus):
        updated = await task_service.update_progress(task.id, "financial", ParticipantStatus.IN_PROGRESS)

        assert updated.status == TaskStatus.IN_PROGRESS.value
        assert updated.progress["financial"] == "in_progress"
        reports = await message_bus.pending("orchestrator")
        assert reports[0].message_type == MessageType.TASK_COMPLETE.value

    async def test_all_completed_completes_task(self, task_service, task, events):
        queue = events.subscribe([EventKind.TASK_COMPLETED])

        for agent in PARTICIPANTS:
            updated = await task_service.update_progress(
                task.id, agent, ParticipantStatus.COMPLETED, {"agent": agent}
            )

        assert updated.status == TaskStatus.COMPLETED.value
        assert updated.completed_at is not None
        assert set(updated.results) == set(PARTICIPANTS)
        assert queue.get_nowait().payload["status"] == TaskStatus.COMPLETED.value

    async def test_one_failure_fails_task(self, task_service, task):
        await task_service.update_progress(task.id, "financial", ParticipantStatus.COMPLETED)

        updated = await task_service.update_progress(task.id, "legal", ParticipantStatus.FAILED)

        assert updated.status == TaskStatus.FAILED.value

    async def test_finished_task_rejects_updates(self, task_service, task):
        await task_service.update_progress(task.id, "legal", ParticipantStatus.FAILED)

        with pytest.raises(InvalidStatusTransitionError):
            await task_service.update_progress(task.id, "technical", ParticipantStatus.COMPLETED)

    async def test_unknown_participant(self, task_service, task):
        with pytest.raises(UnknownParticipantError):
            await task_service.update_progress(task.id, "marketing", ParticipantStatus.COMPLETED)

    async def test_unknown_task(self, task_service):
        with pytest.raises(TaskNotFoundError):
            await task_service.update_progress(uuid4(), "legal", ParticipantStatus.COMPLETED)

    async def test_active_lists_unfinished_tasks(self, task_service, task, case_id):
        other = await task_service.create(case_id, "Solo", "", "orchestrator", ["legal"])
        await task_service.update_progress(other.id, "legal", ParticipantStatus.COMPLETED)

        active = await task_service.active(case_id)

        assert [t.id for t in active] == [task.id]
