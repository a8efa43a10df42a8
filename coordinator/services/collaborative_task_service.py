"""Collaborative tasks: several agents, one aggregated outcome."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.events import EventChannel
from coordinator.core.exceptions import (
    InvalidStatusTransitionError,
    TaskNotFoundError,
    UnknownParticipantError,
    ValidationError,
)
from coordinator.database.models import CollaborativeTask
from coordinator.repositories.task_repository import ACTIVE_TASK_STATUSES, TaskRepository
from coordinator.schemas.enums import MessagePriority, MessageType, ParticipantStatus, TaskStatus
from coordinator.schemas.events import EventKind
from coordinator.schemas.tasks import ParticipantDependencies
from coordinator.services.base_service import BaseService
from coordinator.services.message_bus import MessageBusService
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, utc_now

LOGGER = get_logger(__name__)

_TERMINAL_PARTICIPANT = {ParticipantStatus.COMPLETED.value, ParticipantStatus.FAILED.value}
_TERMINAL_TASK = {TaskStatus.COMPLETED.value, TaskStatus.FAILED.value}


def aggregate_status(progress: Mapping[str, str]) -> TaskStatus:
    """Overall task status from per-participant progress.

    Any failed participant fails the task; otherwise the task completes once
    every participant is terminal.
    """
    statuses = list(progress.values())
    if any(s == ParticipantStatus.FAILED.value for s in statuses):
        return TaskStatus.FAILED
    if statuses and all(s in _TERMINAL_PARTICIPANT for s in statuses):
        return TaskStatus.COMPLETED
    if statuses and all(s == ParticipantStatus.PENDING.value for s in statuses):
        return TaskStatus.INITIALIZED
    return TaskStatus.IN_PROGRESS


class CollaborativeTaskService(BaseService):
    """Dispatches a task to every participant and aggregates their progress."""

    def __init__(
        self,
        session: AsyncSession,
        message_bus: Optional[MessageBusService] = None,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(session, events=events, clock=clock)
        self.task_repo = TaskRepository(session)
        self.message_bus = message_bus or MessageBusService(session, events=events, clock=clock)

    async def create(
        self,
        case_id: UUID,
        task_name: str,
        description: str,
        orchestrator_agent: str,
        participating_agents: Sequence[str],
        dependencies: Optional[Iterable[Union[ParticipantDependencies, Dict[str, Any]]]] = None,
    ) -> CollaborativeTask:
        """Create a task and send one analysis request per participant.

        Every participant is dispatched immediately; each request carries only
        that participant's own dependency list.
        """
        return await self.execute(
            self._create,
            case_id,
            task_name,
            description,
            orchestrator_agent,
            participating_agents,
            dependencies,
        )

    async def _create(
        self,
        case_id: UUID,
        task_name: str,
        description: str,
        orchestrator_agent: str,
        participating_agents: Sequence[str],
        dependencies: Optional[Iterable[Union[ParticipantDependencies, Dict[str, Any]]]],
    ) -> CollaborativeTask:
        participants = list(participating_agents)
        if not participants:
            raise ValidationError("A collaborative task needs at least one participant")
        if len(set(participants)) != len(participants):
            raise ValidationError("Participating agents must be unique")

        dependency_entries = [
            ParticipantDependencies.model_validate(d).model_dump() for d in (dependencies or [])
        ]
        unknown = [d["agent"] for d in dependency_entries if d["agent"] not in participants]
        if unknown:
            raise ValidationError(f"Dependencies reference non-participants: {unknown}")

        LOGGER.info(f"Creating collaborative task '{task_name}' with {len(participants)} participants")
        task = await self.task_repo.create(
            case_id=case_id,
            task_name=task_name,
            description=description,
            orchestrator_agent=orchestrator_agent,
            participating_agents=participants,
            dependencies=dependency_entries,
            progress={agent: ParticipantStatus.PENDING.value for agent in participants},
            results={},
            status=TaskStatus.INITIALIZED.value,
            created_at=self.clock(),
        )

        for agent in participants:
            agent_deps = next(
                (d["depends_on"] for d in dependency_entries if d["agent"] == agent), []
            )
            await self.message_bus.send(
                orchestrator_agent,
                agent,
                case_id,
                MessageType.REQUEST_ANALYSIS,
                f"Collaborative task: {task_name}",
                {
                    "task_id": task.id,
                    "task_name": task_name,
                    "description": description,
                    "dependencies": agent_deps,
                },
                MessagePriority.HIGH,
            )
        return task

    async def update_progress(
        self,
        task_id: UUID,
        agent_id: str,
        status: ParticipantStatus,
        result: Optional[Dict[str, Any]] = None,
    ) -> CollaborativeTask:
        """Record one participant's progress and recompute the task outcome."""
        return await self.execute(self._update_progress, task_id, agent_id, status, result)

    async def _update_progress(
        self,
        task_id: UUID,
        agent_id: str,
        status: ParticipantStatus,
        result: Optional[Dict[str, Any]],
    ) -> CollaborativeTask:
        status = ParticipantStatus(status)
        if status == ParticipantStatus.PENDING:
            raise ValidationError("Progress updates cannot return a participant to pending")

        task = await self._get(task_id)
        if task.status in _TERMINAL_TASK:
            raise InvalidStatusTransitionError("Collaborative task", task_id, task.status, status.value)
        if agent_id not in task.participating_agents:
            raise UnknownParticipantError(f"{agent_id} is not a participant of task {task_id}")
        current = task.progress.get(agent_id)
        if current in _TERMINAL_PARTICIPANT:
            raise InvalidStatusTransitionError(f"Participant {agent_id} of task", task_id, current, status.value)

        progress = dict(task.progress)
        progress[agent_id] = status.value
        results = dict(task.results)
        if result is not None:
            results[agent_id] = to_jsonable_python(result)

        overall = aggregate_status(progress)
        now = self.clock()
        values: Dict[str, Any] = {
            "progress": progress,
            "results": results,
            "status": overall.value,
            "updated_at": now,
        }
        if overall.value in _TERMINAL_TASK:
            values["completed_at"] = now

        # A concurrent update may have finished the task in the meantime
        if not await self.task_repo.update_if_status(task_id, ACTIVE_TASK_STATUSES, **values):
            task = await self._get(task_id)
            raise InvalidStatusTransitionError("Collaborative task", task_id, task.status, overall.value)
        task = await self._get(task_id)
        LOGGER.info(f"Task {task_id}: {agent_id} -> {status.value}, overall {overall.value}")

        await self.message_bus.send(
            agent_id,
            task.orchestrator_agent,
            task.case_id,
            MessageType.TASK_COMPLETE,
            f"Task progress update: {agent_id}",
            {
                "task_id": task.id,
                "agent_id": agent_id,
                "status": status.value,
                "result": result,
            },
            MessagePriority.NORMAL,
        )

        if overall.value in _TERMINAL_TASK:
            self.emit(
                EventKind.TASK_COMPLETED,
                task.case_id,
                task_id=str(task.id),
                status=overall.value,
                results=to_jsonable_python(results),
            )
        return task

    async def get(self, task_id: UUID) -> CollaborativeTask:
        return await self.execute(self._get, task_id)

    async def _get(self, task_id: UUID) -> CollaborativeTask:
        task = await self.task_repo.get_by_id(task_id)
        if not task:
            raise TaskNotFoundError(f"Collaborative task not found: {task_id}")
        return task

    async def active(self, case_id: UUID) -> List[CollaborativeTask]:
        """Tasks of a case that are still initialized or in progress, newest first."""
        return await self.execute(self.task_repo.get_active, case_id)
