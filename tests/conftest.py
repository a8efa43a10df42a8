"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coordinator.core.collaborators import (
    CollaboratorGateway,
    StaticFindingSource,
    StaticRoleResolver,
)
from coordinator.core.database import Base
from coordinator.core.events import EventChannel
from coordinator.database import models  # noqa: F401  registers tables on Base.metadata
from coordinator.main import app
from coordinator.schemas.enums import Role
from coordinator.schemas.findings import Finding
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.services.collaborative_task_service import CollaborativeTaskService
from coordinator.services.dependency_service import DependencyService
from coordinator.services.message_bus import MessageBusService
from coordinator.services.red_flag_service import RedFlagService

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced clock.

    Every reading moves time forward by one microsecond so rows written in
    sequence keep a strict creation order.
    """

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(microseconds=1)
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


class RecordingNotificationSink:
    """Notification sink that keeps every notification it is given."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.failing_identities = set()

    async def notify(self, case_id, identity, kind, title, payload, priority) -> None:
        if identity in self.failing_identities:
            raise RuntimeError(f"delivery to {identity} failed")
        self.sent.append(
            {
                "case_id": case_id,
                "identity": identity,
                "kind": kind,
                "title": title,
                "payload": payload,
                "priority": priority,
            }
        )

    def of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n["kind"] == kind]


class RecordingAuditSink:
    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    async def record(self, case_id, actor, action_type, details) -> None:
        self.entries.append(
            {"case_id": case_id, "actor": actor, "action_type": action_type, "details": details}
        )

    def action_types(self) -> List[str]:
        return [e["action_type"] for e in self.entries]


@pytest.fixture
async def session_maker():
    """In-memory SQLite database with every coordination table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_maker) -> AsyncSession:
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def case_id() -> UUID:
    return uuid4()


@pytest.fixture
def roles() -> StaticRoleResolver:
    """One member per role."""
    return StaticRoleResolver(
        {
            Role.ANALYST: ["alice"],
            Role.MANAGER: ["morgan"],
            Role.PARTNER: ["parker"],
            Role.BOARD: ["blake"],
            Role.DEAL_LEAD: ["dana"],
            Role.DOMAIN_EXPERT: ["devon"],
            Role.TECH_LEAD: ["tariq"],
            Role.LEGAL_COUNSEL: ["lena"],
        }
    )


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def gateway(roles, notifications, audit) -> CollaboratorGateway:
    return CollaboratorGateway(roles, notifications=notifications, audit=audit)


@pytest.fixture
def findings() -> StaticFindingSource:
    return StaticFindingSource()


@pytest.fixture
def events() -> EventChannel:
    return EventChannel(max_queue_size=100)


@pytest.fixture
def message_bus(session, events, clock) -> MessageBusService:
    return MessageBusService(session, events=events, clock=clock)


@pytest.fixture
def dependency_service(session, message_bus, events, clock) -> DependencyService:
    return DependencyService(session, message_bus=message_bus, events=events, clock=clock)


@pytest.fixture
def task_service(session, message_bus, events, clock) -> CollaborativeTaskService:
    return CollaborativeTaskService(session, message_bus=message_bus, events=events, clock=clock)


@pytest.fixture
def approval_service(session, gateway, findings, events, clock) -> ApprovalWorkflowService:
    return ApprovalWorkflowService(
        session, gateway=gateway, finding_source=findings, events=events, clock=clock
    )


@pytest.fixture
def red_flag_service(
    session, findings, gateway, message_bus, approval_service, events, clock
) -> RedFlagService:
    return RedFlagService(
        session,
        findings,
        gateway=gateway,
        message_bus=message_bus,
        approvals=approval_service,
        events=events,
        clock=clock,
    )


def build_finding(
    title: str = "Quarterly review",
    description: str = "",
    category: Optional[str] = "financial_metric",
    agent: Optional[str] = "financial",
    confidence: float = 0.9,
    impact: Optional[str] = "high",
    **metadata: Any,
) -> Finding:
    """Build a finding with sensible defaults for pattern and approval tests."""
    return Finding(
        id=uuid4(),
        title=title,
        description=description,
        category=category,
        generated_by_agent=agent,
        confidence_score=confidence,
        impact_level=impact,
        metadata=metadata,
    )


@pytest.fixture
def make_finding():
    """Factory for findings; see ``build_finding``."""
    return build_finding


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    The lifespan is not entered, so no database connection is attempted.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}
