"""Contracts for the external collaborators and their default implementations.

The coordination layer reads findings, resolves roles to identities, requests
notifications and appends audit entries through these interfaces only.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coordinator.database.models import AuditEntry
from coordinator.repositories.case_repository import CaseAccessRepository
from coordinator.schemas.enums import Role
from coordinator.schemas.findings import Finding
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, utc_now

LOGGER = get_logger(__name__)


@runtime_checkable
class FindingSource(Protocol):
    async def get_finding(self, finding_id: UUID) -> Optional[Finding]: ...


@runtime_checkable
class RoleResolver(Protocol):
    async def resolve(self, case_id: UUID, role: Role) -> List[str]: ...


@runtime_checkable
class NotificationSink(Protocol):
    async def notify(
        self,
        case_id: UUID,
        identity: str,
        kind: str,
        title: str,
        payload: Dict[str, Any],
        priority: str,
    ) -> None: ...


@runtime_checkable
class AuditSink(Protocol):
    async def record(
        self,
        case_id: Optional[UUID],
        actor: str,
        action_type: str,
        details: Dict[str, Any],
    ) -> None: ...


class CaseAccessRoleResolver:
    """Resolve roles from the case_access membership table."""

    def __init__(self, session: AsyncSession):
        self.repository = CaseAccessRepository(session)

    async def resolve(self, case_id: UUID, role: Role) -> List[str]:
        return await self.repository.get_members(case_id, Role(role).value)


class StaticRoleResolver:
    """In-memory role membership, shared by every case unless overridden."""

    def __init__(self, members: Optional[Dict[Role, List[str]]] = None):
        self._members: Dict[Role, List[str]] = {
            Role(role): list(ids) for role, ids in (members or {}).items()
        }
        self._case_members: Dict[UUID, Dict[Role, List[str]]] = {}

    def add(self, role: Role, identity: str, case_id: Optional[UUID] = None) -> None:
        target = self._members if case_id is None else self._case_members.setdefault(case_id, {})
        identities = target.setdefault(Role(role), [])
        if identity not in identities:
            identities.append(identity)

    async def resolve(self, case_id: UUID, role: Role) -> List[str]:
        case_members = self._case_members.get(case_id, {})
        if Role(role) in case_members:
            return list(case_members[Role(role)])
        return list(self._members.get(Role(role), []))


class LoggingNotificationSink:
    """Notification sink that only writes a log line per notification."""

    async def notify(
        self,
        case_id: UUID,
        identity: str,
        kind: str,
        title: str,
        payload: Dict[str, Any],
        priority: str,
    ) -> None:
        LOGGER.info(f"[notify:{priority}] {kind} -> {identity} (case {case_id}): {title}")


class LoggingAuditSink:
    async def record(
        self,
        case_id: Optional[UUID],
        actor: str,
        action_type: str,
        details: Dict[str, Any],
    ) -> None:
        LOGGER.info(f"[audit] {action_type} by {actor} (case {case_id}): {details}")


class DatabaseAuditSink:
    """Append audit entries using a dedicated session per entry.

    A separate session keeps audit failures from poisoning the caller's
    unit of work.
    """

    def __init__(self, session_maker: async_sessionmaker, clock: Clock = utc_now):
        self.session_maker = session_maker
        self.clock = clock

    async def record(
        self,
        case_id: Optional[UUID],
        actor: str,
        action_type: str,
        details: Dict[str, Any],
    ) -> None:
        async with self.session_maker() as session:
            session.add(
                AuditEntry(
                    case_id=case_id,
                    actor=actor,
                    action_type=action_type,
                    details=to_jsonable_python(details),
                    created_at=self.clock(),
                )
            )
            await session.commit()


class StaticFindingSource:
    """Findings held in memory, keyed by id."""

    def __init__(self, findings: Iterable[Finding] = ()):
        self._findings: Dict[UUID, Finding] = {f.id: f for f in findings}

    def add(self, finding: Finding) -> None:
        self._findings[finding.id] = finding

    async def get_finding(self, finding_id: UUID) -> Optional[Finding]:
        return self._findings.get(finding_id)


class CollaboratorGateway:
    """Access to the role, notification and audit collaborators.

    Notification and audit failures are logged and swallowed: the committed
    database row is the record of truth and delivery is never allowed to fail
    a state change. Role resolution decides who may approve, so its failures
    propagate.
    """

    def __init__(
        self,
        role_resolver: RoleResolver,
        notifications: Optional[NotificationSink] = None,
        audit: Optional[AuditSink] = None,
    ):
        self.role_resolver = role_resolver
        self.notifications = notifications or LoggingNotificationSink()
        self.audit_sink = audit or LoggingAuditSink()

    async def resolve_role(self, case_id: UUID, role: Role) -> List[str]:
        identities = await self.role_resolver.resolve(case_id, Role(role))
        # Keep first occurrence order, drop duplicates
        return list(dict.fromkeys(identities))

    async def notify(
        self,
        case_id: UUID,
        identity: str,
        kind: str,
        title: str,
        payload: Optional[Dict[str, Any]] = None,
        priority: str = "normal",
    ) -> bool:
        try:
            await self.notifications.notify(case_id, identity, kind, title, payload or {}, priority)
            return True
        except Exception:
            LOGGER.error(f"Notification {kind} to {identity} failed", exc_info=True)
            return False

    async def notify_role(
        self,
        case_id: UUID,
        role: Role,
        kind: str,
        title: str,
        payload: Optional[Dict[str, Any]] = None,
        priority: str = "normal",
    ) -> List[str]:
        """Notify every member of a role; returns the identities reached."""
        try:
            identities = await self.resolve_role(case_id, role)
        except Exception:
            LOGGER.error(f"Role resolution failed for {role} on case {case_id}", exc_info=True)
            return []
        if not identities:
            LOGGER.warning(f"No members hold role {Role(role).value} on case {case_id}")
        reached = []
        for identity in identities:
            if await self.notify(case_id, identity, kind, title, payload, priority):
                reached.append(identity)
        return reached

    async def audit(
        self,
        case_id: Optional[UUID],
        actor: str,
        action_type: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self.audit_sink.record(case_id, actor, action_type, details or {})
        except Exception:
            LOGGER.error(f"Audit entry {action_type} for case {case_id} failed", exc_info=True)
