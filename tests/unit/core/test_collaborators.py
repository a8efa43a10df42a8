"""Unit tests for collaborator resolution, delivery and audit."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from coordinator.core.collaborators import (
    CaseAccessRoleResolver,
    CollaboratorGateway,
    DatabaseAuditSink,
    StaticRoleResolver,
)
from coordinator.database.models import AuditEntry
from coordinator.repositories.case_repository import CaseAccessRepository
from coordinator.schemas.enums import Role


class BrokenResolver:
    async def resolve(self, case_id, role):
        raise ConnectionError("directory unavailable")


class TestRoleResolution:
    """Tests for the role resolvers."""

    async def test_case_override_wins_over_shared_members(self, case_id):
        resolver = StaticRoleResolver({Role.PARTNER: ["parker"]})
        resolver.add(Role.PARTNER, "pat", case_id=case_id)

        assert await resolver.resolve(case_id, Role.PARTNER) == ["pat"]
        assert await resolver.resolve(uuid4(), Role.PARTNER) == ["parker"]

    async def test_case_access_resolver(self, session, case_id):
        repository = CaseAccessRepository(session)
        await repository.grant(case_id, "quinn", Role.MANAGER.value)
        await repository.grant(case_id, "morgan", Role.MANAGER.value)
        await repository.grant(case_id, "morgan", Role.MANAGER.value)

        members = await CaseAccessRoleResolver(session).resolve(case_id, Role.MANAGER)

        assert members == ["morgan", "quinn"]

    async def test_gateway_drops_duplicates(self, case_id, notifications):
        gateway = CollaboratorGateway(
            StaticRoleResolver({Role.BOARD: ["blake", "bo", "blake"]}), notifications
        )

        assert await gateway.resolve_role(case_id, Role.BOARD) == ["blake", "bo"]

    async def test_resolver_failure_propagates(self, case_id):
        gateway = CollaboratorGateway(BrokenResolver())

        with pytest.raises(ConnectionError):
            await gateway.resolve_role(case_id, Role.PARTNER)

    async def test_notify_role_survives_resolver_failure(self, case_id, notifications):
        gateway = CollaboratorGateway(BrokenResolver(), notifications)

        reached = await gateway.notify_role(case_id, Role.PARTNER, "red_flag_escalated", "Escalated")

        assert reached == []
        assert notifications.sent == []


class TestDelivery:
    """Tests for best-effort notification and audit."""

    async def test_notify_role_reports_identities_reached(self, case_id, notifications):
        notifications.failing_identities.add("bo")
        gateway = CollaboratorGateway(
            StaticRoleResolver({Role.BOARD: ["blake", "bo"]}), notifications
        )

        reached = await gateway.notify_role(case_id, Role.BOARD, "red_flag_escalated", "Escalated")

        assert reached == ["blake"]
        assert [n["identity"] for n in notifications.sent] == ["blake"]

    async def test_failing_audit_sink_is_swallowed(self, case_id, roles):
        class BrokenAudit:
            async def record(self, case_id, actor, action_type, details):
                raise RuntimeError("audit store down")

        gateway = CollaboratorGateway(roles, audit=BrokenAudit())

        await gateway.audit(case_id, "dana", "approval_granted", {"step": 1})

    async def test_database_audit_sink_persists_entries(self, session_maker, case_id, clock):
        sink = DatabaseAuditSink(session_maker, clock=clock)
        request_id = uuid4()

        await sink.record(case_id, "dana", "approval_granted", {"request_id": request_id})

        async with session_maker() as session:
            entries = (await session.execute(select(AuditEntry))).scalars().all()
        assert len(entries) == 1
        assert entries[0].actor == "dana"
        assert entries[0].details == {"request_id": str(request_id)}
