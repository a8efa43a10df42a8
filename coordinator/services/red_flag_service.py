"""Red-flag detection and the escalation chain.

A scan turns every pattern match into a tracked flag with a fixed SLA
deadline and runs the pattern's immediate actions. The overdue sweep marks
flags past their deadline and walks them up the pattern's role chain; level 0
of the chain is covered by the immediate actions, so the sweep starts at
level 1.
"""

from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.collaborators import CollaboratorGateway, FindingSource
from coordinator.core.events import EventChannel
from coordinator.core.exceptions import (
    FindingNotFoundError,
    InvalidStatusTransitionError,
    PatternNotFoundError,
    RedFlagNotFoundError,
    ValidationError,
)
from coordinator.database.models import EscalationHistory, RedFlagInstance, RedFlagPattern
from coordinator.repositories.red_flag_repository import (
    EscalationHistoryRepository,
    RedFlagInstanceRepository,
    RedFlagPatternRepository,
)
from coordinator.schemas.enums import (
    ACTIVE_RED_FLAG_STATUSES,
    TERMINAL_RED_FLAG_STATUSES,
    ApprovalEntityType,
    EscalationAction,
    MessagePriority,
    MessageType,
    RedFlagStatus,
    Role,
    Severity,
)
from coordinator.schemas.events import EventKind
from coordinator.schemas.findings import Finding
from coordinator.schemas.red_flags import (
    EscalationRules,
    PatternConditions,
    RedFlagPatternConfig,
    SweepResult,
)
from coordinator.services.approval_workflow_service import ApprovalWorkflowService
from coordinator.services.base_service import BaseService
from coordinator.services.message_bus import MessageBusService
from coordinator.services.pattern_matcher import matches
from coordinator.services.system_definitions import SYSTEM_RED_FLAG_PATTERNS
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, as_utc, utc_now

LOGGER = get_logger(__name__)

DETECTOR_AGENT = "red_flag_detector"
SYSTEM_ACTOR = "system"

_NOTIFY_ROLE = {
    EscalationAction.NOTIFY_PARTNER: Role.PARTNER,
    EscalationAction.NOTIFY_DEAL_LEAD: Role.DEAL_LEAD,
    EscalationAction.NOTIFY_BOARD: Role.BOARD,
}


class RedFlagService(BaseService):
    """Scans findings against red-flag patterns and escalates unresolved flags."""

    def __init__(
        self,
        session: AsyncSession,
        finding_source: FindingSource,
        gateway: Optional[CollaboratorGateway] = None,
        message_bus: Optional[MessageBusService] = None,
        approvals: Optional[ApprovalWorkflowService] = None,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(session, gateway=gateway, events=events, clock=clock)
        self.finding_source = finding_source
        self.pattern_repo = RedFlagPatternRepository(session)
        self.flag_repo = RedFlagInstanceRepository(session)
        self.history_repo = EscalationHistoryRepository(session)
        self.message_bus = message_bus or MessageBusService(session, events=events, clock=clock)
        self.approvals = approvals or ApprovalWorkflowService(
            session,
            gateway=self.gateway,
            finding_source=finding_source,
            events=events,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    async def seed_system_patterns(self) -> int:
        """Insert the built-in patterns that are missing, matched by name."""
        return await self.execute(self._seed_system_patterns)

    async def _seed_system_patterns(self) -> int:
        created = 0
        for config in SYSTEM_RED_FLAG_PATTERNS:
            if await self.pattern_repo.get_by_name(config.name):
                continue
            await self._store_pattern(config)
            LOGGER.info(f"Seeded red-flag pattern '{config.name}'")
            created += 1
        return created

    async def create_pattern(self, config: RedFlagPatternConfig) -> RedFlagPattern:
        return await self.execute(self._create_pattern, config)

    async def _create_pattern(self, config: RedFlagPatternConfig) -> RedFlagPattern:
        if await self.pattern_repo.get_by_name(config.name):
            raise ValidationError(f"Red-flag pattern '{config.name}' already exists")
        return await self._store_pattern(config)

    async def _store_pattern(self, config: RedFlagPatternConfig) -> RedFlagPattern:
        return await self.pattern_repo.create(
            name=config.name,
            category=config.category,
            description=config.description,
            severity=config.severity.value,
            conditions=config.conditions.model_dump(mode="json"),
            escalation_rules=config.escalation_rules.model_dump(mode="json"),
            pattern_metadata=config.metadata,
            active=config.active,
            created_at=self.clock(),
        )

    async def set_pattern_active(self, pattern_id: UUID, active: bool) -> RedFlagPattern:
        return await self.execute(self._set_pattern_active, pattern_id, active)

    async def _set_pattern_active(self, pattern_id: UUID, active: bool) -> RedFlagPattern:
        pattern = await self.pattern_repo.update(pattern_id, active=active, updated_at=self.clock())
        if not pattern:
            raise PatternNotFoundError(f"Red-flag pattern not found: {pattern_id}")
        LOGGER.info(f"Pattern '{pattern.name}' {'activated' if active else 'deactivated'}")
        return pattern

    async def list_patterns(self, active_only: bool = False) -> List[RedFlagPattern]:
        if active_only:
            return await self.execute(self.pattern_repo.get_active)
        return await self.execute(self.pattern_repo.get_all)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def scan(self, finding_id: UUID, case_id: UUID) -> List[RedFlagInstance]:
        """Evaluate a finding against every active pattern.

        Returns:
            The flags created, one per matching pattern

        Raises:
            FindingNotFoundError: The finding source does not know the finding
        """
        return await self.execute(self._scan, finding_id, case_id)

    async def _scan(self, finding_id: UUID, case_id: UUID) -> List[RedFlagInstance]:
        finding = await self.finding_source.get_finding(finding_id)
        if finding is None:
            raise FindingNotFoundError(f"Finding not found: {finding_id}")

        flags = []
        for pattern in await self.pattern_repo.get_active():
            try:
                conditions = PatternConditions.model_validate(pattern.conditions)
                rules = EscalationRules.model_validate(pattern.escalation_rules)
            except PydanticValidationError:
                LOGGER.error(f"Skipping pattern '{pattern.name}': stored configuration is invalid", exc_info=True)
                continue
            if not matches(finding, conditions):
                continue
            flags.append(await self._create_flag(case_id, finding, pattern, rules))

        LOGGER.info(f"Scanned finding {finding_id}: {len(flags)} red flag(s) detected")
        return flags

    async def _create_flag(
        self,
        case_id: UUID,
        finding: Finding,
        pattern: RedFlagPattern,
        rules: EscalationRules,
    ) -> RedFlagInstance:
        now = self.clock()
        flag = await self.flag_repo.create(
            case_id=case_id,
            pattern_id=pattern.id,
            finding_id=finding.id,
            severity=pattern.severity,
            title=f"{pattern.name}: {finding.title}",
            description=finding.description,
            detected_at=now,
            status=RedFlagStatus.OPEN.value,
            escalation_level=0,
            sla_deadline=now + timedelta(hours=rules.sla_hours),
            is_overdue=False,
            supporting_findings=[str(finding.id)],
        )
        LOGGER.info(f"Red flag {flag.id} detected by pattern '{pattern.name}' ({pattern.severity})")

        await self.gateway.audit(
            case_id,
            DETECTOR_AGENT,
            "red_flag_detected",
            {
                "red_flag_id": flag.id,
                "pattern": pattern.name,
                "severity": pattern.severity,
                "finding_id": finding.id,
            },
        )
        self.emit(
            EventKind.RED_FLAG_DETECTED,
            case_id,
            red_flag_id=str(flag.id),
            pattern=pattern.name,
            severity=pattern.severity,
        )

        for action in rules.immediate_actions:
            # Each action stands alone; the flag is already committed
            try:
                await self._run_action(flag, pattern, rules, action)
            except Exception:
                LOGGER.error(
                    f"Immediate action {action.value} failed for red flag {flag.id}",
                    exc_info=True,
                )
        return flag

    async def _run_action(
        self,
        flag: RedFlagInstance,
        pattern: RedFlagPattern,
        rules: EscalationRules,
        action: EscalationAction,
    ) -> None:
        if action == EscalationAction.ESCALATE:
            await self._escalate(flag, rules, flag.escalation_level + 1)
            return

        payload = {
            "red_flag_id": str(flag.id),
            "pattern": pattern.name,
            "severity": flag.severity,
            "sla_deadline": as_utc(flag.sla_deadline).isoformat(),
        }
        if action in _NOTIFY_ROLE:
            role = _NOTIFY_ROLE[action]
            await self.gateway.notify_role(
                flag.case_id,
                role,
                "red_flag_detected",
                f"{flag.severity.upper()} Red Flag: {flag.title}",
                payload,
                "critical" if flag.severity == Severity.CRITICAL.value else "high",
            )
            recipient_role = role.value
        elif action == EscalationAction.SCHEDULE_REVIEW:
            await self.gateway.notify_role(
                flag.case_id,
                Role.DEAL_LEAD,
                "red_flag_review_requested",
                f"Review requested: {flag.title}",
                payload,
                "high",
            )
            recipient_role = Role.DEAL_LEAD.value
        elif action == EscalationAction.BLOCK_PHASE_TRANSITION:
            await self.approvals.initiate(
                flag.case_id,
                ApprovalEntityType.PHASE_TRANSITION,
                flag.id,
                f"Phase transition blocked by red flag: {flag.title}",
                DETECTOR_AGENT,
            )
            recipient_role = SYSTEM_ACTOR
        elif action == EscalationAction.TRIGGER_EXPERT_REVIEW:
            await self.message_bus.send(
                DETECTOR_AGENT,
                "expert_review",
                flag.case_id,
                MessageType.ESCALATION,
                f"Expert review needed: {flag.title}",
                payload,
                MessagePriority.HIGH,
            )
            recipient_role = "expert_review"
        else:
            await self.message_bus.send(
                DETECTOR_AGENT,
                "orchestrator",
                flag.case_id,
                MessageType.ESCALATION,
                f"Follow-up task needed: {flag.title}",
                payload,
                MessagePriority.HIGH,
            )
            recipient_role = "orchestrator"

        await self._record_history(flag, flag.escalation_level, recipient_role, action.value)

    async def _record_history(
        self,
        flag: RedFlagInstance,
        level: int,
        role: str,
        action_taken: str,
        escalated_to_user: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> EscalationHistory:
        return await self.history_repo.create(
            red_flag_id=flag.id,
            escalation_level=level,
            escalated_to_role=role,
            escalated_to_user=escalated_to_user,
            action_taken=action_taken,
            notes=notes,
            created_at=self.clock(),
        )

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    async def _escalate(self, flag: RedFlagInstance, rules: EscalationRules, to_level: int) -> bool:
        """Move a flag to ``to_level`` of its chain and notify that level's role.

        Returns False when the chain has no such level or another sweep
        already moved the flag.
        """
        if to_level >= len(rules.escalation_chain):
            LOGGER.info(f"Red flag {flag.id} is at the end of its escalation chain")
            return False
        from_level = flag.escalation_level
        now = self.clock()
        if not await self.flag_repo.advance_level(flag.id, from_level, to_level, now):
            return False

        level = rules.escalation_chain[to_level]
        reached = await self.gateway.notify_role(
            flag.case_id,
            level.role,
            "red_flag_escalated",
            f"ESCALATED: {flag.title}",
            {
                "red_flag_id": str(flag.id),
                "escalation_level": to_level,
                "severity": flag.severity,
            },
            "critical",
        )
        await self._record_history(
            flag,
            to_level,
            level.role.value,
            EscalationAction.ESCALATE.value,
            escalated_to_user=reached[0] if len(reached) == 1 else None,
            notes=f"Escalated from level {from_level}",
        )
        await self.gateway.audit(
            flag.case_id,
            SYSTEM_ACTOR,
            "red_flag_escalated",
            {"red_flag_id": flag.id, "from_level": from_level, "to_level": to_level, "role": level.role.value},
        )
        LOGGER.info(f"Red flag {flag.id} escalated to level {to_level} ({level.role.value})")
        return True

    async def _rules_for(self, flag: RedFlagInstance) -> Optional[EscalationRules]:
        pattern = await self.pattern_repo.get_by_id(flag.pattern_id)
        if not pattern:
            return None
        try:
            return EscalationRules.model_validate(pattern.escalation_rules)
        except PydanticValidationError:
            LOGGER.error(f"Pattern {pattern.id} has invalid escalation rules", exc_info=True)
            return None

    async def process_overdue(self) -> SweepResult:
        """Mark flags past their SLA as overdue and walk the escalation chain.

        Safe to run repeatedly or concurrently: every transition is
        conditional on the state the sweep observed.
        """
        return await self.execute(self._process_overdue)

    async def _process_overdue(self) -> SweepResult:
        now = self.clock()
        processed = 0
        escalated = 0
        touched = set()

        for flag in await self.flag_repo.get_newly_overdue(now):
            if not await self.flag_repo.mark_overdue(flag.id, now):
                continue
            processed += 1
            touched.add(flag.id)
            LOGGER.info(f"Red flag {flag.id} is overdue (deadline {flag.sla_deadline})")
            rules = await self._rules_for(flag)
            if rules and rules.auto_escalate and await self._escalate(
                flag, rules, flag.escalation_level + 1
            ):
                escalated += 1

        for flag in await self.flag_repo.get_overdue_active():
            if flag.id in touched:
                continue
            rules = await self._rules_for(flag)
            if not rules or not rules.auto_escalate:
                continue
            next_level = flag.escalation_level + 1
            if next_level >= len(rules.escalation_chain):
                continue
            since = as_utc(flag.last_escalated_at or flag.sla_deadline)
            if since + timedelta(hours=rules.escalation_chain[next_level].delay_hours) < as_utc(now):
                if await self._escalate(flag, rules, next_level):
                    escalated += 1

        LOGGER.info(f"Overdue sweep finished: {processed} newly overdue, {escalated} escalated")
        return SweepResult(processed=processed, escalated=escalated)

    # ------------------------------------------------------------------
    # Flag lifecycle
    # ------------------------------------------------------------------

    async def get(self, flag_id: UUID) -> RedFlagInstance:
        return await self.execute(self._get, flag_id)

    async def _get(self, flag_id: UUID) -> RedFlagInstance:
        flag = await self.flag_repo.get_by_id(flag_id)
        if not flag:
            raise RedFlagNotFoundError(f"Red flag not found: {flag_id}")
        return flag

    async def list(
        self,
        case_id: UUID,
        status: Optional[RedFlagStatus] = None,
        severity: Optional[Severity] = None,
        overdue_only: bool = False,
    ) -> List[RedFlagInstance]:
        """Flags of a case, most severe first, newest first within a severity."""
        return await self.execute(
            self.flag_repo.list_for_case,
            case_id,
            RedFlagStatus(status).value if status else None,
            Severity(severity).value if severity else None,
            overdue_only,
        )

    async def history(self, flag_id: UUID) -> List[EscalationHistory]:
        return await self.execute(self.history_repo.list_for_flag, flag_id)

    async def update_status(
        self,
        flag_id: UUID,
        status: RedFlagStatus,
        actor_id: str = SYSTEM_ACTOR,
        notes: Optional[str] = None,
        mitigation_plan: Optional[str] = None,
    ) -> RedFlagInstance:
        """Move a flag to a new status; resolved and false_positive are final.

        Raises:
            RedFlagNotFoundError: Unknown flag
            InvalidStatusTransitionError: The flag is already closed
        """
        return await self.execute(
            self._update_status, flag_id, status, actor_id, notes, mitigation_plan
        )

    async def _update_status(
        self,
        flag_id: UUID,
        status: RedFlagStatus,
        actor_id: str,
        notes: Optional[str],
        mitigation_plan: Optional[str],
    ) -> RedFlagInstance:
        status = RedFlagStatus(status)
        flag = await self._get(flag_id)
        open_statuses = [s.value for s in RedFlagStatus if s.value not in TERMINAL_RED_FLAG_STATUSES]
        if flag.status in TERMINAL_RED_FLAG_STATUSES:
            raise InvalidStatusTransitionError("RedFlag", flag_id, flag.status, status.value)

        now = self.clock()
        values = {"status": status.value, "updated_at": now}
        if status.value in TERMINAL_RED_FLAG_STATUSES:
            values.update(resolved_at=now, resolved_by=actor_id, resolution_notes=notes)
        if mitigation_plan is not None:
            values["mitigation_plan"] = mitigation_plan

        previous = flag.status
        if not await self.flag_repo.update_if_status(flag_id, open_statuses, **values):
            flag = await self._get(flag_id)
            raise InvalidStatusTransitionError("RedFlag", flag_id, flag.status, status.value)
        LOGGER.info(f"Red flag {flag_id}: {previous} -> {status.value} by {actor_id}")

        await self.gateway.audit(
            flag.case_id,
            actor_id,
            "red_flag_status_changed",
            {"red_flag_id": flag_id, "from": previous, "to": status.value, "notes": notes},
        )
        return await self._get(flag_id)

    async def assign(self, flag_id: UUID, assignee_id: str, actor_id: str = SYSTEM_ACTOR) -> RedFlagInstance:
        """Hand a flag to an investigator and move it to ``investigating``."""
        return await self.execute(self._assign, flag_id, assignee_id, actor_id)

    async def _assign(self, flag_id: UUID, assignee_id: str, actor_id: str) -> RedFlagInstance:
        flag = await self._get(flag_id)
        assigned = await self.flag_repo.update_if_status(
            flag_id,
            ACTIVE_RED_FLAG_STATUSES,
            assigned_to=assignee_id,
            status=RedFlagStatus.INVESTIGATING.value,
            updated_at=self.clock(),
        )
        if not assigned:
            raise InvalidStatusTransitionError(
                "RedFlag", flag_id, flag.status, RedFlagStatus.INVESTIGATING.value
            )

        await self.gateway.notify(
            flag.case_id,
            assignee_id,
            "red_flag_assigned",
            f"Red flag assigned to you: {flag.title}",
            {"red_flag_id": str(flag.id), "severity": flag.severity},
            "high",
        )
        await self.gateway.audit(
            flag.case_id,
            actor_id,
            "red_flag_assigned",
            {"red_flag_id": flag_id, "assignee": assignee_id},
        )
        return await self._get(flag_id)
