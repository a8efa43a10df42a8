"""SQLAlchemy models for all coordination tables."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coordinator.core.database import Base
from coordinator.utils.time import utc_now

# Structured documents: JSONB on PostgreSQL, plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class AgentMessage(Base):
    """Message passed between two agent identities within a case."""

    __tablename__ = "agent_messages"
    __table_args__ = (
        Index("idx_agent_messages_case", "case_id"),
        Index("idx_agent_messages_to", "to_agent", "status"),
        Index("idx_agent_messages_correlation", "correlation_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    from_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    to_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    message_type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="normal"
    )  # critical | high | normal | low
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | delivered | acknowledged | processed | failed
    correlation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    response: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    delivered_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class AgentDependency(Base):
    """One agent's output blocking another agent's progress on an entity."""

    __tablename__ = "agent_dependencies"
    __table_args__ = (
        Index("idx_agent_dependencies_case", "case_id"),
        Index("idx_agent_dependencies_target", "target_agent", "status"),
        Index("idx_agent_dependencies_source", "source_entity_type", "source_entity_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    source_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    target_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    dependency_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # requires_input | validates | extends | references
    source_entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    target_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | satisfied | blocked | cancelled
    resolution_data: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class CollaborativeTask(Base):
    """Multi-agent task whose outcome aggregates per-participant progress."""

    __tablename__ = "collaborative_tasks"
    __table_args__ = (
        Index("idx_collaborative_tasks_case", "case_id"),
        Index("idx_collaborative_tasks_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    orchestrator_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    participating_agents: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False)
    dependencies: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONDocument, nullable=False, default=list
    )  # [{"agent": ..., "depends_on": [...]}]
    progress: Mapped[dict[str, str]] = mapped_column(JSONDocument, nullable=False, default=dict)
    results: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="initialized"
    )  # initialized | in_progress | completed | failed
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class WorkflowDefinition(Base):
    """Configured approval process for one entity type."""

    __tablename__ = "workflow_definitions"
    __table_args__ = (
        Index("idx_workflow_definitions_entity", "entity_type", "active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    mode: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # sequential | parallel | any_one
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False)
    auto_approve_conditions: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument, nullable=True
    )
    case_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, comment="Set for case-specific definitions"
    )
    is_system_workflow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    instances: Mapped[list["WorkflowInstance"]] = relationship(
        "WorkflowInstance", back_populates="definition"
    )


class WorkflowInstance(Base):
    """One run of a workflow definition against a target entity."""

    __tablename__ = "workflow_instances"
    __table_args__ = (
        Index("idx_workflow_instances_case", "case_id"),
        Index("idx_workflow_instances_entity", "entity_type", "entity_id"),
        Index("idx_workflow_instances_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    workflow_definition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflow_definitions.id"), nullable=False
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    entity_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | in_progress | approved | rejected | cancelled | timeout
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initiated_by: Mapped[str] = mapped_column(String(100), nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONDocument, nullable=True)

    definition: Mapped["WorkflowDefinition"] = relationship(
        "WorkflowDefinition", back_populates="instances"
    )
    requests: Mapped[list["ApprovalRequest"]] = relationship(
        "ApprovalRequest", back_populates="instance", cascade="all, delete-orphan"
    )


class ApprovalRequest(Base):
    """A pending (or resolved) ask for one approver to act on one step."""

    __tablename__ = "approval_requests"
    __table_args__ = (
        Index("idx_approval_requests_approver", "approver_id", "status"),
        Index("idx_approval_requests_instance", "workflow_instance_id", "step_number"),
        Index("idx_approval_requests_deadline", "deadline"),
        # At most one pending request per (instance, approver)
        Index(
            "uq_approval_requests_pending_approver",
            "workflow_instance_id",
            "approver_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    original_approver_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="First assignee when the request was delegated"
    )
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_delegate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="Copied from the step definition"
    )
    deadline: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | approved | rejected | timeout
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    instance: Mapped["WorkflowInstance"] = relationship(
        "WorkflowInstance", back_populates="requests"
    )


class ApprovalAction(Base):
    """Append-only log of approver decisions."""

    __tablename__ = "approval_actions"
    __table_args__ = (
        Index("idx_approval_actions_instance", "workflow_instance_id"),
        Index("idx_approval_actions_actor", "actor_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # approved | rejected | delegated | requested_changes
    delegated_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )


class RedFlagPattern(Base):
    """Condition set screened against findings, with its escalation rules."""

    __tablename__ = "red_flag_patterns"
    __table_args__ = (
        UniqueConstraint("name", name="uq_red_flag_patterns_name"),
        Index("idx_red_flag_patterns_active", "active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    escalation_rules: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    pattern_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONDocument, nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class RedFlagInstance(Base):
    """Tracked occurrence of a pattern match, bound by an SLA deadline."""

    __tablename__ = "red_flag_instances"
    __table_args__ = (
        Index("idx_red_flag_instances_case", "case_id"),
        Index("idx_red_flag_instances_status", "status"),
        Index("idx_red_flag_instances_overdue", "is_overdue", "sla_deadline"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    pattern_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("red_flag_patterns.id"), nullable=False
    )
    finding_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    detected_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="open"
    )  # open | investigating | mitigated | accepted | false_positive | resolved
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_escalated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    sla_deadline: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mitigation_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    supporting_findings: Mapped[list[str]] = mapped_column(
        JSONDocument, nullable=False, default=list
    )
    impact_assessment: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    history: Mapped[list["EscalationHistory"]] = relationship(
        "EscalationHistory", back_populates="red_flag", cascade="all, delete-orphan"
    )


class EscalationHistory(Base):
    """Append-only record of each escalation step taken for a flag."""

    __tablename__ = "escalation_history"
    __table_args__ = (Index("idx_escalation_history_red_flag", "red_flag_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    red_flag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("red_flag_instances.id", ondelete="CASCADE"), nullable=False
    )
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)
    escalated_to_role: Mapped[str] = mapped_column(String(100), nullable=False)
    escalated_to_user: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action_taken: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )

    red_flag: Mapped["RedFlagInstance"] = relationship(
        "RedFlagInstance", back_populates="history"
    )


class CaseAccess(Base):
    """Role membership of an identity on a case."""

    __tablename__ = "case_access"
    __table_args__ = (
        UniqueConstraint("case_id", "user_id", "role", name="uq_case_access_member_role"),
        Index("idx_case_access_role", "case_id", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )


class AuditEntry(Base):
    """Append-only audit trail written by the database audit sink."""

    __tablename__ = "audit_entries"
    __table_args__ = (Index("idx_audit_entries_case", "case_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now
    )
