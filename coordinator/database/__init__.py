"""Database module for SQLAlchemy models."""

from coordinator.database.models import (
    AgentDependency,
    AgentMessage,
    ApprovalAction,
    ApprovalRequest,
    AuditEntry,
    CaseAccess,
    CollaborativeTask,
    EscalationHistory,
    RedFlagInstance,
    RedFlagPattern,
    WorkflowDefinition,
    WorkflowInstance,
)

__all__ = [
    "AgentMessage",
    "AgentDependency",
    "CollaborativeTask",
    "WorkflowDefinition",
    "WorkflowInstance",
    "ApprovalRequest",
    "ApprovalAction",
    "RedFlagPattern",
    "RedFlagInstance",
    "EscalationHistory",
    "CaseAccess",
    "AuditEntry",
]
