"""Closed vocabularies used across the coordination layer."""

from enum import Enum


class MessageType(str, Enum):
    REQUEST_ANALYSIS = "request_analysis"
    PROVIDE_CONTEXT = "provide_context"
    VALIDATE_FINDING = "validate_finding"
    CROSS_REFERENCE = "cross_reference"
    DEPENDENCY_UPDATE = "dependency_update"
    TASK_COMPLETE = "task_complete"
    ESCALATION = "escalation"


class MessagePriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# Lower rank is delivered first
PRIORITY_RANK = {
    MessagePriority.CRITICAL.value: 0,
    MessagePriority.HIGH.value: 1,
    MessagePriority.NORMAL.value: 2,
    MessagePriority.LOW.value: 3,
}


class MessageStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    PROCESSED = "processed"
    FAILED = "failed"


class DependencyType(str, Enum):
    REQUIRES_INPUT = "requires_input"
    VALIDATES = "validates"
    EXTENDS = "extends"
    REFERENCES = "references"


class EntityKind(str, Enum):
    FINDING = "finding"
    ANALYSIS = "analysis"
    DOCUMENT = "document"


class DependencyStatus(str, Enum):
    PENDING = "pending"
    SATISFIED = "satisfied"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    INITIALIZED = "initialized"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Role(str, Enum):
    """Case roles an approval step or escalation level can be routed to."""

    ANALYST = "analyst"
    MANAGER = "manager"
    PARTNER = "partner"
    BOARD = "board"
    DEAL_LEAD = "deal_lead"
    DOMAIN_EXPERT = "domain_expert"
    TECH_LEAD = "tech_lead"
    LEGAL_COUNSEL = "legal_counsel"


class ApprovalEntityType(str, Enum):
    FINDING = "finding"
    ANALYSIS_PLAN = "analysis_plan"
    TEMPLATE_RESPONSE = "template_response"
    PHASE_TRANSITION = "phase_transition"
    EXECUTIVE_SUMMARY = "executive_summary"
    RED_FLAG_RESOLUTION = "red_flag_resolution"


class CompletionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ANY_ONE = "any_one"


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


TERMINAL_WORKFLOW_STATUSES = frozenset(
    {
        WorkflowStatus.APPROVED.value,
        WorkflowStatus.REJECTED.value,
        WorkflowStatus.CANCELLED.value,
        WorkflowStatus.TIMEOUT.value,
    }
)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


class ApprovalActionType(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    REQUESTED_CHANGES = "requested_changes"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_RANK = {
    Severity.CRITICAL.value: 0,
    Severity.HIGH.value: 1,
    Severity.MEDIUM.value: 2,
    Severity.LOW.value: 3,
}


class RedFlagStatus(str, Enum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    MITIGATED = "mitigated"
    ACCEPTED = "accepted"
    FALSE_POSITIVE = "false_positive"
    RESOLVED = "resolved"


TERMINAL_RED_FLAG_STATUSES = frozenset(
    {RedFlagStatus.RESOLVED.value, RedFlagStatus.FALSE_POSITIVE.value}
)

# Flags the overdue sweep still watches
ACTIVE_RED_FLAG_STATUSES = (RedFlagStatus.OPEN.value, RedFlagStatus.INVESTIGATING.value)


class EscalationAction(str, Enum):
    NOTIFY_PARTNER = "notify_partner"
    NOTIFY_DEAL_LEAD = "notify_deal_lead"
    NOTIFY_BOARD = "notify_board"
    SCHEDULE_REVIEW = "schedule_review"
    BLOCK_PHASE_TRANSITION = "block_phase_transition"
    TRIGGER_EXPERT_REVIEW = "trigger_expert_review"
    CREATE_FOLLOW_UP_TASK = "create_follow_up_task"
    ESCALATE = "escalate"


class CombinationLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class ComparisonOperator(str, Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NE = "!="
