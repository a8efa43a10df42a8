"""Pydantic schemas for findings, configuration documents and API payloads."""

from coordinator.schemas.approvals import (
    ApprovalStep,
    AutoApproveConditions,
    WorkflowDefinitionConfig,
)
from coordinator.schemas.events import CoordinationEvent, EventKind
from coordinator.schemas.findings import Finding
from coordinator.schemas.messages import MessageFilter
from coordinator.schemas.red_flags import (
    EscalationLevel,
    EscalationRules,
    NumericThreshold,
    PatternConditions,
    RedFlagPatternConfig,
)

__all__ = [
    "ApprovalStep",
    "AutoApproveConditions",
    "CoordinationEvent",
    "EscalationLevel",
    "EscalationRules",
    "EventKind",
    "Finding",
    "MessageFilter",
    "NumericThreshold",
    "PatternConditions",
    "RedFlagPatternConfig",
    "WorkflowDefinitionConfig",
]
