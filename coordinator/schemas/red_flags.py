"""Schemas for red-flag patterns, flag instances and their API payloads."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coordinator.schemas.enums import (
    CombinationLogic,
    ComparisonOperator,
    EscalationAction,
    RedFlagStatus,
    Role,
    Severity,
)


class NumericThreshold(BaseModel):
    """Comparison of a named finding metadata field against a constant."""

    field: str
    operator: ComparisonOperator
    value: float


class PatternConditions(BaseModel):
    """Condition categories; an empty list or a None threshold is absent."""

    keywords: List[str] = Field(default_factory=list)
    finding_types: List[str] = Field(default_factory=list)
    agent_sources: List[str] = Field(default_factory=list)
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    numeric_thresholds: List[NumericThreshold] = Field(default_factory=list)
    combination_logic: CombinationLogic = CombinationLogic.OR


class EscalationLevel(BaseModel):
    role: Role
    delay_hours: float = Field(0, ge=0)


class EscalationRules(BaseModel):
    immediate_actions: List[EscalationAction] = Field(default_factory=list)
    sla_hours: float = Field(..., gt=0)
    escalation_chain: List[EscalationLevel] = Field(default_factory=list)
    auto_escalate: bool = True


class RedFlagPatternConfig(BaseModel):
    """Configuration document for one red-flag pattern."""

    name: str
    category: str
    description: Optional[str] = None
    severity: Severity
    conditions: PatternConditions
    escalation_rules: EscalationRules
    metadata: Dict[str, Any] = Field(default_factory=dict)
    active: bool = True


class ScanRequest(BaseModel):
    finding_id: UUID
    case_id: UUID


class UpdateRedFlagStatusRequest(BaseModel):
    status: RedFlagStatus
    actor_id: str = "system"
    notes: Optional[str] = None
    mitigation_plan: Optional[str] = None


class AssignRedFlagRequest(BaseModel):
    assignee_id: str
    actor_id: str = "system"


class SetPatternActiveRequest(BaseModel):
    active: bool


class RedFlagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    pattern_id: UUID
    finding_id: Optional[UUID] = None
    severity: str
    title: str
    description: Optional[str] = None
    detected_at: datetime
    status: str
    assigned_to: Optional[str] = None
    escalation_level: int
    last_escalated_at: Optional[datetime] = None
    sla_deadline: datetime
    is_overdue: bool
    mitigation_plan: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None


class RedFlagPatternRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    category: str
    description: Optional[str] = None
    severity: str
    conditions: Dict[str, Any]
    escalation_rules: Dict[str, Any]
    active: bool


class EscalationHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    red_flag_id: UUID
    escalation_level: int
    escalated_to_role: str
    escalated_to_user: Optional[str] = None
    action_taken: str
    notes: Optional[str] = None
    created_at: datetime


class SweepResult(BaseModel):
    processed: int
    escalated: int = 0
