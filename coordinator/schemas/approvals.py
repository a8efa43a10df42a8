"""Schemas for approval workflow configuration and API payloads."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from coordinator.schemas.enums import ApprovalEntityType, CompletionMode, Role


class ApprovalStep(BaseModel):
    """One approval step; the approver is either a case role or an identity."""

    step_number: int = Field(..., ge=1)
    approver_role: Optional[Role] = None
    approver_user_id: Optional[str] = None
    required: bool = True
    can_delegate: bool = False
    timeout_hours: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def validate_approver(self) -> "ApprovalStep":
        if (self.approver_role is None) == (self.approver_user_id is None):
            raise ValueError("exactly one of approver_role or approver_user_id must be set")
        return self


class AutoApproveConditions(BaseModel):
    """Predicate on the target entity that bypasses the step-by-step workflow."""

    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    low_impact_only: bool = False
    system_generated_only: bool = Field(
        False, validation_alias=AliasChoices("system_generated_only", "system_findings")
    )

    @property
    def is_empty(self) -> bool:
        return (
            self.confidence_threshold is None
            and not self.low_impact_only
            and not self.system_generated_only
        )


class WorkflowDefinitionConfig(BaseModel):
    """Configuration document for a workflow definition."""

    name: str
    entity_type: ApprovalEntityType
    description: Optional[str] = None
    mode: CompletionMode
    steps: List[ApprovalStep] = Field(..., min_length=1)
    auto_approve_conditions: Optional[AutoApproveConditions] = None

    @field_validator("steps")
    @classmethod
    def validate_step_numbers(cls, v: List[ApprovalStep]) -> List[ApprovalStep]:
        """Step numbers must start at 1 and leave no gaps."""
        numbers = sorted({step.step_number for step in v})
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"step numbers must be contiguous from 1, got {numbers}")
        return v

    def steps_numbered(self, step_number: int) -> List[ApprovalStep]:
        return [step for step in self.steps if step.step_number == step_number]

    @property
    def last_step_number(self) -> int:
        return max(step.step_number for step in self.steps)


class InitiateWorkflowRequest(BaseModel):
    case_id: UUID
    entity_type: ApprovalEntityType
    entity_id: UUID
    entity_title: str
    initiated_by: str
    workflow_definition_id: Optional[UUID] = None


class ApproveRequest(BaseModel):
    approver_id: str
    comments: Optional[str] = None


class RejectRequest(BaseModel):
    approver_id: str
    reason: str


class DelegateRequest(BaseModel):
    approver_id: str
    delegate_to: str
    reason: Optional[str] = None


class RequestChangesRequest(BaseModel):
    approver_id: str
    changes: str


class CancelWorkflowRequest(BaseModel):
    actor_id: str
    reason: Optional[str] = None


class CreateDefinitionRequest(WorkflowDefinitionConfig):
    case_id: Optional[UUID] = None


class WorkflowInstanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    workflow_definition_id: UUID
    entity_type: str
    entity_id: UUID
    entity_title: Optional[str] = None
    status: str
    current_step: int
    initiated_by: str
    initiated_at: datetime
    completed_at: Optional[datetime] = None
    auto_approved: bool = False


class ApprovalRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_instance_id: UUID
    step_number: int
    approver_id: str
    original_approver_id: Optional[str] = None
    required: bool
    can_delegate: bool = False
    deadline: Optional[datetime] = None
    status: str
    created_at: datetime


class ApprovalActionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_instance_id: UUID
    step_number: int
    actor_id: str
    action: str
    delegated_to: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime


class WorkflowDefinitionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    entity_type: str
    description: Optional[str] = None
    mode: str
    steps: List[Dict[str, Any]]
    auto_approve_conditions: Optional[Dict[str, Any]] = None
    case_id: Optional[UUID] = None
    is_system_workflow: bool
    active: bool
