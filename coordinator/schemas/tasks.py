"""Schemas for dependencies and collaborative tasks."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coordinator.schemas.enums import DependencyType, EntityKind, ParticipantStatus


class EntityRef(BaseModel):
    """Reference to a finding, analysis or document."""

    entity_type: EntityKind
    entity_id: UUID


class CreateDependencyRequest(BaseModel):
    case_id: UUID
    source_agent: str
    target_agent: str
    dependency_type: DependencyType
    source_entity: EntityRef


class ResolveDependencyRequest(BaseModel):
    target_entity: EntityRef
    resolution_data: Dict[str, Any] = Field(default_factory=dict)


class DependencyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    source_agent: str
    target_agent: str
    dependency_type: str
    source_entity_type: str
    source_entity_id: UUID
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[UUID] = None
    status: str
    resolution_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class ParticipantDependencies(BaseModel):
    agent: str
    depends_on: List[str] = Field(default_factory=list)


class CreateTaskRequest(BaseModel):
    case_id: UUID
    task_name: str
    description: str = ""
    orchestrator_agent: str
    participating_agents: List[str] = Field(..., min_length=1)
    dependencies: List[ParticipantDependencies] = Field(default_factory=list)

    @field_validator("participating_agents")
    @classmethod
    def validate_unique_participants(cls, v: List[str]) -> List[str]:
        """Participants form an ordered set."""
        if len(set(v)) != len(v):
            raise ValueError("participating_agents must not contain duplicates")
        return v


class ProgressUpdateRequest(BaseModel):
    agent_id: str
    status: ParticipantStatus
    result: Optional[Dict[str, Any]] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    task_name: str
    description: Optional[str] = None
    orchestrator_agent: str
    participating_agents: List[str]
    dependencies: List[Dict[str, Any]]
    progress: Dict[str, str]
    results: Dict[str, Any]
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None
