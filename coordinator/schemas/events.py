"""Events fanned out to process-local observers."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from coordinator.utils.time import utc_now


class EventKind(str, Enum):
    MESSAGE_SENT = "message:sent"
    MESSAGE_COMPLETED = "message:completed"
    DEPENDENCY_RESOLVED = "dependency:resolved"
    TASK_COMPLETED = "task:completed"
    WORKFLOW_INITIATED = "workflow:initiated"
    APPROVAL_GRANTED = "approval:granted"
    APPROVAL_REJECTED = "approval:rejected"
    WORKFLOW_COMPLETED = "workflow:completed"
    RED_FLAG_DETECTED = "red_flag:detected"


class CoordinationEvent(BaseModel):
    kind: EventKind
    case_id: Optional[UUID] = None
    occurred_at: datetime = Field(default_factory=utc_now)
    payload: Dict[str, Any] = Field(default_factory=dict)
