"""Schemas for the inter-agent message bus."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coordinator.schemas.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)


class MessageFilter(BaseModel):
    """Optional filters for message search; unset fields do not constrain."""

    case_id: Optional[UUID] = None
    from_agent: Optional[str] = None
    to_agent: Optional[str] = None
    message_type: Optional[MessageType] = None
    status: Optional[MessageStatus] = None
    priority: Optional[MessagePriority] = None
    correlation_id: Optional[UUID] = None
    since: Optional[datetime] = None


class SendMessageRequest(BaseModel):
    from_agent: str = Field(..., min_length=1)
    to_agent: str = Field(..., min_length=1)
    case_id: UUID
    message_type: MessageType
    subject: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: MessagePriority = MessagePriority.NORMAL
    correlation_id: Optional[UUID] = None


class MessageResponseBody(BaseModel):
    response: Optional[Dict[str, Any]] = None


class AbandonMessageRequest(BaseModel):
    reason: str


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    from_agent: str
    to_agent: str
    message_type: str
    priority: str
    subject: str
    payload: Dict[str, Any]
    status: str
    correlation_id: Optional[UUID] = None
    response: Optional[Dict[str, Any]] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class CommunicationStats(BaseModel):
    total_messages: int
    pending_messages: int
    active_dependencies: int
    active_tasks: int
    message_breakdown: Dict[str, int] = Field(default_factory=dict)
