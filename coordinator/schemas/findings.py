"""Read-only view of an analyzer finding."""

from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Finding(BaseModel):
    """Finding as supplied by the external analyzers.

    Only consumed here; the coordination layer never writes findings.
    """

    id: UUID
    title: str
    description: str = ""
    category: Optional[str] = Field(None, description="Finding type, e.g. financial_metric")
    generated_by_agent: Optional[str] = Field(None, description="Analyzer that produced it")
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    impact_level: Optional[str] = Field(None, description="low | medium | high | critical")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def searchable_text(self) -> str:
        """Lower-cased title and description used for keyword screening."""
        return f"{self.title} {self.description}".lower()
