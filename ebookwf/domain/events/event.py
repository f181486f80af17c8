"""Workflow event payload model."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from ebookwf.domain.events.event_types import WorkflowEventType
from ebookwf.domain.models.workflow_state import WorkflowStep


class WorkflowEvent(BaseModel):
    """Immutable event payload for workflow notifications."""

    model_config = {"frozen": True}

    event_type: WorkflowEventType
    instance_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    step: WorkflowStep | None = None
    progress: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
