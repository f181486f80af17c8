"""Domain models for the eBook workflow engine."""

from .workflow_state import (
    STEP_ORDER,
    StepOutcome,
    StepTransition,
    WorkflowInstance,
    WorkflowStep,
)
from .content import (
    Chapter,
    ChapterOutline,
    DocumentModel,
    TableOfContents,
    Version,
)
from .generation import GenerationParams


__all__ = [
    "STEP_ORDER",
    "StepOutcome",
    "StepTransition",
    "WorkflowInstance",
    "WorkflowStep",
    "Chapter",
    "ChapterOutline",
    "DocumentModel",
    "TableOfContents",
    "Version",
    "GenerationParams",
]
