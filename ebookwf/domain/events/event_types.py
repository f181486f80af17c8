"""Workflow event types for observer pattern notifications."""

from enum import Enum


class WorkflowEventType(str, Enum):
    """Typed workflow events for UI integration notifications."""

    # Step lifecycle
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"

    # Chapter generation
    CHAPTER_GENERATED = "chapter_generated"

    # Review revision
    CHAPTER_REVISED = "chapter_revised"
    REVISION_APPLIED = "revision_applied"

    # Retroactive invalidation
    STEPS_INVALIDATED = "steps_invalidated"

    # Export
    VERSION_CREATED = "version_created"
