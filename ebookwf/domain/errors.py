"""Domain-level exceptions for the eBook workflow engine.

Every engine error carries a human-readable ``reason`` so a UI layer can show
it without inspecting the exception type.
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ebookwf.domain.models.workflow_state import WorkflowStep


class WorkflowError(Exception):
    """Base class for failures surfaced by the workflow engine."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PrerequisiteNotMet(WorkflowError):
    """Raised when a step is started or edited out of order."""

    def __init__(self, step: "WorkflowStep", missing: Iterable["WorkflowStep"] = (), reason: str | None = None):
        self.step = step
        self.missing = list(missing)
        if reason is None:
            names = ", ".join(s.value for s in self.missing)
            reason = f"Cannot start '{step.value}': prerequisite steps not completed ({names})"
        super().__init__(reason)


class ValidationFailed(WorkflowError):
    """Raised when a step output does not satisfy the step's validation rule."""

    def __init__(self, step: "WorkflowStep", reason: str):
        self.step = step
        super().__init__(f"Step '{step.value}' output is invalid: {reason}")


class GenerationUnavailable(WorkflowError):
    """Raised when the generation collaborator failed or timed out."""

    def __init__(self, step: "WorkflowStep", reason: str):
        self.step = step
        super().__init__(f"Generation for '{step.value}' failed: {reason}")


class ConcurrentGenerationInProgress(WorkflowError):
    """Raised when a second operation targets an instance with an outstanding generation."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(
            f"Instance '{instance_id}' already has a generation in progress"
        )


class IncompleteDocument(WorkflowError):
    """Raised by assembly when required content is missing."""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(
            "Document is incomplete: " + "; ".join(self.missing)
        )


class PersistenceFailure(WorkflowError):
    """Raised when the instance store cannot persist or read state."""


class InstanceNotFound(WorkflowError):
    """Raised when an instance id is unknown to the store."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class GenerationError(Exception):
    """Raised when a generation client fails (network, auth, timeout, etc.)."""

    pass
