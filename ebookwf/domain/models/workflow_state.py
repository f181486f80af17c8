from enum import Enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ebookwf.domain.models.content import Chapter, TableOfContents, Version


class WorkflowStep(str, Enum):
    """Workflow step - one stage of the fixed eBook sequence.

    Declaration order is the execution order.
    """

    INPUT = "input"                    # Raw user material
    TITLE = "title"                    # Generated title
    TOC = "toc"                        # Generated table of contents
    CHAPTERS = "chapters"              # One generation call per TOC entry
    INTRODUCTION = "introduction"
    CONCLUSION = "conclusion"
    ASSEMBLE = "assemble"              # Local: build the document model
    REVIEW = "review"                  # Optional editorial review notes
    EXPORT = "export"                  # Local: paginate, render, store a version

    @property
    def position(self) -> int:
        return STEP_ORDER.index(self)


STEP_ORDER: tuple[WorkflowStep, ...] = tuple(WorkflowStep)


class StepOutcome(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    EDITED = "edited"
    INVALIDATED = "invalidated"
    SKIPPED = "skipped"
    REVISED = "revised"
    RESUMED = "resumed"


class StepTransition(BaseModel):
    """Record of something that happened to a step."""

    step: WorkflowStep
    outcome: StepOutcome
    detail: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WorkflowInstance(BaseModel):
    """Complete state snapshot of one document-generation session."""

    # Identity
    instance_id: str
    document_title: str = ""
    owner_id: str

    # Progress
    current_step: WorkflowStep = WorkflowStep.INPUT
    steps_completed: list[WorkflowStep] = Field(default_factory=list)
    per_step_progress: float = 0.0
    is_generating: bool = False

    # Error tracking
    last_error: str | None = None

    # Step outputs
    raw_input: str | None = None
    title: str | None = None
    table_of_contents: TableOfContents | None = None
    chapters: list[Chapter] = Field(default_factory=list)
    introduction: str | None = None
    conclusion: str | None = None
    review_notes: str | None = None
    versions: list[Version] = Field(default_factory=list)

    # Extensibility
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Step history
    step_history: list[StepTransition] = Field(default_factory=list)

    @field_validator("per_step_progress")
    @classmethod
    def _progress_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError("per_step_progress must be between 0 and 100")
        return v

    @model_validator(mode="after")
    def _steps_completed_is_prefix(self) -> "WorkflowInstance":
        expected = list(STEP_ORDER[: len(self.steps_completed)])
        if self.steps_completed != expected:
            raise ValueError(
                "steps_completed must be a prefix of the step order, got "
                f"{[s.value for s in self.steps_completed]}"
            )
        return self

    @model_validator(mode="after")
    def _chapter_indices_dense(self) -> "WorkflowInstance":
        indices = [c.index for c in self.chapters]
        if indices != list(range(len(self.chapters))):
            raise ValueError(f"chapter indices must be 0..N-1 in order, got {indices}")
        return self

    # ------------------------------------------------------------------
    # Progress helpers. All mutation of steps_completed goes through these
    # so the prefix invariant holds between validations.
    # ------------------------------------------------------------------

    def is_completed(self, step: WorkflowStep) -> bool:
        return step in self.steps_completed

    @property
    def is_complete(self) -> bool:
        """True once every step, EXPORT included, has completed."""
        return len(self.steps_completed) == len(STEP_ORDER)

    def first_incomplete_step(self) -> WorkflowStep | None:
        if self.is_complete:
            return None
        return STEP_ORDER[len(self.steps_completed)]

    def sync_current_step(self) -> None:
        """Point current_step at the first incomplete step (EXPORT when all are done)."""
        self.current_step = self.first_incomplete_step() or STEP_ORDER[-1]

    def mark_completed(self, step: WorkflowStep) -> None:
        if step in self.steps_completed:
            return
        if len(self.steps_completed) != step.position:
            raise ValueError(
                f"Cannot complete '{step.value}' before "
                f"'{STEP_ORDER[len(self.steps_completed)].value}'"
            )
        self.steps_completed.append(step)

    def truncate_completed(self, keep_through: WorkflowStep | None) -> list[WorkflowStep]:
        """Un-complete every step after ``keep_through`` (all steps if None).

        Returns the steps that were removed, in order.
        """
        keep = 0 if keep_through is None else keep_through.position + 1
        removed = self.steps_completed[keep:]
        self.steps_completed = self.steps_completed[:keep]
        return removed

    def record(self, step: WorkflowStep, outcome: StepOutcome, detail: str | None = None) -> None:
        self.step_history.append(StepTransition(step=step, outcome=outcome, detail=detail))

    def next_version_number(self) -> int:
        if not self.versions:
            return 1
        return max(v.version_number for v in self.versions) + 1
