"""Declarative step definitions for the eBook workflow.

The registry is a static policy table: one StepDefinition per step holds the
step's prompt construction, model choice, output parsing and validation rule.
The engine reads it and stays free of step-specific logic.

Key concepts:
- INPUT and local steps (ASSEMBLE, EXPORT) never call the generation client
- CHAPTERS is multi-part: one call per table-of-contents entry
- REVIEW is optional and can be skipped; its notes can drive one revision pass
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ebookwf.application import prompts
from ebookwf.application.content_assembler import ContentAssembler
from ebookwf.application.response_parsing import clean_text, clean_title, parse_table_of_contents
from ebookwf.domain.models.generation import GenerationParams
from ebookwf.domain.models.workflow_state import STEP_ORDER, WorkflowInstance, WorkflowStep

DEFAULT_TITLE_MODEL = "google/gemma-3-12b-it:free"
DEFAULT_LONGFORM_MODEL = "deepseek/deepseek-r1-zero:free"

PromptBuilder = Callable[[WorkflowInstance, str | None], str]
PartPromptBuilder = Callable[[WorkflowInstance, int, str | None], str]
Validator = Callable[[WorkflowInstance], str | None]


class StepKind(str, Enum):
    """How a step produces its output."""

    INPUT = "input"              # Supplied by the user
    SINGLE = "single"            # One generation call
    MULTI_PART = "multi_part"    # One generation call per part
    LOCAL = "local"              # Computed locally, no generation


@dataclass(frozen=True, slots=True)
class StepDefinition:
    """Policy for one workflow step.

    Attributes:
        step: The step this definition describes
        kind: How output is produced
        requires: Instance fields that must be populated before the step runs
        output_field: Instance field holding the step's output
        model: Backend model id (generation steps only)
        params: Sampling parameters (generation steps only)
        build_prompt: Prompt builder for SINGLE steps
        build_part_prompt: Per-part prompt builder for MULTI_PART steps
        parse_output: Converts raw generated text to the stored value
        validate: Returns a human-readable reason when the output is invalid
        optional: Whether the step may be skipped
        revision_params: Sampling parameters for the revision pass (REVIEW only)
        build_chapter_revision_prompt: Per-chapter revision prompt builder
        build_sections_revision_prompt: Title, introduction and conclusion revision prompt builder
    """

    step: WorkflowStep
    kind: StepKind
    validate: Validator
    requires: tuple[str, ...] = ()
    output_field: str | None = None
    model: str | None = None
    params: GenerationParams = field(default_factory=GenerationParams)
    build_prompt: PromptBuilder | None = None
    build_part_prompt: PartPromptBuilder | None = None
    parse_output: Callable[[str], Any] = clean_text
    optional: bool = False
    revision_params: GenerationParams | None = None
    build_chapter_revision_prompt: PartPromptBuilder | None = None
    build_sections_revision_prompt: PromptBuilder | None = None

    @property
    def generates(self) -> bool:
        return self.kind in (StepKind.SINGLE, StepKind.MULTI_PART)


# ---------------------------------------------------------------------------
# Validation predicates
# ---------------------------------------------------------------------------

def _non_empty(value: str | None) -> bool:
    return bool(value and value.strip())


def _validate_input(instance: WorkflowInstance) -> str | None:
    if not _non_empty(instance.raw_input):
        return "input text is empty"
    return None


def _validate_title(instance: WorkflowInstance) -> str | None:
    if not _non_empty(instance.title):
        return "title is empty"
    if len(instance.title) > 200:
        return f"title is too long ({len(instance.title)} characters, max 200)"
    return None


def _validate_toc(instance: WorkflowInstance) -> str | None:
    toc = instance.table_of_contents
    if toc is None or not toc.chapters:
        return "table of contents has no chapters"
    for i, outline in enumerate(toc.chapters):
        if not outline.title:
            return f"chapter {i + 1} in the table of contents has no title"
    return None


def _validate_chapters(instance: WorkflowInstance) -> str | None:
    toc = instance.table_of_contents
    expected = len(toc.chapters) if toc else 0
    if len(instance.chapters) != expected:
        return f"expected {expected} chapters, found {len(instance.chapters)}"
    empty = [c.index + 1 for c in instance.chapters if not c.has_content]
    if empty:
        return f"chapters without content: {', '.join(str(i) for i in empty)}"
    return None


def _validate_introduction(instance: WorkflowInstance) -> str | None:
    return None if _non_empty(instance.introduction) else "introduction is empty"


def _validate_conclusion(instance: WorkflowInstance) -> str | None:
    return None if _non_empty(instance.conclusion) else "conclusion is empty"


def _validate_assemble(instance: WorkflowInstance) -> str | None:
    missing = ContentAssembler().missing_fields(instance)
    if missing:
        return "missing " + "; ".join(missing)
    return None


def _validate_review(instance: WorkflowInstance) -> str | None:
    return None if _non_empty(instance.review_notes) else "review notes are empty"


def _validate_export(instance: WorkflowInstance) -> str | None:
    return None if instance.versions else "no version has been exported"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class StepRegistry:
    """Ordered, immutable table of step definitions.

    Usage:
        registry = default_registry()
        definition = registry.get(WorkflowStep.TOC)
        prompt = definition.build_prompt(instance, None)
    """

    def __init__(self, definitions: Iterable[StepDefinition]):
        by_step = {d.step: d for d in definitions}
        missing = [s.value for s in STEP_ORDER if s not in by_step]
        if missing:
            raise ValueError(f"Step registry is missing definitions for: {', '.join(missing)}")
        self._definitions = by_step

    @property
    def order(self) -> tuple[WorkflowStep, ...]:
        return STEP_ORDER

    def get(self, step: WorkflowStep) -> StepDefinition:
        return self._definitions[step]

    def __iter__(self):
        return (self._definitions[s] for s in STEP_ORDER)

    def next_step(self, step: WorkflowStep) -> WorkflowStep | None:
        """Return the step after ``step``, or None for the last step."""
        position = step.position
        if position + 1 >= len(STEP_ORDER):
            return None
        return STEP_ORDER[position + 1]

    def steps_before(self, step: WorkflowStep) -> tuple[WorkflowStep, ...]:
        return STEP_ORDER[: step.position]

    def steps_after(self, step: WorkflowStep) -> tuple[WorkflowStep, ...]:
        return STEP_ORDER[step.position + 1:]

    def with_overrides(self, overrides: Mapping[WorkflowStep, Mapping[str, Any]]) -> "StepRegistry":
        """Return a copy with per-step model/parameter overrides applied.

        Each override may set ``model``, ``temperature``, ``max_tokens`` or
        ``top_p``; keys with a None value are ignored.

        Raises:
            ValueError: If an override targets a step that does not generate
        """
        definitions = dict(self._definitions)
        for step, values in overrides.items():
            definition = definitions[step]
            values = {k: v for k, v in values.items() if v is not None}
            if not values:
                continue
            if not definition.generates:
                raise ValueError(f"Step '{step.value}' does not generate text; cannot override model")

            param_updates = {k: values[k] for k in ("temperature", "max_tokens", "top_p") if k in values}
            params = definition.params.model_copy(update=param_updates)
            # Re-validate the merged parameters
            params = GenerationParams.model_validate(params.model_dump())
            definitions[step] = replace(
                definition,
                model=values.get("model", definition.model),
                params=params,
            )
        return StepRegistry(definitions.values())


def default_registry() -> StepRegistry:
    """Build the registry with the default models and parameters."""
    return StepRegistry([
        StepDefinition(
            step=WorkflowStep.INPUT,
            kind=StepKind.INPUT,
            output_field="raw_input",
            validate=_validate_input,
        ),
        StepDefinition(
            step=WorkflowStep.TITLE,
            kind=StepKind.SINGLE,
            requires=("raw_input",),
            output_field="title",
            model=DEFAULT_TITLE_MODEL,
            params=GenerationParams(temperature=0.8, max_tokens=50),
            build_prompt=prompts.title_prompt,
            parse_output=clean_title,
            validate=_validate_title,
        ),
        StepDefinition(
            step=WorkflowStep.TOC,
            kind=StepKind.SINGLE,
            requires=("raw_input", "title"),
            output_field="table_of_contents",
            model=DEFAULT_LONGFORM_MODEL,
            params=GenerationParams(temperature=0.7, max_tokens=2000),
            build_prompt=prompts.toc_prompt,
            parse_output=parse_table_of_contents,
            validate=_validate_toc,
        ),
        StepDefinition(
            step=WorkflowStep.CHAPTERS,
            kind=StepKind.MULTI_PART,
            requires=("title", "table_of_contents"),
            output_field="chapters",
            model=DEFAULT_LONGFORM_MODEL,
            params=GenerationParams(temperature=0.7, max_tokens=4000),
            build_part_prompt=prompts.chapter_prompt,
            validate=_validate_chapters,
        ),
        StepDefinition(
            step=WorkflowStep.INTRODUCTION,
            kind=StepKind.SINGLE,
            requires=("title", "table_of_contents"),
            output_field="introduction",
            model=DEFAULT_TITLE_MODEL,
            params=GenerationParams(temperature=0.7, max_tokens=1000),
            build_prompt=prompts.introduction_prompt,
            validate=_validate_introduction,
        ),
        StepDefinition(
            step=WorkflowStep.CONCLUSION,
            kind=StepKind.SINGLE,
            requires=("title", "table_of_contents"),
            output_field="conclusion",
            model=DEFAULT_TITLE_MODEL,
            params=GenerationParams(temperature=0.7, max_tokens=1500),
            build_prompt=prompts.conclusion_prompt,
            validate=_validate_conclusion,
        ),
        StepDefinition(
            step=WorkflowStep.ASSEMBLE,
            kind=StepKind.LOCAL,
            validate=_validate_assemble,
        ),
        StepDefinition(
            step=WorkflowStep.REVIEW,
            kind=StepKind.SINGLE,
            requires=("title", "introduction", "conclusion"),
            output_field="review_notes",
            model=DEFAULT_LONGFORM_MODEL,
            params=GenerationParams(temperature=0.5, max_tokens=3000),
            build_prompt=prompts.review_prompt,
            validate=_validate_review,
            optional=True,
            revision_params=GenerationParams(temperature=0.6, max_tokens=4000),
            build_chapter_revision_prompt=prompts.chapter_revision_prompt,
            build_sections_revision_prompt=prompts.sections_revision_prompt,
        ),
        StepDefinition(
            step=WorkflowStep.EXPORT,
            kind=StepKind.LOCAL,
            output_field="versions",
            validate=_validate_export,
        ),
    ])
