"""Workflow engine for the eBook step sequence.

The engine enforces step order, mediates every generation, edit and
regeneration, and keeps persisted progress consistent. Step-specific policy
(prompts, models, parsing, validation) lives in the StepRegistry.

Key concepts:
- Write-through: every committed change is saved before the call returns
- The persisted ``is_generating`` latch allows one generation per instance
- Changing a completed step un-completes every later step
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from ebookwf.application.content_assembler import ContentAssembler
from ebookwf.application.export.formats import ExportFormat
from ebookwf.application.export.markdown_exporter import MarkdownExporter
from ebookwf.application.export.pdf_exporter import PdfExporter
from ebookwf.application.response_parsing import clean_text, parse_revised_sections, parse_table_of_contents
from ebookwf.application.step_registry import StepDefinition, StepKind, StepRegistry, default_registry
from ebookwf.domain.errors import (
    ConcurrentGenerationInProgress,
    GenerationError,
    GenerationUnavailable,
    PrerequisiteNotMet,
    ValidationFailed,
    WorkflowError,
)
from ebookwf.domain.events.emitter import WorkflowEventEmitter
from ebookwf.domain.events.event_types import WorkflowEventType
from ebookwf.domain.models.content import Chapter, DocumentModel, TableOfContents, Version
from ebookwf.domain.models.generation import GenerationParams
from ebookwf.domain.models.workflow_state import (
    STEP_ORDER,
    StepOutcome,
    WorkflowInstance,
    WorkflowStep,
)
from ebookwf.domain.persistence.artifact_store import ArtifactStore, export_filename
from ebookwf.domain.persistence.instance_store import InstanceStore
from ebookwf.domain.providers.generation_client import GenerationClient

logger = logging.getLogger(__name__)

SKIPPED_STEPS_KEY = "skipped_steps"
REVISION_KEY = "revision"


@dataclass
class WorkflowEngine:
    """Drives workflow instances through the fixed step sequence.

    Collaborators are injected; the engine holds no per-instance state
    beyond the set of instances it is currently working on.
    """

    store: InstanceStore
    client: GenerationClient
    artifact_store: ArtifactStore
    registry: StepRegistry = field(default_factory=default_registry)
    exporter: PdfExporter = field(default_factory=PdfExporter)
    markdown_exporter: MarkdownExporter = field(default_factory=MarkdownExporter)
    assembler: ContentAssembler = field(default_factory=ContentAssembler)
    event_emitter: WorkflowEventEmitter | None = None

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _in_flight: set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.event_emitter is None:
            self.event_emitter = WorkflowEventEmitter()

    # ========================================================================
    # Instance lifecycle
    # ========================================================================

    def create_instance(
        self,
        document_title: str,
        owner_id: str,
        raw_input: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Create and persist a fresh instance at INPUT.

        If ``raw_input`` is given, INPUT is completed immediately.

        Raises:
            ValidationFailed: If raw_input is given but blank
        """
        instance = WorkflowInstance(
            instance_id=uuid.uuid4().hex,
            document_title=document_title,
            owner_id=owner_id,
            metadata=metadata or {},
        )

        if raw_input is not None:
            instance.raw_input = raw_input
            reason = self.registry.get(WorkflowStep.INPUT).validate(instance)
            if reason:
                raise ValidationFailed(WorkflowStep.INPUT, reason)
            self._commit(instance, WorkflowStep.INPUT, changed=False)
        else:
            self.store.save(instance)
        logger.info(f"Created instance {instance.instance_id} for '{document_title}'")
        return instance

    def get(self, instance_id: str) -> WorkflowInstance:
        return self.store.load(instance_id)

    def resume(self, instance_id: str) -> WorkflowInstance:
        """Reconstruct an instance's position from persisted state.

        Clears a latch left behind by an interrupted process, drops completed
        steps whose output no longer validates, and recomputes current_step.
        Never re-runs generation.
        """
        with self._lock:
            instance = self.store.load(instance_id)
            if instance_id in self._in_flight:
                return instance

            if instance.is_generating:
                logger.warning(f"Clearing stale generation latch on {instance_id}")
                instance.is_generating = False

            for step in list(instance.steps_completed):
                if self._is_output_valid(instance, step):
                    continue
                previous = STEP_ORDER[step.position - 1] if step.position > 0 else None
                removed = instance.truncate_completed(previous)
                self._note_invalidated(instance, removed, cause=step)
                break

            instance.sync_current_step()
            instance.record(instance.current_step, StepOutcome.RESUMED)
            self.store.save(instance)

        logger.info(f"Resumed {instance_id} at '{instance.current_step.value}'")
        return instance

    # ========================================================================
    # Step execution
    # ========================================================================

    def start_step(
        self,
        instance_id: str,
        step: WorkflowStep,
        user_input: str | None = None,
    ) -> WorkflowInstance:
        """Run a step.

        ``user_input`` is the raw text for INPUT and optional guidance for
        generation steps. Starting a completed step regenerates it.

        Raises:
            PrerequisiteNotMet: If an earlier step is not completed
            ConcurrentGenerationInProgress: If the instance is busy
            GenerationUnavailable: If the generation client failed
            ValidationFailed: If the output is invalid
            IncompleteDocument: If ASSEMBLE or EXPORT lacks content
        """
        definition = self.registry.get(step)

        if definition.kind == StepKind.INPUT:
            return self._run_input(instance_id, user_input)
        if definition.kind == StepKind.MULTI_PART:
            return self._run_chapters(instance_id, guidance=user_input, reset=None)
        if step == WorkflowStep.EXPORT:
            instance, _ = self._run_export(instance_id, ExportFormat.PDF)
            return instance
        if definition.kind == StepKind.LOCAL:
            return self._run_assemble(instance_id)
        return self._run_single(instance_id, definition, user_input)

    def regenerate_step(
        self,
        instance_id: str,
        step: WorkflowStep,
        user_input: str | None = None,
    ) -> WorkflowInstance:
        """Regenerate a step's output in place.

        For CHAPTERS every chapter is cleared and generated again.

        Raises:
            WorkflowError: If the step is INPUT, which only the user supplies
        """
        definition = self.registry.get(step)
        if definition.kind == StepKind.INPUT:
            raise WorkflowError("Input is supplied by the user and cannot be regenerated")
        if definition.kind == StepKind.MULTI_PART:
            return self._run_chapters(instance_id, guidance=user_input, reset=True)
        return self.start_step(instance_id, step, user_input)

    def generate_chapters(self, instance_id: str, guidance: str | None = None) -> WorkflowInstance:
        """Generate every chapter that has no content yet, in order.

        Progress is persisted after each chapter. A failure leaves earlier
        chapters stored; calling again generates only the missing ones.
        """
        return self._run_chapters(instance_id, guidance=guidance, reset=False)

    def regenerate_chapter(
        self,
        instance_id: str,
        index: int,
        guidance: str | None = None,
    ) -> WorkflowInstance:
        """Regenerate a single chapter, replacing its content."""
        step = WorkflowStep.CHAPTERS
        definition = self.registry.get(step)
        instance = self._claim(instance_id, step, latch=True)
        try:
            self._ensure_chapters(instance)
            if not 0 <= index < len(instance.chapters):
                raise WorkflowError(
                    f"Chapter index {index} out of range (instance has {len(instance.chapters)} chapters)"
                )
            was_completed = instance.is_completed(step)
            self._emit(WorkflowEventType.STEP_STARTED, instance, step, chapter=index)
            self._generate_chapter(instance, definition, index, guidance)
            instance.per_step_progress = self._chapter_progress(instance)

            # Completing the last missing chapter completes the step
            if definition.validate(instance) is None:
                self._commit(instance, step, changed=was_completed)
        finally:
            self._release(instance)
        return instance

    def apply_review(self, instance_id: str, guidance: str | None = None) -> WorkflowInstance:
        """Revise the draft against the stored review notes in a single pass.

        Every chapter is revised in order and persisted as soon as it comes
        back. The title, introduction and conclusion are then revised together
        from one JSON response; a section the response leaves out or that
        fails validation keeps its current text. Revised content is the review step's
        output, so EXPORT is un-completed (existing versions are kept) and
        earlier steps stay completed.

        Raises:
            PrerequisiteNotMet: If REVIEW is not completed with notes
            ConcurrentGenerationInProgress: If the instance is busy
            GenerationUnavailable: If the generation client failed
            ValidationFailed: If a revised chapter came back empty
        """
        step = WorkflowStep.REVIEW
        definition = self.registry.get(step)
        instance = self._claim(instance_id, step, latch=True, require_output=True)
        try:
            total = len(instance.chapters)
            self._emit(WorkflowEventType.STEP_STARTED, instance, step, revision=True, chapters=total)
            self._invalidate_after(instance, step)
            instance.sync_current_step()
            self.store.save(instance)
            logger.info(f"Revising {total} chapters of {instance_id} from review notes")

            for chapter in instance.chapters:
                prompt = definition.build_chapter_revision_prompt(instance, chapter.index, guidance)
                raw = self._call_client(instance, definition, prompt, definition.revision_params)
                content = clean_text(raw)
                if not content:
                    reason = f"revised chapter {chapter.index + 1} ({chapter.title}) came back empty"
                    self._fail(instance, step, reason)
                    raise ValidationFailed(step, reason)

                chapter.content = content
                chapter.metadata["source"] = "revised"
                instance.per_step_progress = (chapter.index + 1) / total * 100.0
                self.store.save(instance)
                self._emit(
                    WorkflowEventType.CHAPTER_REVISED, instance, step,
                    progress=instance.per_step_progress, chapter=chapter.index,
                )

            prompt = definition.build_sections_revision_prompt(instance, guidance)
            raw = self._call_client(instance, definition, prompt, definition.revision_params)
            sections = self._apply_revised_sections(instance, raw)

            instance.metadata[REVISION_KEY] = {"chapters": total, "sections": sections}
            summary = ", ".join(sections) or "none"
            instance.record(step, StepOutcome.REVISED, f"{total} chapter(s); sections revised: {summary}")
            self._commit(instance, step, changed=False)
            self._emit(WorkflowEventType.REVISION_APPLIED, instance, step, chapters=total, sections=sections)
        finally:
            self._release(instance)
        return instance

    def export(self, instance_id: str, export_format: ExportFormat = ExportFormat.PDF) -> Version:
        """Run EXPORT in the given format and return the new Version.

        Re-export appends a version; earlier versions of any format are kept.
        """
        _, version = self._run_export(instance_id, ExportFormat(export_format))
        return version

    def assemble(self, instance_id: str) -> DocumentModel:
        """Build the DocumentModel without changing the instance.

        Raises:
            IncompleteDocument: Naming every missing field
        """
        return self.assembler.assemble(self.store.load(instance_id))

    # ========================================================================
    # Manual edits and navigation
    # ========================================================================

    def save_manual_edit(self, instance_id: str, step: WorkflowStep, value: Any) -> WorkflowInstance:
        """Overwrite a step's output without generation.

        Legal on the current step or a completed step. Changing a completed
        step un-completes every later step. An edit that parses but fails
        validation is stored, ``last_error`` is set and the step itself is
        un-completed. Editing the table of contents resets chapter content
        from the first changed outline onward.

        Raises:
            PrerequisiteNotMet: If the step is ahead of the current step
            ConcurrentGenerationInProgress: If the instance is busy
            ValidationFailed: If the value cannot be read as the step's output
            WorkflowError: If the step has no editable output
        """
        definition = self.registry.get(step)
        if definition.kind == StepKind.LOCAL:
            raise WorkflowError(f"Step '{step.value}' has no editable output")

        with self._lock:
            instance = self.store.load(instance_id)
            self._check_idle(instance)
            self._check_editable(instance, step)

            new_value = self._coerce_edit(instance, definition, value)
            old_value = getattr(instance, definition.output_field)
            changed = new_value != old_value

            if step == WorkflowStep.TOC and changed:
                self._reconcile_chapters(instance, old_value, new_value)
            setattr(instance, definition.output_field, new_value)
            instance.record(step, StepOutcome.EDITED)

            self._after_edit(instance, definition, changed)
            self.store.save(instance)

        logger.info(f"Saved manual edit of '{step.value}' on {instance_id}")
        return instance

    def save_chapter_edit(self, instance_id: str, index: int, content: str) -> WorkflowInstance:
        """Overwrite one chapter's content without generation."""
        step = WorkflowStep.CHAPTERS
        definition = self.registry.get(step)

        with self._lock:
            instance = self.store.load(instance_id)
            self._check_idle(instance)
            self._check_editable(instance, step)
            self._ensure_chapters(instance)

            if not 0 <= index < len(instance.chapters):
                raise WorkflowError(
                    f"Chapter index {index} out of range (instance has {len(instance.chapters)} chapters)"
                )

            chapter = instance.chapters[index]
            changed = chapter.content != content
            chapter.content = content
            chapter.metadata["source"] = "edited"
            instance.per_step_progress = self._chapter_progress(instance)
            instance.record(step, StepOutcome.EDITED, f"chapter {index + 1}")

            self._after_edit(instance, definition, changed)
            self.store.save(instance)

        logger.info(f"Saved manual edit of chapter {index + 1} on {instance_id}")
        return instance

    def advance(self, instance_id: str) -> WorkflowInstance:
        """Validate the current step's stored output and move past it.

        Raises:
            ValidationFailed: If the stored output is invalid
            ConcurrentGenerationInProgress: If the instance is busy
            WorkflowError: If every step is already complete
        """
        with self._lock:
            instance = self.store.load(instance_id)
            self._check_idle(instance)

            if instance.is_complete:
                raise WorkflowError(f"Instance '{instance_id}' has already completed every step")

            step = instance.current_step
            if step == WorkflowStep.EXPORT:
                reason = "run export to create a version of the current content"
            else:
                reason = self.registry.get(step).validate(instance)
            if reason:
                self._fail(instance, step, reason)
                self.store.save(instance)
                raise ValidationFailed(step, reason)

            self._commit(instance, step, changed=False)
        return instance

    def skip_step(self, instance_id: str, step: WorkflowStep) -> WorkflowInstance:
        """Complete an optional step without generating.

        Raises:
            WorkflowError: If the step is not optional
            PrerequisiteNotMet: If earlier steps are not completed
        """
        definition = self.registry.get(step)
        if not definition.optional:
            raise WorkflowError(f"Step '{step.value}' is not optional and cannot be skipped")

        with self._lock:
            instance = self.store.load(instance_id)
            self._check_idle(instance)
            self._check_prerequisites(instance, step)

            if not instance.is_completed(step):
                instance.mark_completed(step)
                skipped = instance.metadata.setdefault(SKIPPED_STEPS_KEY, [])
                if step.value not in skipped:
                    skipped.append(step.value)
                instance.last_error = None
                instance.record(step, StepOutcome.SKIPPED)
                instance.sync_current_step()
                self.store.save(instance)
                self._emit(WorkflowEventType.STEP_COMPLETED, instance, step, skipped=True)
                logger.info(f"Skipped '{step.value}' on {instance_id}")
        return instance

    # ========================================================================
    # Step runners
    # ========================================================================

    def _run_input(self, instance_id: str, raw_input: str | None) -> WorkflowInstance:
        step = WorkflowStep.INPUT
        with self._lock:
            instance = self.store.load(instance_id)
            self._check_idle(instance)

            if raw_input is None:
                raw_input = instance.raw_input
            candidate = instance.model_copy(update={"raw_input": raw_input})
            reason = self.registry.get(step).validate(candidate)
            if reason:
                raise ValidationFailed(step, reason)

            changed = raw_input != instance.raw_input
            instance.raw_input = raw_input
            self._commit(instance, step, changed=changed and instance.is_completed(step))
        return instance

    def _run_single(
        self,
        instance_id: str,
        definition: StepDefinition,
        guidance: str | None,
    ) -> WorkflowInstance:
        step = definition.step
        instance = self._claim(instance_id, step, latch=True)
        try:
            prompt = definition.build_prompt(instance, guidance)
            self._emit(WorkflowEventType.STEP_STARTED, instance, step)
            logger.info(f"Generating '{step.value}' for {instance_id} with {definition.model}")
            logger.debug(f"Prompt for '{step.value}': {prompt[:500]}")

            raw = self._call_client(instance, definition, prompt)

            try:
                value = definition.parse_output(raw)
            except ValueError as e:
                self._fail(instance, step, str(e))
                raise ValidationFailed(step, str(e)) from e

            candidate = instance.model_copy(deep=True)
            setattr(candidate, definition.output_field, value)
            reason = definition.validate(candidate)
            if reason:
                self._fail(instance, step, reason)
                raise ValidationFailed(step, reason)

            old_value = getattr(instance, definition.output_field)
            if step == WorkflowStep.TOC:
                self._reconcile_chapters(instance, old_value, value)
            setattr(instance, definition.output_field, value)
            self._commit(instance, step, changed=instance.is_completed(step))
        finally:
            self._release(instance)
        return instance

    def _run_chapters(self, instance_id: str, guidance: str | None, reset: bool | None) -> WorkflowInstance:
        """Generate chapters.

        ``reset`` True clears all content first; None clears only when the
        step was already completed (a restart regenerates). Clearing a
        completed step un-completes it and every later step before any
        chapter is written.
        """
        step = WorkflowStep.CHAPTERS
        definition = self.registry.get(step)
        instance = self._claim(instance_id, step, latch=True)
        try:
            was_completed = instance.is_completed(step)
            if reset or (reset is None and was_completed):
                removed = instance.truncate_completed(WorkflowStep.TOC)
                self._note_invalidated(instance, removed, cause=step)
                instance.chapters = []
                instance.sync_current_step()
                self.store.save(instance)
            self._ensure_chapters(instance)

            pending = [c.index for c in instance.chapters if not c.has_content]
            instance.per_step_progress = self._chapter_progress(instance)
            self._emit(
                WorkflowEventType.STEP_STARTED, instance, step,
                progress=instance.per_step_progress, pending=len(pending),
            )
            logger.info(
                f"Generating {len(pending)} of {len(instance.chapters)} chapters for {instance_id}"
            )

            for index in pending:
                self._generate_chapter(instance, definition, index, guidance)
                instance.per_step_progress = self._chapter_progress(instance)
                self.store.save(instance)
                self._emit(
                    WorkflowEventType.CHAPTER_GENERATED, instance, step,
                    progress=instance.per_step_progress, chapter=index,
                )

            reason = definition.validate(instance)
            if reason:
                self._fail(instance, step, reason)
                raise ValidationFailed(step, reason)

            self._commit(instance, step, changed=False)
        finally:
            self._release(instance)
        return instance

    def _run_assemble(self, instance_id: str) -> WorkflowInstance:
        step = WorkflowStep.ASSEMBLE
        instance = self._claim(instance_id, step, latch=False)
        try:
            try:
                document = self.assembler.assemble(instance)
            except WorkflowError as e:
                self._fail(instance, step, e.reason)
                raise
            logger.info(
                f"Assembled '{document.title}' with {len(document.chapters)} chapters for {instance_id}"
            )
            self._commit(instance, step, changed=False)
        finally:
            self._release(instance)
        return instance

    def _run_export(self, instance_id: str, export_format: ExportFormat) -> tuple[WorkflowInstance, Version]:
        step = WorkflowStep.EXPORT
        instance = self._claim(instance_id, step, latch=False)
        try:
            self._emit(WorkflowEventType.STEP_STARTED, instance, step, format=export_format.value)
            try:
                document = self.assembler.assemble(instance)
                data, page_count = self._render(document, export_format)
                version_number = instance.next_version_number()
                filename = export_filename(document.title, export_format.extension)
                reference = self.artifact_store.put(instance_id, version_number, filename, data)
            except WorkflowError as e:
                self._fail(instance, step, e.reason)
                raise

            version = Version(
                version_number=version_number,
                artifact_reference=reference,
                page_count=page_count,
                metadata={"filename": filename, "size_bytes": len(data), "format": export_format.value},
            )
            instance.versions.append(version)
            self._commit(instance, step, changed=False)
            self._emit(
                WorkflowEventType.VERSION_CREATED, instance, step,
                version=version_number, reference=reference, pages=page_count,
                format=export_format.value,
            )
            logger.info(f"Exported version {version_number} of {instance_id} to {reference}")
        finally:
            self._release(instance)
        return instance, version

    def _render(self, document: DocumentModel, export_format: ExportFormat) -> tuple[bytes, int | None]:
        """Return the artifact bytes and, for paginated formats, the page count."""
        if export_format == ExportFormat.MARKDOWN:
            return self.markdown_exporter.export(document), None
        layout, data = self.exporter.render(document)
        return data, layout.page_count

    # ========================================================================
    # Generation helpers
    # ========================================================================

    def _call_client(
        self,
        instance: WorkflowInstance,
        definition: StepDefinition,
        prompt: str,
        params: GenerationParams | None = None,
    ) -> str:
        try:
            return self.client.generate(prompt, definition.model, params or definition.params)
        except GenerationError as e:
            self._fail(instance, definition.step, str(e))
            raise GenerationUnavailable(definition.step, str(e)) from e

    def _generate_chapter(
        self,
        instance: WorkflowInstance,
        definition: StepDefinition,
        index: int,
        guidance: str | None,
    ) -> None:
        step = definition.step
        chapter = instance.chapters[index]
        prompt = definition.build_part_prompt(instance, index, guidance)
        logger.debug(f"Generating chapter {index + 1} ({chapter.title}) for {instance.instance_id}")

        try:
            raw = self.client.generate(prompt, definition.model, definition.params)
        except GenerationError as e:
            reason = f"Chapter {index + 1} ({chapter.title}): {e}"
            self._fail(instance, step, reason)
            raise GenerationUnavailable(step, reason) from e

        content = definition.parse_output(raw)
        if not content:
            reason = f"chapter {index + 1} ({chapter.title}) came back empty"
            self._fail(instance, step, reason)
            raise ValidationFailed(step, reason)

        chapter.content = content
        chapter.metadata["source"] = "generated"

    def _apply_revised_sections(self, instance: WorkflowInstance, raw: str) -> list[str]:
        """Store the revised title, introduction and conclusion that pass validation.

        Returns the names of the sections that changed.
        """
        try:
            sections = parse_revised_sections(raw)
        except ValueError as e:
            logger.warning(f"Keeping unrevised sections on {instance.instance_id}: {e}")
            return []

        changed = []
        for name, target in (
            ("title", WorkflowStep.TITLE),
            ("introduction", WorkflowStep.INTRODUCTION),
            ("conclusion", WorkflowStep.CONCLUSION),
        ):
            if name not in sections:
                continue
            target_definition = self.registry.get(target)
            value = target_definition.parse_output(sections[name])
            reason = target_definition.validate(instance.model_copy(update={name: value}))
            if reason:
                logger.warning(f"Keeping current {name} on {instance.instance_id}: {reason}")
                continue
            if value != getattr(instance, name):
                setattr(instance, name, value)
                changed.append(name)
        return changed

    def _ensure_chapters(self, instance: WorkflowInstance) -> None:
        """Create empty chapters from the table of contents if none exist."""
        if instance.chapters or instance.table_of_contents is None:
            return
        instance.chapters = [
            _chapter_from_outline(outline, i)
            for i, outline in enumerate(instance.table_of_contents.chapters)
        ]

    def _reconcile_chapters(
        self,
        instance: WorkflowInstance,
        old_toc: TableOfContents | None,
        new_toc: TableOfContents,
    ) -> None:
        """Keep chapters up to the first changed outline; reset the rest."""
        if not instance.chapters:
            return

        old_outlines = old_toc.chapters if old_toc else []
        first_changed = 0
        for old, new in zip(old_outlines, new_toc.chapters):
            if old != new:
                break
            first_changed += 1

        kept = instance.chapters[:first_changed]
        reset = [
            _chapter_from_outline(outline, i)
            for i, outline in enumerate(new_toc.chapters)
            if i >= first_changed
        ]
        instance.chapters = kept + reset
        if reset:
            logger.warning(
                f"Table of contents changed at chapter {first_changed + 1}; "
                f"reset {len(reset)} chapter(s) on {instance.instance_id}"
            )

    def _chapter_progress(self, instance: WorkflowInstance) -> float:
        if not instance.chapters:
            return 0.0
        done = sum(1 for c in instance.chapters if c.has_content)
        return done / len(instance.chapters) * 100.0

    # ========================================================================
    # State transitions
    # ========================================================================

    def _commit(self, instance: WorkflowInstance, step: WorkflowStep, changed: bool) -> None:
        """Mark ``step`` complete and persist; un-complete later steps if its output changed.

        Observers hear about the completion only after it is saved.
        """
        if changed and instance.is_completed(step):
            self._invalidate_after(instance, step)
        instance.mark_completed(step)
        instance.last_error = None
        instance.per_step_progress = 0.0
        instance.record(step, StepOutcome.COMPLETED)
        instance.sync_current_step()
        self.store.save(instance)
        self._emit(WorkflowEventType.STEP_COMPLETED, instance, step)
        logger.info(
            f"Completed '{step.value}' on {instance.instance_id}; "
            f"current step is '{instance.current_step.value}'"
        )

    def _after_edit(self, instance: WorkflowInstance, definition: StepDefinition, changed: bool) -> None:
        step = definition.step
        if changed and instance.is_completed(step):
            self._invalidate_after(instance, step)

        reason = definition.validate(instance)
        if reason:
            instance.last_error = reason
            if instance.is_completed(step):
                previous = STEP_ORDER[step.position - 1] if step.position > 0 else None
                removed = instance.truncate_completed(previous)
                self._note_invalidated(instance, removed, cause=step)
        else:
            instance.last_error = None
        instance.sync_current_step()

    def _invalidate_after(self, instance: WorkflowInstance, step: WorkflowStep) -> list[WorkflowStep]:
        removed = instance.truncate_completed(step)
        self._note_invalidated(instance, removed, cause=step)

        # Chapters written for an older input or title must be generated again.
        # Table-of-contents changes are reconciled chapter by chapter instead.
        if step.position < WorkflowStep.TOC.position and instance.chapters:
            logger.warning(
                f"Cleared {len(instance.chapters)} chapter(s) on {instance.instance_id} "
                f"after '{step.value}' changed"
            )
            instance.chapters = []
            instance.per_step_progress = 0.0
        return removed

    def _note_invalidated(
        self,
        instance: WorkflowInstance,
        removed: list[WorkflowStep],
        cause: WorkflowStep,
    ) -> None:
        if not removed:
            return
        skipped = instance.metadata.get(SKIPPED_STEPS_KEY, [])
        for step in removed:
            instance.record(step, StepOutcome.INVALIDATED, f"'{cause.value}' changed")
            if step.value in skipped:
                skipped.remove(step.value)
        names = [s.value for s in removed]
        logger.warning(f"Invalidated {names} on {instance.instance_id} after '{cause.value}' changed")
        self._emit(WorkflowEventType.STEPS_INVALIDATED, instance, cause, steps=names)

    def _fail(self, instance: WorkflowInstance, step: WorkflowStep, reason: str) -> None:
        instance.last_error = reason
        instance.record(step, StepOutcome.FAILED, reason)
        logger.warning(f"Step '{step.value}' failed on {instance.instance_id}: {reason}")
        self._emit(WorkflowEventType.STEP_FAILED, instance, step, reason=reason)

    def _is_output_valid(self, instance: WorkflowInstance, step: WorkflowStep) -> bool:
        definition = self.registry.get(step)
        if definition.optional and step.value in instance.metadata.get(SKIPPED_STEPS_KEY, []):
            return True
        return definition.validate(instance) is None

    # ========================================================================
    # Preconditions and the generation latch
    # ========================================================================

    def _check_prerequisites(self, instance: WorkflowInstance, step: WorkflowStep) -> None:
        missing = [s for s in self.registry.steps_before(step) if not instance.is_completed(s)]
        if missing:
            raise PrerequisiteNotMet(step, missing)

        definition = self.registry.get(step)
        empty = [name for name in definition.requires if getattr(instance, name) in (None, "")]
        if empty:
            raise PrerequisiteNotMet(
                step,
                reason=f"Cannot start '{step.value}': missing {', '.join(empty)}",
            )

    def _check_output_ready(self, instance: WorkflowInstance, step: WorkflowStep) -> None:
        if not instance.is_completed(step):
            raise PrerequisiteNotMet(
                step, [step], reason=f"Cannot use '{step.value}' output before the step is completed"
            )
        reason = self.registry.get(step).validate(instance)
        if reason:
            raise PrerequisiteNotMet(step, reason=f"Cannot use '{step.value}' output: {reason}")

    def _check_editable(self, instance: WorkflowInstance, step: WorkflowStep) -> None:
        if instance.is_completed(step) or instance.current_step == step:
            return
        missing = [s for s in self.registry.steps_before(step) if not instance.is_completed(s)]
        raise PrerequisiteNotMet(
            step,
            missing,
            reason=f"Cannot edit '{step.value}' before '{instance.current_step.value}' is completed",
        )

    def _check_idle(self, instance: WorkflowInstance) -> None:
        if instance.is_generating or instance.instance_id in self._in_flight:
            raise ConcurrentGenerationInProgress(instance.instance_id)

    def _claim(
        self,
        instance_id: str,
        step: WorkflowStep,
        latch: bool,
        require_output: bool = False,
    ) -> WorkflowInstance:
        """Load the instance and take exclusive ownership of it.

        With ``latch`` the persisted is_generating flag is set and saved
        before returning, so other engines and a later resume see it. With
        ``require_output`` the step itself must be completed with valid output.
        """
        with self._lock:
            instance = self.store.load(instance_id)
            self._check_prerequisites(instance, step)
            if require_output:
                self._check_output_ready(instance, step)
            self._check_idle(instance)

            instance.record(step, StepOutcome.STARTED)
            if latch:
                instance.is_generating = True
                self.store.save(instance)
            self._in_flight.add(instance_id)
        return instance

    def _release(self, instance: WorkflowInstance) -> None:
        try:
            instance.is_generating = False
            self.store.save(instance)
        finally:
            with self._lock:
                self._in_flight.discard(instance.instance_id)

    def _coerce_edit(self, instance: WorkflowInstance, definition: StepDefinition, value: Any) -> Any:
        step = definition.step
        if step == WorkflowStep.TOC:
            if isinstance(value, TableOfContents):
                return value.model_copy(deep=True)
            try:
                if isinstance(value, str):
                    return parse_table_of_contents(value)
                return TableOfContents.model_validate(value)
            except ValueError as e:
                raise ValidationFailed(step, str(e)) from e

        if step == WorkflowStep.CHAPTERS:
            if not isinstance(value, list):
                raise ValidationFailed(step, "chapters edit must be a list of chapter texts")
            self._ensure_chapters(instance)
            if len(value) != len(instance.chapters):
                raise ValidationFailed(
                    step, f"expected {len(instance.chapters)} chapter texts, got {len(value)}"
                )
            edited = []
            for chapter, content in zip(instance.chapters, value):
                copy = chapter.model_copy(deep=True)
                if content != chapter.content:
                    copy.content = content
                    copy.metadata["source"] = "edited"
                edited.append(copy)
            return edited

        if not isinstance(value, str):
            raise ValidationFailed(step, f"expected text, got {type(value).__name__}")
        if step == WorkflowStep.TITLE:
            return value.strip()
        return value

    def _emit(
        self,
        event_type: WorkflowEventType,
        instance: WorkflowInstance,
        step: WorkflowStep | None = None,
        progress: float | None = None,
        **metadata: Any,
    ) -> None:
        """Emit a workflow event with common fields."""
        self.event_emitter.notify(
            event_type,
            instance.instance_id,
            step=step,
            progress=progress,
            **metadata,
        )


def _chapter_from_outline(outline, index: int) -> Chapter:
    return Chapter(
        title=outline.title,
        index=index,
        metadata={"data_points": list(outline.data_points)},
    )
