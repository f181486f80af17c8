"""Tests for manual edits and retroactive invalidation."""

from unittest.mock import MagicMock

import pytest

from ebookwf.domain.errors import PrerequisiteNotMet, ValidationFailed, WorkflowError
from ebookwf.domain.events import WorkflowEventType
from ebookwf.domain.models import ChapterOutline, StepOutcome, TableOfContents, WorkflowStep

from tests.conftest import drive


class TestEditRules:
    def test_edit_current_step(self, engine, instance):
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "Hand Written")
        assert updated.title == "Hand Written"
        assert not updated.is_completed(WorkflowStep.TITLE)
        assert updated.step_history[-1].outcome == StepOutcome.EDITED

    def test_edit_ahead_of_current_rejected(self, engine, instance):
        with pytest.raises(PrerequisiteNotMet, match="Cannot edit 'introduction'"):
            engine.save_manual_edit(instance.instance_id, WorkflowStep.INTRODUCTION, "Hello")

    def test_local_steps_not_editable(self, engine, instance):
        with pytest.raises(WorkflowError, match="no editable output"):
            engine.save_manual_edit(instance.instance_id, WorkflowStep.ASSEMBLE, "x")

    def test_wrong_value_type_rejected(self, engine, instance):
        with pytest.raises(ValidationFailed, match="expected text"):
            engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, 42)
        assert engine.get(instance.instance_id).title is None


class TestInvalidation:
    def test_changed_title_uncompletes_later_steps(self, engine, instance, emitter):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        observer = MagicMock()
        emitter.subscribe(observer, [WorkflowEventType.STEPS_INVALIDATED])

        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "A New Title")

        assert updated.steps_completed == [WorkflowStep.INPUT, WorkflowStep.TITLE]
        assert updated.current_step == WorkflowStep.TOC
        assert updated.table_of_contents is not None
        assert updated.chapters == []
        event = observer.on_event.call_args.args[0]
        assert event.step == WorkflowStep.TITLE
        assert event.metadata["steps"] == ["toc", "chapters"]

    def test_title_change_regenerates_every_chapter(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "A Completely New Book")
        engine.start_step(instance.instance_id, WorkflowStep.TOC)
        fake_client.reset_history()

        updated = engine.start_step(instance.instance_id, WorkflowStep.CHAPTERS)

        assert fake_client.chapter_calls() == ["Foundations", "Mindset"]
        assert all("A Completely New Book" in p for p in fake_client.calls_for("chapter"))
        assert updated.steps_completed[-1] == WorkflowStep.CHAPTERS
        assert all(c.has_content for c in updated.chapters)

    def test_input_change_clears_chapters(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CONCLUSION)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.INPUT, "Different notes")
        assert updated.chapters == []
        assert engine.get(instance.instance_id).chapters == []
        # Single-call outputs stay until regenerated
        assert updated.introduction is not None

    def test_title_regeneration_clears_chapters(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        fake_client.responses["title"] = "A Sharper Title"
        updated = engine.regenerate_step(instance.instance_id, WorkflowStep.TITLE)
        assert updated.chapters == []

    def test_unchanged_title_keeps_chapters(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "The Focused Mind")
        assert all(c.has_content for c in updated.chapters)
        assert updated.is_completed(WorkflowStep.CHAPTERS)

    def test_unchanged_edit_keeps_progress(self, engine, instance, emitter):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        observer = MagicMock()
        emitter.subscribe(observer, [WorkflowEventType.STEPS_INVALIDATED])

        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "The Focused Mind")

        assert updated.is_completed(WorkflowStep.TOC)
        observer.on_event.assert_not_called()

    def test_changed_input_uncompletes_everything_after(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.INPUT, "Different notes")
        assert updated.steps_completed == [WorkflowStep.INPUT]
        assert updated.current_step == WorkflowStep.TITLE

    def test_edit_persisted(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "A New Title")
        stored = engine.get(instance.instance_id)
        assert stored.title == "A New Title"
        assert stored.current_step == WorkflowStep.TOC

    def test_invalid_edit_uncompletes_the_step(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TITLE, "   ")
        assert updated.title == ""
        assert updated.last_error == "title is empty"
        assert updated.steps_completed == [WorkflowStep.INPUT]
        assert updated.current_step == WorkflowStep.TITLE

    def test_invalidation_clears_skip_marker(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.ASSEMBLE)
        engine.skip_step(instance.instance_id, WorkflowStep.REVIEW)

        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.CONCLUSION, "A new ending.")

        assert updated.metadata["skipped_steps"] == []
        assert updated.steps_completed[-1] == WorkflowStep.CONCLUSION


class TestTableOfContentsEdits:
    def test_changed_outline_resets_later_chapters(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        current = engine.get(instance.instance_id)
        kept_content = current.chapters[0].content
        new_toc = TableOfContents(chapters=[current.table_of_contents.chapters[0], ChapterOutline(title="Habits")])

        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TOC, new_toc)

        assert [c.title for c in updated.chapters] == ["Foundations", "Habits"]
        assert updated.chapters[0].content == kept_content
        assert updated.chapters[1].content is None
        assert updated.steps_completed[-1] == WorkflowStep.TOC

        fake_client.reset_history()
        engine.generate_chapters(instance.instance_id)
        assert fake_client.chapter_calls() == ["Habits"]

    def test_toc_edit_from_json_text(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        updated = engine.save_manual_edit(
            instance.instance_id, WorkflowStep.TOC,
            '{"chapters": [{"title": "One", "dataPoints": ["a"]}, {"title": "Two"}]}',
        )
        assert updated.table_of_contents.titles() == ["One", "Two"]

    def test_toc_edit_from_mapping(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        updated = engine.save_manual_edit(
            instance.instance_id, WorkflowStep.TOC, {"chapters": [{"title": "Only"}]}
        )
        assert updated.table_of_contents.titles() == ["Only"]

    def test_unreadable_toc_not_stored(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        with pytest.raises(ValidationFailed):
            engine.save_manual_edit(instance.instance_id, WorkflowStep.TOC, "not json")
        assert engine.get(instance.instance_id).table_of_contents.titles() == ["Foundations", "Mindset"]

    def test_empty_toc_stored_with_error(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.TOC, {"chapters": []})
        assert updated.last_error == "table of contents has no chapters"
        assert updated.current_step == WorkflowStep.TOC


class TestChapterEdits:
    def test_edit_one_chapter(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CONCLUSION)
        updated = engine.save_chapter_edit(instance.instance_id, 0, "Rewritten by hand.")
        assert updated.chapters[0].content == "Rewritten by hand."
        assert updated.chapters[0].metadata["source"] == "edited"
        assert updated.steps_completed[-1] == WorkflowStep.CHAPTERS
        assert updated.introduction is not None

    def test_blank_chapter_uncompletes_chapters(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        updated = engine.save_chapter_edit(instance.instance_id, 1, "")
        assert updated.last_error == "chapters without content: 2"
        assert updated.current_step == WorkflowStep.CHAPTERS

    def test_edit_chapter_before_generation(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        engine.save_chapter_edit(instance.instance_id, 0, "Written first by the author.")
        fake_client.reset_history()

        updated = engine.generate_chapters(instance.instance_id)

        assert fake_client.chapter_calls() == ["Mindset"]
        assert updated.chapters[0].content == "Written first by the author."

    def test_chapter_index_out_of_range(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        with pytest.raises(WorkflowError, match="out of range"):
            engine.save_chapter_edit(instance.instance_id, 2, "text")

    def test_edit_all_chapters_as_list(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        updated = engine.save_manual_edit(instance.instance_id, WorkflowStep.CHAPTERS, ["One.", "Two."])
        assert [c.content for c in updated.chapters] == ["One.", "Two."]

    def test_chapter_list_length_checked(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.CHAPTERS)
        with pytest.raises(ValidationFailed, match="expected 2 chapter texts"):
            engine.save_manual_edit(instance.instance_id, WorkflowStep.CHAPTERS, ["Only one."])
