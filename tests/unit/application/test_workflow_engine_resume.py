"""Tests for resuming persisted instances."""

from unittest.mock import MagicMock

import pytest

from ebookwf.application.workflow_engine import WorkflowEngine
from ebookwf.domain.errors import GenerationError, GenerationUnavailable, InstanceNotFound
from ebookwf.domain.events import WorkflowEventType
from ebookwf.domain.models import StepOutcome, WorkflowStep

from tests.conftest import drive


def _fresh_engine(engine: WorkflowEngine, client) -> WorkflowEngine:
    """A new engine over the same stores, as after a process restart."""
    return WorkflowEngine(store=engine.store, client=client, artifact_store=engine.artifact_store)


class TestResume:
    def test_resume_reports_position(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        fake_client.reset_history()

        resumed = _fresh_engine(engine, fake_client).resume(instance.instance_id)

        assert resumed.current_step == WorkflowStep.CHAPTERS
        assert resumed.step_history[-1].outcome == StepOutcome.RESUMED
        assert fake_client.call_history == []

    def test_stale_latch_cleared(self, engine, instance, fake_client):
        stored = engine.store.load(instance.instance_id)
        stored.is_generating = True
        engine.store.save(stored)

        restarted = _fresh_engine(engine, fake_client)
        assert restarted.resume(instance.instance_id).is_generating is False
        assert restarted.start_step(instance.instance_id, WorkflowStep.TITLE).title == "The Focused Mind"

    def test_resume_after_partial_chapters(self, engine, instance, fake_client):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        fake_client.errors["chapter:Mindset"] = GenerationError("timeout")
        with pytest.raises(GenerationUnavailable):
            engine.generate_chapters(instance.instance_id)
        fake_client.errors.clear()
        fake_client.reset_history()

        restarted = _fresh_engine(engine, fake_client)
        resumed = restarted.resume(instance.instance_id)
        assert resumed.current_step == WorkflowStep.CHAPTERS
        assert resumed.chapters[0].has_content

        restarted.generate_chapters(instance.instance_id)
        assert fake_client.chapter_calls() == ["Mindset"]

    def test_invalid_completed_output_truncates(self, engine, instance, fake_client, emitter):
        drive(engine, instance.instance_id, WorkflowStep.TOC)
        stored = engine.store.load(instance.instance_id)
        stored.title = ""
        engine.store.save(stored)
        observer = MagicMock()
        emitter.subscribe(observer, [WorkflowEventType.STEPS_INVALIDATED])

        resumed = engine.resume(instance.instance_id)

        assert resumed.steps_completed == [WorkflowStep.INPUT]
        assert resumed.current_step == WorkflowStep.TITLE
        assert observer.on_event.call_args.args[0].metadata["steps"] == ["title", "toc"]

    def test_skipped_review_survives_resume(self, engine, instance):
        drive(engine, instance.instance_id, WorkflowStep.ASSEMBLE)
        engine.skip_step(instance.instance_id, WorkflowStep.REVIEW)

        resumed = engine.resume(instance.instance_id)

        assert resumed.is_completed(WorkflowStep.REVIEW)
        assert resumed.current_step == WorkflowStep.EXPORT

    def test_unknown_instance(self, engine):
        with pytest.raises(InstanceNotFound):
            engine.resume("missing")
