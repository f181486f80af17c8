from pathlib import Path

import pytest

from ebookwf.application.export.paginator import DocumentPaginator
from ebookwf.application.export.pdf_exporter import PdfExporter
from ebookwf.application.export.pdf_renderer import PdfRenderer
from ebookwf.application.workflow_engine import WorkflowEngine
from ebookwf.domain.events.emitter import WorkflowEventEmitter
from ebookwf.domain.models.content import Chapter, ChapterOutline, DocumentModel, TableOfContents
from ebookwf.domain.models.workflow_state import STEP_ORDER, WorkflowInstance, WorkflowStep
from ebookwf.domain.persistence.artifact_store import InMemoryArtifactStore
from ebookwf.domain.persistence.instance_store import InMemoryInstanceStore
from ebookwf.domain.providers.client_factory import GenerationClientFactory

from tests.integration.providers.fake_generation_client import FakeGenerationClient


@pytest.fixture
def sessions_root(tmp_path: Path) -> Path:
    """Isolated sessions root for tests.

    Tests should not write into the real .ebookwf/sessions directory.
    """
    return tmp_path / "sessions"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent tests from picking up a developer's API key."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)


@pytest.fixture(autouse=True)
def _restore_client_registry():
    """Restore the client factory registry after each test."""
    original_registry = dict(GenerationClientFactory._registry)
    yield
    GenerationClientFactory._registry.clear()
    GenerationClientFactory._registry.update(original_registry)


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient(chapter_titles=["Foundations", "Mindset"])


@pytest.fixture
def emitter() -> WorkflowEventEmitter:
    return WorkflowEventEmitter()


@pytest.fixture
def engine(fake_client: FakeGenerationClient, emitter: WorkflowEventEmitter) -> WorkflowEngine:
    """Engine with in-memory stores and byte-stable PDF output."""
    return WorkflowEngine(
        store=InMemoryInstanceStore(),
        client=fake_client,
        artifact_store=InMemoryArtifactStore(),
        exporter=PdfExporter(DocumentPaginator(), PdfRenderer(invariant=True)),
        event_emitter=emitter,
    )


def make_document(
    title: str = "The Focused Mind",
    chapter_bodies: dict[str, str] | None = None,
) -> DocumentModel:
    """Build a small complete DocumentModel."""
    chapter_bodies = chapter_bodies or {
        "Foundations": "Attention is limited.\n\nKey ideas:\n\nFocus on one thing at a time.",
        "Mindset": "Why do we drift?\n\nBecause novelty is rewarding.",
    }
    outlines = [ChapterOutline(title=t, data_points=[f"{t} point"]) for t in chapter_bodies]
    chapters = [
        Chapter(title=t, content=body, index=i)
        for i, (t, body) in enumerate(chapter_bodies.items())
    ]
    return DocumentModel(
        title=title,
        introduction="This book is about attention.\n\nRead it slowly.",
        table_of_contents=TableOfContents(chapters=outlines),
        chapters=chapters,
        conclusion="Practice focus daily.",
    )


RAW_INPUT = (
    "Notes: attention is a limited resource. Habits shape focus. "
    "Distraction is rewarded by novelty."
)


@pytest.fixture
def instance(engine: WorkflowEngine) -> WorkflowInstance:
    """A fresh instance with INPUT completed."""
    return engine.create_instance("Draft", "owner-1", raw_input=RAW_INPUT)


def drive(engine: WorkflowEngine, instance_id: str, through: WorkflowStep) -> WorkflowInstance:
    """Run every step after INPUT up to and including ``through``."""
    for step in STEP_ORDER[1: through.position + 1]:
        engine.start_step(instance_id, step)
    return engine.get(instance_id)


def event_types(observer) -> list:
    """Event types a MagicMock observer received, in order."""
    return [c.args[0].event_type for c in observer.on_event.call_args_list]
