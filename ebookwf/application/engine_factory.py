"""Wires a WorkflowEngine from configuration."""

import logging

from ebookwf.application.config_models import EngineConfig
from ebookwf.application.export.markdown_exporter import MarkdownExporter
from ebookwf.application.export.paginator import DocumentPaginator
from ebookwf.application.export.pdf_exporter import PdfExporter
from ebookwf.application.export.pdf_renderer import PdfRenderer
from ebookwf.application.step_registry import default_registry
from ebookwf.application.workflow_engine import WorkflowEngine
from ebookwf.domain.events.emitter import WorkflowEventEmitter
from ebookwf.domain.events.logging_observer import LoggingEventObserver
from ebookwf.domain.persistence.artifact_store import FileArtifactStore
from ebookwf.domain.persistence.instance_store import FileInstanceStore
from ebookwf.domain.providers import GenerationClientFactory
from ebookwf.domain.providers.generation_client import GenerationClient

logger = logging.getLogger(__name__)


def create_engine(
    config: EngineConfig,
    client: GenerationClient | None = None,
    event_emitter: WorkflowEventEmitter | None = None,
) -> WorkflowEngine:
    """Build an engine backed by file stores under ``config.sessions_root``.

    Args:
        config: Loaded engine configuration
        client: Generation client to use instead of ``config.client``
        event_emitter: Emitter to use; a new one logging every event otherwise

    Raises:
        KeyError: If config.client is not a registered client
        GenerationError: If the client fails validation
    """
    if client is None:
        client = GenerationClientFactory.create(config.client, config.generation.client_kwargs())
    client.validate()

    if event_emitter is None:
        event_emitter = WorkflowEventEmitter()
        event_emitter.subscribe(LoggingEventObserver())

    registry = default_registry()
    overrides = config.step_overrides()
    if overrides:
        registry = registry.with_overrides(overrides)

    exporter = PdfExporter(
        paginator=DocumentPaginator(cover_note=config.page.cover_note),
        renderer=PdfRenderer(invariant=config.page.invariant, author=config.page.author),
    )

    logger.debug(f"Creating engine with client '{config.client}' at {config.sessions_root}")
    return WorkflowEngine(
        store=FileInstanceStore(config.sessions_root),
        client=client,
        artifact_store=FileArtifactStore(config.sessions_root),
        registry=registry,
        exporter=exporter,
        markdown_exporter=MarkdownExporter(cover_note=config.page.cover_note),
        event_emitter=event_emitter,
    )
