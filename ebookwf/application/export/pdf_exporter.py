from datetime import date
import logging

from ebookwf.application.export.layout import PageLayout
from ebookwf.application.export.paginator import DocumentPaginator
from ebookwf.application.export.pdf_renderer import PdfRenderer
from ebookwf.domain.models.content import DocumentModel

logger = logging.getLogger(__name__)


class PdfExporter:
    """Paginates a document and renders it to PDF bytes."""

    def __init__(self, paginator: DocumentPaginator | None = None, renderer: PdfRenderer | None = None):
        self.paginator = paginator or DocumentPaginator()
        self.renderer = renderer or PdfRenderer()

    def render(self, document: DocumentModel, generated_on: date | None = None) -> tuple[PageLayout, bytes]:
        """Return the layout together with the rendered bytes."""
        layout = self.paginator.paginate(document, generated_on=generated_on)
        data = self.renderer.render(layout)
        logger.info(f"Rendered '{document.title}': {layout.page_count} pages, {len(data)} bytes")
        return layout, data

    def export(self, document: DocumentModel, generated_on: date | None = None) -> bytes:
        _, data = self.render(document, generated_on=generated_on)
        return data
