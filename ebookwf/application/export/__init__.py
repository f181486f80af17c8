from .formats import ExportFormat
from .layout import Align, Page, PageKind, PageLayout, PageSettings, PlacedBlock, TextBlock
from .paginator import DocumentPaginator, is_subheading, split_paragraphs
from .pdf_renderer import PdfRenderer
from .pdf_exporter import PdfExporter
from .markdown_exporter import MarkdownExporter, heading_anchor

__all__ = [
    "ExportFormat",
    "Align",
    "Page",
    "PageKind",
    "PageLayout",
    "PageSettings",
    "PlacedBlock",
    "TextBlock",
    "DocumentPaginator",
    "is_subheading",
    "split_paragraphs",
    "PdfRenderer",
    "PdfExporter",
    "MarkdownExporter",
    "heading_anchor",
]
