"""Markdown rendition of an assembled document."""

from datetime import date
import logging
import re

from ebookwf.application.export.paginator import (
    DEFAULT_COVER_NOTE,
    format_cover_date,
    is_subheading,
    split_paragraphs,
)
from ebookwf.domain.models.content import DocumentModel

logger = logging.getLogger(__name__)

_ANCHOR_DROP = re.compile(r"[^a-z0-9 -]")


def heading_anchor(heading: str) -> str:
    """GitHub-style anchor for a heading: lowercase, punctuation dropped, spaces to hyphens."""
    return _ANCHOR_DROP.sub("", heading.strip().lower()).replace(" ", "-")


class MarkdownExporter:
    """Renders a DocumentModel as a single Markdown file.

    Section order matches the PDF: title block, table of contents,
    introduction, chapters, conclusion. Short paragraphs ending in ':' or '?'
    become sub-headings, as they do in the PDF layout.
    """

    def __init__(self, cover_note: str | None = DEFAULT_COVER_NOTE):
        self.cover_note = cover_note

    def render(self, document: DocumentModel, generated_on: date | None = None) -> str:
        sections = [f"# {document.title}"]

        byline = []
        if self.cover_note:
            byline.append(f"*{self.cover_note}*")
        byline.append(f"*{format_cover_date(generated_on or date.today())}*")
        sections.append("  \n".join(byline))

        headings = ["Introduction"]
        headings += [c.display_title for c in document.chapters]
        headings.append("Conclusion")
        toc = "\n".join(f"{i + 1}. [{h}](#{heading_anchor(h)})" for i, h in enumerate(headings))
        sections.append(f"## Table of Contents\n\n{toc}")

        sections.append(self._section("Introduction", document.introduction))
        for chapter in document.chapters:
            sections.append(self._section(chapter.display_title, chapter.content or ""))
        sections.append(self._section("Conclusion", document.conclusion))

        return "\n\n".join(sections) + "\n"

    def export(self, document: DocumentModel, generated_on: date | None = None) -> bytes:
        text = self.render(document, generated_on=generated_on)
        data = text.encode("utf-8")
        logger.info(f"Rendered '{document.title}' as Markdown: {len(data)} bytes")
        return data

    def _section(self, heading: str, text: str) -> str:
        parts = [f"## {heading}"]
        for paragraph in split_paragraphs(text):
            if is_subheading(paragraph):
                parts.append(f"### {paragraph}")
            else:
                parts.append(paragraph)
        return "\n\n".join(parts)
