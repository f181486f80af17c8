"""Pure layout pass: DocumentModel -> PageLayout."""

from datetime import date
import logging
import re

from reportlab.lib.utils import simpleSplit

from ebookwf.application.export.layout import (
    Align,
    Page,
    PageKind,
    PageLayout,
    PageSettings,
    PlacedBlock,
    TextBlock,
)
from ebookwf.domain.models.content import DocumentModel

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
SUBHEADING_MAX_LENGTH = 100

DEFAULT_COVER_NOTE = "Generated with eBook Workflow Engine"


def split_paragraphs(text: str) -> list[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text.strip()) if p.strip()]


def is_subheading(paragraph: str) -> bool:
    """Short paragraphs ending in ':' or '?' are rendered as sub-headings."""
    stripped = paragraph.strip()
    return len(stripped) < SUBHEADING_MAX_LENGTH and stripped.endswith((":", "?"))


def format_cover_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


class _LayoutBuilder:
    """Flows blocks onto pages, opening a new page when the current one is full."""

    def __init__(self, settings: PageSettings, header: str):
        self.settings = settings
        self.header = header
        self.pages: list[Page] = []
        self.page: Page | None = None
        self.cursor = 0.0

    def start_page(self, kind: PageKind, cursor: float, chapter_index: int | None = None,
                   header: bool = True, continuation: bool = False) -> Page:
        self.page = Page(
            number=len(self.pages) + 1,
            kind=kind,
            header=self.header if header else None,
            chapter_index=chapter_index,
            is_continuation=continuation,
        )
        self.pages.append(self.page)
        self.cursor = cursor
        return self.page

    def wrap(self, block: TextBlock) -> tuple[str, ...]:
        width = self.settings.content_width - block.indent
        lines = simpleSplit(block.text, block.font, block.size, width)
        return tuple(lines) or ("",)

    def place_at(self, block: TextBlock, y: float) -> PlacedBlock:
        """Place a block at a fixed position without moving the cursor."""
        lines = self.wrap(block)
        placed = PlacedBlock(block=block, y=y, lines=lines,
                             height=len(lines) * block.size * self.settings.line_height)
        self.page.blocks.append(placed)
        return placed

    def add(self, block: TextBlock) -> PlacedBlock:
        """Flow a block at the cursor.

        Blocks are atomic: if one does not fit and the page already holds
        content, it moves to a new page; an oversized block on an empty page
        overflows.
        """
        lines = self.wrap(block)
        height = len(lines) * block.size * self.settings.line_height

        if self.cursor + height > self.settings.bottom_limit and self.page.blocks:
            current = self.page
            self.start_page(current.kind, self.settings.margin,
                            chapter_index=current.chapter_index, continuation=True)

        placed = PlacedBlock(block=block, y=self.cursor, lines=lines, height=height)
        self.page.blocks.append(placed)
        self.cursor += height + block.size * block.spacing
        return placed


class DocumentPaginator:
    """Lays out a DocumentModel as A4 pages.

    Deterministic: the same document, settings and date always give the
    same pages and break positions.
    """

    def __init__(self, settings: PageSettings | None = None, cover_note: str | None = DEFAULT_COVER_NOTE):
        self.settings = settings or PageSettings()
        self.cover_note = cover_note

    def paginate(self, document: DocumentModel, generated_on: date | None = None) -> PageLayout:
        s = self.settings
        builder = _LayoutBuilder(s, header=document.title)

        self._cover(builder, document, generated_on or date.today())
        self._table_of_contents(builder, document)

        builder.start_page(PageKind.INTRODUCTION, s.margin * 2)
        builder.add(self._heading("Introduction"))
        for paragraph in split_paragraphs(document.introduction):
            builder.add(self._body(paragraph))

        for chapter in document.chapters:
            builder.start_page(PageKind.CHAPTER, s.margin * 2, chapter_index=chapter.index)
            builder.add(TextBlock(
                text=f"Chapter {chapter.index + 1}",
                font=s.bold_font,
                size=s.subheading_size,
                color=s.accent_color,
                align=Align.CENTER,
                spacing=0.5,
            ))
            builder.add(self._heading(chapter.title))
            for paragraph in split_paragraphs(chapter.content or ""):
                if is_subheading(paragraph):
                    builder.add(TextBlock(
                        text=paragraph,
                        font=s.bold_font,
                        size=s.subheading_size,
                        color=s.text_color,
                        spacing=1.0,
                    ))
                else:
                    builder.add(self._body(paragraph))

        builder.start_page(PageKind.CONCLUSION, s.margin * 2)
        builder.add(self._heading("Conclusion"))
        for paragraph in split_paragraphs(document.conclusion):
            builder.add(self._body(paragraph))

        logger.debug(f"Paginated '{document.title}' into {len(builder.pages)} pages")
        return PageLayout(title=document.title, settings=s, pages=tuple(builder.pages))

    def _cover(self, builder: _LayoutBuilder, document: DocumentModel, generated_on: date) -> None:
        s = self.settings
        builder.start_page(PageKind.COVER, s.margin, header=False)
        builder.place_at(
            TextBlock(
                text=document.title,
                font=s.bold_font,
                size=s.title_size,
                color=s.accent_color,
                align=Align.CENTER,
            ),
            y=s.height / 2.5,
        )
        if self.cover_note:
            builder.place_at(
                TextBlock(
                    text=self.cover_note,
                    font=s.italic_font,
                    size=s.subheading_size,
                    color=s.muted_color,
                    align=Align.CENTER,
                ),
                y=s.height - s.margin * 2,
            )
        builder.place_at(
            TextBlock(
                text=format_cover_date(generated_on),
                font=s.italic_font,
                size=s.footer_size,
                color=s.muted_color,
                align=Align.CENTER,
            ),
            y=s.height - s.margin * 1.5,
        )

    def _table_of_contents(self, builder: _LayoutBuilder, document: DocumentModel) -> None:
        s = self.settings
        builder.start_page(PageKind.TOC, s.margin * 1.5)
        builder.add(self._heading("Table of Contents"))

        entries = ["Introduction"]
        entries += [f"Chapter {c.index + 1}: {c.title}" for c in document.chapters]
        entries.append("Conclusion")
        for entry in entries:
            builder.add(TextBlock(
                text=entry,
                font=s.font,
                size=s.body_size,
                color=s.text_color,
                indent=s.toc_indent,
                spacing=0.8,
            ))

    def _heading(self, text: str) -> TextBlock:
        s = self.settings
        return TextBlock(
            text=text,
            font=s.bold_font,
            size=s.heading_size,
            color=s.accent_color,
            align=Align.CENTER,
            spacing=1.5,
        )

    def _body(self, text: str) -> TextBlock:
        s = self.settings
        return TextBlock(text=text, font=s.font, size=s.body_size, color=s.text_color, spacing=1.2)
