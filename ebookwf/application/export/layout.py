"""Page layout types produced by the paginator and drawn by the renderer.

Coordinates are in points, measured from the top edge of the page. A block's
``y`` is the baseline of its first line.
"""

from dataclasses import dataclass, field
from enum import Enum

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm


@dataclass(frozen=True, slots=True)
class PageSettings:
    """Page geometry and typography (A4, 20 mm margins, Helvetica)."""

    width: float = A4[0]
    height: float = A4[1]
    margin: float = 20 * mm
    header_y: float = 10 * mm
    footer_offset: float = 10 * mm
    line_height: float = 1.5
    toc_indent: float = 5 * mm

    title_size: float = 28
    heading_size: float = 20
    subheading_size: float = 16
    body_size: float = 12
    footer_size: float = 10

    font: str = "Helvetica"
    bold_font: str = "Helvetica-Bold"
    italic_font: str = "Helvetica-Oblique"

    # RGB 0-255
    text_color: tuple[int, int, int] = (0, 0, 0)
    accent_color: tuple[int, int, int] = (25, 108, 166)
    muted_color: tuple[int, int, int] = (100, 100, 100)
    cover_background: tuple[int, int, int] = (245, 245, 250)
    cover_band_height: float = 40 * mm

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    @property
    def bottom_limit(self) -> float:
        """Lowest point content may reach, measured from the top."""
        return self.height - self.margin * 1.5

    @property
    def footer_y(self) -> float:
        return self.height - self.footer_offset


class PageKind(str, Enum):
    COVER = "cover"
    TOC = "toc"
    INTRODUCTION = "introduction"
    CHAPTER = "chapter"
    CONCLUSION = "conclusion"


class Align(str, Enum):
    LEFT = "left"
    CENTER = "center"


@dataclass(frozen=True, slots=True)
class TextBlock:
    """A unit of text that is never split across pages."""

    text: str
    font: str
    size: float
    color: tuple[int, int, int]
    align: Align = Align.LEFT
    indent: float = 0.0
    spacing: float = 0.5


@dataclass(frozen=True, slots=True)
class PlacedBlock:
    block: TextBlock
    y: float
    lines: tuple[str, ...]
    height: float


@dataclass(slots=True)
class Page:
    number: int
    kind: PageKind
    header: str | None
    chapter_index: int | None = None
    blocks: list[PlacedBlock] = field(default_factory=list)
    is_continuation: bool = False

    @property
    def footer(self) -> str:
        return f"Page {self.number}"


@dataclass(frozen=True, slots=True)
class PageLayout:
    title: str
    settings: PageSettings
    pages: tuple[Page, ...]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def break_positions(self) -> list[tuple[int, str]]:
        """(page number, first line on the page) for every page with content."""
        return [
            (page.number, page.blocks[0].lines[0] if page.blocks[0].lines else "")
            for page in self.pages
            if page.blocks
        ]

    def pages_of_kind(self, kind: PageKind) -> list[Page]:
        return [p for p in self.pages if p.kind == kind]
