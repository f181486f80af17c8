"""Draws a PageLayout with the reportlab canvas."""

import io

from reportlab.pdfgen import canvas

from ebookwf.application.export.layout import Align, Page, PageKind, PageLayout, PageSettings


def _rgb(color: tuple[int, int, int]) -> tuple[float, float, float]:
    return color[0] / 255, color[1] / 255, color[2] / 255


class PdfRenderer:
    """Renders every page of a layout into one PDF byte stream.

    With ``invariant=True`` reportlab omits timestamps and random ids, so the
    same layout always renders to identical bytes.
    """

    def __init__(self, invariant: bool = False, author: str | None = None):
        self.invariant = invariant
        self.author = author

    def render(self, layout: PageLayout) -> bytes:
        s = layout.settings
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(s.width, s.height), invariant=int(self.invariant))
        c.setTitle(layout.title)
        if self.author:
            c.setAuthor(self.author)

        for page in layout.pages:
            if page.kind == PageKind.COVER:
                self._draw_cover_background(c, s)
            if page.header:
                self._draw_header(c, s, page.header)
            self._draw_blocks(c, s, page)
            self._draw_footer(c, s, page)
            c.showPage()

        c.save()
        return buffer.getvalue()

    def _draw_cover_background(self, c: canvas.Canvas, s: PageSettings) -> None:
        c.setFillColorRGB(*_rgb(s.cover_background))
        c.rect(0, 0, s.width, s.height, stroke=0, fill=1)
        c.setFillColorRGB(*_rgb(s.accent_color))
        c.rect(0, s.height - s.cover_band_height, s.width, s.cover_band_height, stroke=0, fill=1)

    def _draw_header(self, c: canvas.Canvas, s: PageSettings, text: str) -> None:
        c.setFont(s.font, s.footer_size)
        c.setFillColorRGB(*_rgb(s.muted_color))
        c.drawString(s.margin, s.height - s.header_y, text)

    def _draw_footer(self, c: canvas.Canvas, s: PageSettings, page: Page) -> None:
        c.setFont(s.font, s.footer_size)
        c.setFillColorRGB(*_rgb(s.muted_color))
        c.drawCentredString(s.width / 2, s.height - s.footer_y, page.footer)

    def _draw_blocks(self, c: canvas.Canvas, s: PageSettings, page: Page) -> None:
        for placed in page.blocks:
            block = placed.block
            c.setFont(block.font, block.size)
            c.setFillColorRGB(*_rgb(block.color))
            step = block.size * s.line_height
            for i, line in enumerate(placed.lines):
                baseline = s.height - (placed.y + i * step)
                if block.align == Align.CENTER:
                    c.drawCentredString(s.width / 2, baseline, line)
                else:
                    c.drawString(s.margin + block.indent, baseline, line)
