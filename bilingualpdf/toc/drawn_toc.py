from __future__ import annotations

import asyncio
import logging
from io import BytesIO

from reportlab.lib.colors import HexColor
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfgen import canvas

from bilingualpdf.pdf.linker import LinkRect
from bilingualpdf.toc.base import (
    TOC_HEADING,
    TocContext,
    TocEntryAnchor,
    TocRenderer,
    TocRendering,
    page_size_points,
)
from bilingualpdf.types import parse_length


logger = logging.getLogger(__name__)

FONT_LATIN = 'Helvetica'
FONT_LATIN_BOLD = 'Helvetica-Bold'
FONT_JAPANESE = 'HeiseiKakuGo-W5'

NAVY = HexColor('#2D2F63')
ORANGE = HexColor('#FFBC68')
GRAY = HexColor('#4B5563')

ENTRY_INDENT = 20.0
ENTRY_SIZE = 14
ENTRY_STEP = 35.0
DOT_SPACING = 6.0


def _contains_japanese(ch: str) -> bool:
    code = ord(ch)
    return (
        0x3000 <= code <= 0x30FF
        or 0x3400 <= code <= 0x4DBF
        or 0x4E00 <= code <= 0x9FFF
        or 0xFF00 <= code <= 0xFFEF
    )


def _ensure_japanese_font() -> str | None:
    if FONT_JAPANESE in pdfmetrics.getRegisteredFontNames():
        return FONT_JAPANESE
    try:
        pdfmetrics.registerFont(UnicodeCIDFont(FONT_JAPANESE))
    except Exception as exc:
        logger.warning('Japanese CID font unavailable, falling back to %s: %s', FONT_LATIN, exc)
        return None
    return FONT_JAPANESE


def split_runs(text: str) -> list[tuple[str, bool]]:
    """Split text into (run, is_japanese) pieces."""
    runs: list[tuple[str, bool]] = []
    for ch in text:
        japanese = _contains_japanese(ch)
        if runs and runs[-1][1] == japanese:
            runs[-1] = (runs[-1][0] + ch, japanese)
        else:
            runs.append((ch, japanese))
    return runs


class DrawnTocRenderer(TocRenderer):
    """Draws the TOC locally with graphics primitives.

    No network call is involved, and link rectangles are exact because this
    renderer places every line itself.
    """

    name = 'drawn'

    def __init__(self) -> None:
        self._japanese_font = _ensure_japanese_font()

    async def render(self, context: TocContext) -> TocRendering:
        return await asyncio.to_thread(self.draw, context)

    def _font_for(self, japanese: bool, latin_font: str) -> str:
        if japanese and self._japanese_font:
            return self._japanese_font
        return latin_font

    def text_width(self, text: str, size: float, latin_font: str = FONT_LATIN) -> float:
        return sum(
            pdfmetrics.stringWidth(run, self._font_for(japanese, latin_font), size)
            for run, japanese in split_runs(text)
        )

    def _draw_text(self, pdf: canvas.Canvas, x: float, y: float, text: str, size: float, latin_font: str) -> float:
        cursor = x
        for run, japanese in split_runs(text):
            font = self._font_for(japanese, latin_font)
            pdf.setFont(font, size)
            pdf.drawString(cursor, y, run)
            cursor += pdfmetrics.stringWidth(run, font, size)
        return cursor - x

    def draw(self, context: TocContext) -> TocRendering:
        width, height = page_size_points(context.options)
        margin_left = parse_length(context.options.margin.left)
        margin_right = parse_length(context.options.margin.right)
        margin_top = parse_length(context.options.margin.top)
        margin_bottom = parse_length(context.options.margin.bottom)
        right_edge = width - margin_right

        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(width, height))
        pdf.setTitle(context.spec.title)

        y = height - margin_top - 24
        pdf.setFillColor(NAVY)
        self._draw_text(pdf, margin_left, y, context.spec.title, 24, FONT_LATIN_BOLD)
        y -= 30

        if context.spec.title_ja:
            self._draw_text(pdf, margin_left, y, context.spec.title_ja, 18, FONT_LATIN)
            y -= 25

        pdf.setFillColor(ORANGE)
        pdf.rect(margin_left, y - 5, right_edge - margin_left, 2, stroke=0, fill=1)
        y -= 30

        pdf.setFillColor(GRAY)
        if context.client_line:
            self._draw_text(pdf, margin_left, y, context.client_line, 12, FONT_LATIN)
            y -= 20
        self._draw_text(pdf, margin_left, y, context.date_line, 12, FONT_LATIN)
        y -= 60

        pdf.setFillColor(NAVY)
        self._draw_text(pdf, margin_left, y, TOC_HEADING, 16, FONT_LATIN_BOLD)
        y -= 40

        anchors: list[TocEntryAnchor] = []
        for entry in context.entries:
            label_x = margin_left + ENTRY_INDENT
            pdf.setFillColor(NAVY)
            label_width = self._draw_text(pdf, label_x, y, entry.label, ENTRY_SIZE, FONT_LATIN)

            page_label = entry.page_label
            page_width = self.text_width(page_label, ENTRY_SIZE)
            pdf.setFillColor(GRAY)
            self._draw_text(pdf, right_edge - page_width, y, page_label, ENTRY_SIZE, FONT_LATIN)

            dot_x = label_x + label_width + 10
            while dot_x < right_edge - page_width - 10:
                pdf.circle(dot_x, y + 4, 1, stroke=0, fill=1)
                dot_x += DOT_SPACING

            anchors.append(
                TocEntryAnchor(
                    language=entry.language,
                    toc_page_index=0,
                    rect=LinkRect(
                        x=label_x - 4,
                        y=y - 8,
                        width=right_edge - label_x + 4,
                        height=ENTRY_SIZE + 12,
                    ),
                )
            )
            y -= ENTRY_STEP

        pdf.setFillColor(GRAY)
        self._draw_text(pdf, margin_left, margin_bottom, context.footer_line, 9, FONT_LATIN)
        total_width = self.text_width(context.total_line, 9)
        self._draw_text(pdf, right_edge - total_width, margin_bottom, context.total_line, 9, FONT_LATIN)

        pdf.showPage()
        pdf.save()
        return TocRendering(pdf_bytes=buffer.getvalue(), anchors=anchors)
