from __future__ import annotations

import html
import logging

from bilingualpdf.adapters.render_client import RenderClient
from bilingualpdf.pdf.linker import LinkRect
from bilingualpdf.toc.base import (
    TOC_HEADING,
    TocContext,
    TocEntryAnchor,
    TocRenderer,
    TocRendering,
    page_size_points,
)
from bilingualpdf.types import RenderOptions, parse_length


logger = logging.getLogger(__name__)

MM = 72.0 / 25.4

# Block heights in mm. The stylesheet pins every block to these heights so
# entry positions can be estimated without reading the rendered page back.
TITLE_HEIGHT_MM = 12.0
TITLE_JA_HEIGHT_MM = 10.0
RULE_HEIGHT_MM = 8.0
INFO_LINE_HEIGHT_MM = 7.0
SECTION_GAP_MM = 14.0
HEADING_HEIGHT_MM = 12.0
ENTRY_HEIGHT_MM = 12.0

NAVY = '#2D2F63'
ORANGE = '#FFBC68'
GRAY = '#4B5563'


def _stylesheet() -> str:
    return f"""
    * {{ box-sizing: border-box; margin: 0; padding: 0; }}
    body {{ font-family: 'IBM Plex Sans', 'Noto Sans JP', sans-serif; color: {NAVY}; }}
    .block {{ overflow: hidden; white-space: nowrap; }}
    .title {{ height: {TITLE_HEIGHT_MM}mm; font-size: 24pt; font-weight: 600; line-height: {TITLE_HEIGHT_MM}mm; }}
    .title-ja {{ height: {TITLE_JA_HEIGHT_MM}mm; font-size: 18pt; line-height: {TITLE_JA_HEIGHT_MM}mm; }}
    .rule {{ height: {RULE_HEIGHT_MM}mm; padding-top: 2mm; }}
    .rule div {{ height: 2px; background: {ORANGE}; }}
    .info {{ height: {INFO_LINE_HEIGHT_MM}mm; font-size: 12pt; line-height: {INFO_LINE_HEIGHT_MM}mm; color: {GRAY}; }}
    .gap {{ height: {SECTION_GAP_MM}mm; }}
    .heading {{ height: {HEADING_HEIGHT_MM}mm; font-size: 16pt; font-weight: 600; line-height: {HEADING_HEIGHT_MM}mm; }}
    .entry {{ height: {ENTRY_HEIGHT_MM}mm; display: flex; align-items: center; font-size: 14pt; padding-left: 7mm; }}
    .entry .leader {{ flex: 1; margin: 0 3mm; border-bottom: 1px dotted {GRAY}; height: 1px; }}
    .entry .pages {{ color: {GRAY}; }}
    .footer {{ position: fixed; bottom: 0; left: 0; right: 0; display: flex; justify-content: space-between; font-size: 9pt; color: {GRAY}; }}
    """


def build_toc_html(context: TocContext, *, font_css_url: str | None = None) -> str:
    """Build the TOC page markup. All caller text is escaped."""
    esc = html.escape
    parts: list[str] = [f'<div class="block title">{esc(context.spec.title)}</div>']
    if context.spec.title_ja:
        parts.append(f'<div class="block title-ja" lang="ja">{esc(context.spec.title_ja)}</div>')
    parts.append('<div class="block rule"><div></div></div>')
    if context.client_line:
        parts.append(f'<div class="block info">{esc(context.client_line)}</div>')
    parts.append(f'<div class="block info">{esc(context.date_line)}</div>')
    parts.append('<div class="block gap"></div>')
    parts.append(f'<div class="block heading">{esc(TOC_HEADING)}</div>')

    for entry in context.entries:
        parts.append(
            '<div class="block entry" data-language="{lang}">'
            '<span class="label">{label}</span><span class="leader"></span>'
            '<span class="pages">{pages}</span></div>'.format(
                lang=entry.language.value,
                label=esc(entry.label),
                pages=esc(entry.page_label),
            )
        )

    parts.append(
        '<div class="footer"><span>{footer}</span><span>{total}</span></div>'.format(
            footer=esc(context.footer_line),
            total=esc(context.total_line),
        )
    )

    font_link = ''
    if font_css_url:
        font_link = f'<link rel="stylesheet" href="{esc(font_css_url, quote=True)}">'

    return (
        '<!DOCTYPE html>\n'
        '<html lang="en">\n'
        '<head>\n'
        '<meta charset="UTF-8">\n'
        f'<title>{esc(context.spec.title)}</title>\n'
        f'{font_link}\n'
        f'<style>{_stylesheet()}</style>\n'
        '</head>\n'
        f'<body class="toc-page">\n{"".join(parts)}\n</body>\n'
        '</html>'
    )


def toc_render_options(options: RenderOptions) -> RenderOptions:
    return options.model_copy(
        update={
            'display_header_footer': False,
            'header_template': '<div></div>',
            'footer_template': '<div></div>',
            'scale': 1.0,
        }
    )


def estimate_entry_anchors(context: TocContext) -> list[TocEntryAnchor]:
    """Approximate entry rectangles from the fixed block heights.

    Accurate to the block grid, not to the glyphs: font metrics and renderer
    rounding can shift the real line by a millimetre or two.
    """
    options = context.options
    page_width, page_height = page_size_points(options)
    margin_top = parse_length(options.margin.top)
    margin_left = parse_length(options.margin.left)
    margin_right = parse_length(options.margin.right)

    offset_mm = TITLE_HEIGHT_MM + RULE_HEIGHT_MM + INFO_LINE_HEIGHT_MM + SECTION_GAP_MM + HEADING_HEIGHT_MM
    if context.spec.title_ja:
        offset_mm += TITLE_JA_HEIGHT_MM
    if context.client_line:
        offset_mm += INFO_LINE_HEIGHT_MM

    anchors: list[TocEntryAnchor] = []
    for index, entry in enumerate(context.entries):
        entry_top = page_height - margin_top - (offset_mm + index * ENTRY_HEIGHT_MM) * MM
        anchors.append(
            TocEntryAnchor(
                language=entry.language,
                toc_page_index=0,
                rect=LinkRect(
                    x=margin_left,
                    y=entry_top - ENTRY_HEIGHT_MM * MM,
                    width=page_width - margin_left - margin_right,
                    height=ENTRY_HEIGHT_MM * MM,
                ),
            )
        )
    return anchors


class HtmlTocRenderer(TocRenderer):
    """Renders the TOC as HTML through the same engine as the bodies."""

    name = 'html'

    def __init__(self, client: RenderClient, *, font_css_url: str | None = None):
        self.client = client
        self.font_css_url = font_css_url

    async def render(self, context: TocContext) -> TocRendering:
        markup = build_toc_html(context, font_css_url=self.font_css_url)
        logger.debug('Built TOC markup: %s chars', len(markup))
        label = 'toc-probe' if context.probe else 'toc'
        pdf_bytes = await self.client.render_pdf(markup, toc_render_options(context.options), label=label)
        return TocRendering(pdf_bytes=pdf_bytes, anchors=estimate_entry_anchors(context))
