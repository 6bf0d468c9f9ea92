from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from bilingualpdf.pdf.linker import LinkRect
from bilingualpdf.pdf.offsets import PageRange, SectionRanges
from bilingualpdf.types import Language, PageFormat, RenderOptions, TocSpec


LANGUAGE_LABELS = {
    Language.en: ('English Version', '英語版'),
    Language.ja: ('Japanese Version', '日本語版'),
}

TOC_HEADING = 'Table of Contents / 目次'
CONFIDENTIAL_LABEL = 'Confidential / 機密'

# Widest labels a probe render can show ("pp. 100-999").
PROBE_START_PAGE = 100
PROBE_PAGE_COUNT = 900

PAGE_SIZES_PT = {
    PageFormat.a4: (595.28, 841.89),
    PageFormat.letter: (612.0, 792.0),
}


@dataclass(frozen=True)
class TocEntry:
    language: Language
    page_range: PageRange

    @property
    def label_en(self) -> str:
        return LANGUAGE_LABELS[self.language][0]

    @property
    def label_ja(self) -> str:
        return LANGUAGE_LABELS[self.language][1]

    @property
    def label(self) -> str:
        return f'{self.label_en} / {self.label_ja}'

    @property
    def page_label(self) -> str:
        return self.page_range.label()


@dataclass(frozen=True)
class TocContext:
    spec: TocSpec
    entries: tuple[TocEntry, ...]
    total_pages: int
    options: RenderOptions = field(default_factory=RenderOptions)
    organization_name: str | None = None
    probe: bool = False

    @property
    def date_line(self) -> str:
        if self.spec.date_ja:
            return f'Date: {self.spec.date} / {self.spec.date_ja}'
        return f'Date: {self.spec.date}'

    @property
    def client_line(self) -> str | None:
        if not self.spec.client_name:
            return None
        return f'Prepared for: {self.spec.client_name}'

    @property
    def footer_line(self) -> str:
        if self.organization_name:
            return f'© {datetime.now().year} {self.organization_name} | {CONFIDENTIAL_LABEL}'
        return CONFIDENTIAL_LABEL

    @property
    def total_line(self) -> str:
        return f'Total: {self.total_pages} pages'


@dataclass(frozen=True)
class TocEntryAnchor:
    """Where an entry sits on the rendered TOC, in PDF points."""

    language: Language
    toc_page_index: int
    rect: LinkRect


@dataclass
class TocRendering:
    pdf_bytes: bytes
    anchors: list[TocEntryAnchor] = field(default_factory=list)


class TocRenderer(ABC):
    """Produces the table-of-contents pages for a combined document."""

    name = 'abstract'

    @abstractmethod
    async def render(self, context: TocContext) -> TocRendering:
        raise NotImplementedError


def build_toc_context(
    spec: TocSpec,
    ranges: SectionRanges,
    *,
    options: RenderOptions | None = None,
    organization_name: str | None = None,
) -> TocContext:
    first_language = ranges.first_language
    entries = (
        TocEntry(language=first_language, page_range=ranges.first),
        TocEntry(language=first_language.other, page_range=ranges.second),
    )
    return TocContext(
        spec=spec,
        entries=entries,
        total_pages=ranges.total_pages,
        options=options or RenderOptions(),
        organization_name=organization_name,
    )


def build_probe_context(
    spec: TocSpec,
    first_language: Language,
    *,
    options: RenderOptions | None = None,
    organization_name: str | None = None,
) -> TocContext:
    """Context used to learn the TOC page count before body page counts exist."""
    entries = tuple(
        TocEntry(
            language=language,
            page_range=PageRange(
                section=language.value,
                start_page=PROBE_START_PAGE,
                page_count=PROBE_PAGE_COUNT,
            ),
        )
        for language in (first_language, first_language.other)
    )
    return TocContext(
        spec=spec,
        entries=entries,
        total_pages=PROBE_START_PAGE + PROBE_PAGE_COUNT - 1,
        options=options or RenderOptions(),
        organization_name=organization_name,
        probe=True,
    )


def page_size_points(options: RenderOptions) -> tuple[float, float]:
    width, height = PAGE_SIZES_PT[options.format]
    if options.landscape:
        return height, width
    return width, height
