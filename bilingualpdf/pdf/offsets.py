from __future__ import annotations

from dataclasses import dataclass

from bilingualpdf.errors import EmptySectionError
from bilingualpdf.types import Language


TOC_SECTION = 'toc'


@dataclass(frozen=True)
class PageRange:
    """A contiguous run of pages; ``start_page`` is 1-based."""

    section: str
    start_page: int
    page_count: int

    @property
    def end_page(self) -> int:
        return self.start_page + self.page_count - 1

    @property
    def start_index(self) -> int:
        return self.start_page - 1

    def indices(self) -> range:
        return range(self.start_index, self.start_index + self.page_count)

    def label(self) -> str:
        return format_page_range(self.start_page, self.page_count)


@dataclass(frozen=True)
class SectionRanges:
    toc: PageRange
    first: PageRange
    second: PageRange
    first_language: Language

    @property
    def total_pages(self) -> int:
        return self.toc.page_count + self.first.page_count + self.second.page_count

    def ordered(self) -> tuple[PageRange, PageRange, PageRange]:
        return (self.toc, self.first, self.second)

    def for_language(self, language: Language) -> PageRange:
        return self.first if language is self.first_language else self.second


def format_page_range(start_page: int, page_count: int) -> str:
    if page_count > 1:
        return f'pp. {start_page}-{start_page + page_count - 1}'
    return f'p. {start_page}'


def compute_ranges(
    toc_pages: int,
    pages_en: int,
    pages_ja: int,
    first_language: Language,
) -> SectionRanges:
    counts = {TOC_SECTION: toc_pages, Language.en.value: pages_en, Language.ja.value: pages_ja}
    for section, count in counts.items():
        if count < 1:
            raise EmptySectionError(f'{section} section has {count} pages; at least 1 is required')

    second_language = first_language.other
    pages_first = counts[first_language.value]
    pages_second = counts[second_language.value]

    toc_range = PageRange(section=TOC_SECTION, start_page=1, page_count=toc_pages)
    first_start = toc_pages + 1
    first_range = PageRange(section=first_language.value, start_page=first_start, page_count=pages_first)
    second_start = first_start + pages_first
    second_range = PageRange(section=second_language.value, start_page=second_start, page_count=pages_second)

    return SectionRanges(
        toc=toc_range,
        first=first_range,
        second=second_range,
        first_language=first_language,
    )
