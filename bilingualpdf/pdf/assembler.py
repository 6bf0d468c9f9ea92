from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from pypdf import PageObject, PdfWriter
from pypdf.generic import IndirectObject

from bilingualpdf.errors import AssemblyError
from bilingualpdf.pdf.loader import LoadedDocument
from bilingualpdf.pdf.offsets import SectionRanges
from bilingualpdf.types import Language


logger = logging.getLogger(__name__)


@dataclass
class AssembledDocument:
    """The combined document plus its page-handle table.

    ``page_handles[i]`` is the writer-side indirect reference of logical
    page ``i`` (0-based). Anything that needs to point at a page of the
    combined document goes through this table, never through the source
    readers.
    """

    writer: PdfWriter
    ranges: SectionRanges
    page_handles: list[IndirectObject] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.page_handles)

    def handle(self, page_index: int) -> IndirectObject:
        if not 0 <= page_index < len(self.page_handles):
            raise IndexError(f'page index {page_index} outside 0..{len(self.page_handles) - 1}')
        return self.page_handles[page_index]

    def page(self, page_index: int) -> PageObject:
        page = self.handle(page_index).get_object()
        if not isinstance(page, PageObject):
            raise AssemblyError(f'page handle {page_index} does not resolve to a page')
        return page


def _copy_section(
    assembled: AssembledDocument,
    document: LoadedDocument,
    *,
    expected_start: int,
    expected_count: int,
) -> None:
    if document.page_count != expected_count:
        raise AssemblyError(
            f'{document.label} has {document.page_count} pages but its range expects {expected_count}'
        )
    if assembled.page_count != expected_start:
        raise AssemblyError(
            f'{document.label} would start at index {assembled.page_count}, expected {expected_start}'
        )

    for index in range(document.page_count):
        try:
            # add_page clones the page and every object it references
            # (fonts, images, content streams) into the writer.
            copied = assembled.writer.add_page(document.page(index))
            _ = copied.mediabox
        except Exception as exc:
            raise AssemblyError(
                f'failed to copy {document.label} page {index + 1}: {type(exc).__name__}: {exc}'
            ) from exc

        handle = copied.indirect_reference
        if handle is None:
            raise AssemblyError(f'copied {document.label} page {index + 1} has no object reference')
        assembled.page_handles.append(handle)


def assemble_documents(
    toc: LoadedDocument,
    bodies: Mapping[Language, LoadedDocument],
    ranges: SectionRanges,
    *,
    title: str | None = None,
) -> AssembledDocument:
    """Copy TOC, first-language and second-language pages into a new document."""
    first_language = ranges.first_language
    ordered = (
        (toc, ranges.toc),
        (bodies[first_language], ranges.first),
        (bodies[first_language.other], ranges.second),
    )

    assembled = AssembledDocument(writer=PdfWriter(), ranges=ranges)
    for document, section in ordered:
        _copy_section(
            assembled,
            document,
            expected_start=section.start_index,
            expected_count=section.page_count,
        )

    if assembled.page_count != ranges.total_pages:
        raise AssemblyError(
            f'combined document has {assembled.page_count} pages, expected {ranges.total_pages}'
        )

    if title:
        assembled.writer.add_metadata({'/Title': title})

    logger.info(
        'Assembled combined document: %s pages (toc=%s, %s=%s, %s=%s)',
        assembled.page_count,
        ranges.toc.page_count,
        ranges.first.section,
        ranges.first.page_count,
        ranges.second.section,
        ranges.second.page_count,
    )
    return assembled
