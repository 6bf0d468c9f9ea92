from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from pypdf.generic import (
    ArrayObject,
    DictionaryObject,
    FloatObject,
    NameObject,
    NullObject,
    NumberObject,
)

from bilingualpdf.errors import AnnotationWarning
from bilingualpdf.pdf.assembler import AssembledDocument
from bilingualpdf.types import Language

if TYPE_CHECKING:
    from bilingualpdf.toc.base import TocEntryAnchor


logger = logging.getLogger(__name__)

SECTION_TITLES = {
    'toc': 'Table of Contents / 目次',
    Language.en.value: 'English Version / 英語版',
    Language.ja.value: 'Japanese Version / 日本語版',
}


@dataclass(frozen=True)
class LinkRect:
    """Rectangle in PDF user space: origin at the bottom-left, units in points."""

    x: float
    y: float
    width: float
    height: float

    def as_pdf_rect(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True)
class LinkAnnotation:
    source_page_index: int
    rect: LinkRect
    target_page_index: int
    target_position: float | None = None


@dataclass
class LinkReport:
    links: list[LinkAnnotation] = field(default_factory=list)
    warnings: list[AnnotationWarning] = field(default_factory=list)

    def warning_messages(self) -> list[str]:
        return [warning.message for warning in self.warnings]


def build_link(assembled: AssembledDocument, anchor: 'TocEntryAnchor') -> LinkAnnotation:
    ranges = assembled.ranges
    if not 0 <= anchor.toc_page_index < ranges.toc.page_count:
        raise AnnotationWarning(
            f'{anchor.language.value} link source page {anchor.toc_page_index} is not a TOC page'
        )
    if anchor.rect.width <= 0 or anchor.rect.height <= 0:
        raise AnnotationWarning(f'{anchor.language.value} link rectangle is empty')

    source_index = ranges.toc.start_index + anchor.toc_page_index
    source_page = assembled.page(source_index)
    box = source_page.mediabox
    x1, y1, x2, y2 = anchor.rect.as_pdf_rect()
    if x2 <= float(box.left) or x1 >= float(box.right) or y2 <= float(box.bottom) or y1 >= float(box.top):
        raise AnnotationWarning(f'{anchor.language.value} link rectangle lies outside the TOC page')

    target_index = ranges.for_language(anchor.language).start_index
    if not 0 <= target_index < assembled.page_count:
        raise AnnotationWarning(
            f'{anchor.language.value} link target {target_index} is outside the combined document'
        )
    target_top = float(assembled.page(target_index).mediabox.top)

    return LinkAnnotation(
        source_page_index=source_index,
        rect=anchor.rect,
        target_page_index=target_index,
        target_position=target_top,
    )


def _annotation_object(assembled: AssembledDocument, link: LinkAnnotation) -> DictionaryObject:
    target_ref = assembled.handle(link.target_page_index)
    top = NullObject() if link.target_position is None else FloatObject(link.target_position)
    destination = ArrayObject([target_ref, NameObject('/XYZ'), NullObject(), top, NullObject()])
    action = DictionaryObject(
        {
            NameObject('/S'): NameObject('/GoTo'),
            NameObject('/D'): destination,
        }
    )
    return DictionaryObject(
        {
            NameObject('/Type'): NameObject('/Annot'),
            NameObject('/Subtype'): NameObject('/Link'),
            NameObject('/Rect'): ArrayObject([FloatObject(value) for value in link.rect.as_pdf_rect()]),
            NameObject('/Border'): ArrayObject([NumberObject(0), NumberObject(0), NumberObject(0)]),
            NameObject('/A'): action,
        }
    )


def attach_links(assembled: AssembledDocument, anchors: Iterable['TocEntryAnchor']) -> LinkReport:
    """Add one clickable region per TOC entry.

    A failing entry is logged and skipped; the document still carries its
    textual page numbers.
    """
    report = LinkReport()
    for anchor in anchors:
        try:
            link = build_link(assembled, anchor)
            assembled.writer.add_annotation(
                page_number=assembled.page(link.source_page_index),
                annotation=_annotation_object(assembled, link),
            )
        except AnnotationWarning as warning:
            logger.warning('Skipped TOC link: %s', warning.message)
            report.warnings.append(warning)
            continue
        except Exception as exc:
            warning = AnnotationWarning(
                f'{anchor.language.value} link construction failed: {type(exc).__name__}: {exc}'
            )
            logger.warning('Skipped TOC link: %s', warning.message)
            report.warnings.append(warning)
            continue
        report.links.append(link)

    logger.info('Attached %s TOC links (%s skipped)', len(report.links), len(report.warnings))
    return report


def add_section_outline(assembled: AssembledDocument) -> list[AnnotationWarning]:
    """Bookmark the first page of every section."""
    warnings: list[AnnotationWarning] = []
    for section in assembled.ranges.ordered():
        title = SECTION_TITLES.get(section.section, section.section)
        try:
            assembled.writer.add_outline_item(title, assembled.page(section.start_index))
        except Exception as exc:
            warning = AnnotationWarning(f'outline item for {section.section} failed: {type(exc).__name__}')
            logger.warning('Skipped outline item: %s', warning.message)
            warnings.append(warning)
    return warnings
