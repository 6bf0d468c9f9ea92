from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

from pypdf import PdfWriter

from bilingualpdf.errors import AssemblyError
from bilingualpdf.pdf.assembler import AssembledDocument
from bilingualpdf.types import Language, PageInfo


logger = logging.getLogger(__name__)


@dataclass
class BilingualPdfResult:
    combined: bytes
    first_language_doc: bytes
    second_language_doc: bytes
    page_info: PageInfo
    warnings: list[str] = field(default_factory=list)

    def document_for(self, language: Language) -> bytes:
        if language is self.page_info.first_language:
            return self.first_language_doc
        return self.second_language_doc

    def to_response_payload(self) -> dict[str, Any]:
        return {
            'combined': _b64(self.combined),
            'firstLanguageDoc': _b64(self.first_language_doc),
            'secondLanguageDoc': _b64(self.second_language_doc),
            'pageInfo': self.page_info.model_dump(mode='json', by_alias=True),
        }


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def write_document(writer: PdfWriter) -> bytes:
    output = BytesIO()
    try:
        writer.write(output)
    except Exception as exc:
        raise AssemblyError(f'failed to serialize combined document: {type(exc).__name__}: {exc}') from exc
    return output.getvalue()


def build_page_info(assembled: AssembledDocument) -> PageInfo:
    ranges = assembled.ranges
    en_range = ranges.for_language(Language.en)
    ja_range = ranges.for_language(Language.ja)
    return PageInfo(
        toc_pages=ranges.toc.page_count,
        first_pages=ranges.first.page_count,
        second_pages=ranges.second.page_count,
        total_pages=ranges.total_pages,
        english_pages=en_range.page_count,
        japanese_pages=ja_range.page_count,
        first_language=ranges.first_language,
    )


def serialize_result(
    assembled: AssembledDocument,
    *,
    english: bytes,
    japanese: bytes,
    warnings: list[str] | None = None,
) -> BilingualPdfResult:
    """Write the combined document; the per-language documents pass through untouched."""
    combined = write_document(assembled.writer)
    first_language = assembled.ranges.first_language
    first_doc, second_doc = (english, japanese) if first_language is Language.en else (japanese, english)

    result = BilingualPdfResult(
        combined=combined,
        first_language_doc=first_doc,
        second_language_doc=second_doc,
        page_info=build_page_info(assembled),
        warnings=list(warnings or []),
    )
    logger.info(
        'Serialized combined document: %s bytes, %s pages',
        len(combined),
        result.page_info.total_pages,
    )
    return result
