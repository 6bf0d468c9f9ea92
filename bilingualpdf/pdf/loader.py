from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

from pypdf import PageObject, PdfReader

from bilingualpdf.errors import MalformedDocumentError


logger = logging.getLogger(__name__)


@dataclass
class LoadedDocument:
    label: str
    data: bytes
    reader: PdfReader

    @property
    def page_count(self) -> int:
        return len(self.reader.pages)

    def page(self, index: int) -> PageObject:
        return self.reader.pages[index]


def load_document(data: bytes, *, label: str) -> LoadedDocument:
    """Parse rendered bytes into a page-addressable document."""
    if not data:
        raise MalformedDocumentError(f'{label}: document is empty')
    if b'%PDF-' not in data[:1024]:
        raise MalformedDocumentError(f'{label}: missing PDF header')

    try:
        reader = PdfReader(BytesIO(data))
        if reader.is_encrypted:
            raise MalformedDocumentError(f'{label}: document is encrypted')
        page_count = len(reader.pages)
    except MalformedDocumentError:
        raise
    except Exception as exc:
        raise MalformedDocumentError(f'{label}: unable to parse document ({type(exc).__name__})') from exc

    logger.info('Loaded %s: %s pages, %s bytes', label, page_count, len(data))
    return LoadedDocument(label=label, data=data, reader=reader)
