"""Error taxonomy for bilingual document generation.

Every error carries a machine-readable ``kind`` and the HTTP status the
server maps it to. Messages never contain caller-supplied HTML.
"""

from __future__ import annotations


class BilingualPdfError(Exception):
    kind = 'generation_failed'
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {'kind': self.kind, 'message': self.message}


class ValidationError(BilingualPdfError):
    """Missing or malformed input; rejected before any remote call."""

    kind = 'validation_error'
    status_code = 400


class PayloadTooLargeError(ValidationError):
    kind = 'payload_too_large'
    status_code = 413


class RenderError(BilingualPdfError):
    """The rendering engine failed, timed out or returned nothing."""

    kind = 'render_failed'


class MalformedDocumentError(BilingualPdfError):
    """Rendered bytes do not parse as a PDF document."""

    kind = 'malformed_document'


class AssemblyError(BilingualPdfError):
    """An internal invariant was violated while building the combined document."""

    kind = 'assembly_failed'


class EmptySectionError(AssemblyError):
    kind = 'empty_section'


class AnnotationWarning(BilingualPdfError):
    """A single navigation link could not be built. Never fatal."""

    kind = 'annotation_skipped'
