from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Mapping

from bilingualpdf.adapters.render_client import RenderClient, RenderConfig
from bilingualpdf.config import Settings, get_settings
from bilingualpdf.errors import (
    AssemblyError,
    BilingualPdfError,
    PayloadTooLargeError,
    RenderError,
    ValidationError,
)
from bilingualpdf.pdf.assembler import assemble_documents
from bilingualpdf.pdf.linker import add_section_outline, attach_links
from bilingualpdf.pdf.loader import LoadedDocument, load_document
from bilingualpdf.pdf.offsets import compute_ranges
from bilingualpdf.pdf.serializer import BilingualPdfResult, serialize_result
from bilingualpdf.toc.base import TocRenderer, TocRendering, build_probe_context, build_toc_context
from bilingualpdf.toc.drawn_toc import DrawnTocRenderer
from bilingualpdf.toc.html_toc import HtmlTocRenderer
from bilingualpdf.types import (
    BilingualPdfRequest,
    GenerationStage,
    Language,
    PdfRequest,
    ScreenshotRequest,
)


logger = logging.getLogger(__name__)


def build_render_client(settings: Settings | None = None, **kwargs: Any) -> RenderClient:
    settings = settings or get_settings()
    return RenderClient(
        RenderConfig(
            base_url=settings.render_base_url,
            account_id=settings.render_account_id,
            api_token=settings.render_api_token,
            pdf_endpoint=settings.render_pdf_endpoint,
            screenshot_endpoint=settings.render_screenshot_endpoint,
            timeout_seconds=settings.render_timeout_seconds,
            wait_until=settings.render_wait_until,
        ),
        **kwargs,
    )


def build_toc_renderer(
    name: str | None,
    client: RenderClient,
    settings: Settings | None = None,
) -> TocRenderer:
    settings = settings or get_settings()
    token = str(name or settings.toc_renderer or 'html').strip().lower()
    if token == 'html':
        return HtmlTocRenderer(client, font_css_url=settings.toc_font_css_url)
    if token == 'drawn':
        return DrawnTocRenderer()
    raise ValueError(f'unknown TOC renderer: {name!r}')


def validate_html(html: str, *, field: str, max_chars: int) -> None:
    if not html or not html.strip():
        raise ValidationError(f'Missing required field: {field}')
    if len(html) > max_chars:
        raise PayloadTooLargeError(f'{field} too large: {len(html)} chars, max {max_chars}')


def validate_bilingual_request(request: BilingualPdfRequest, *, max_chars: int) -> None:
    validate_html(request.html_en, field='htmlEn', max_chars=max_chars)
    validate_html(request.html_ja, field='htmlJa', max_chars=max_chars)
    if not request.toc.title.strip() or not request.toc.date.strip():
        raise ValidationError('Missing required TOC fields: title and date')


async def render_concurrently(
    jobs: Mapping[str, Awaitable[Any]],
    *,
    timeout_seconds: float | None = None,
) -> dict[str, Any]:
    """Run every job concurrently and wait for all of them.

    The first failure cancels the remaining jobs and is raised as a
    ``RenderError``; results of jobs that already finished are dropped.
    """
    tasks: dict[str, asyncio.Task[Any]] = {}
    for name, job in jobs.items():
        awaitable = job if timeout_seconds is None else asyncio.wait_for(job, timeout=timeout_seconds)
        tasks[name] = asyncio.ensure_future(awaitable)

    try:
        await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
        for name, task in tasks.items():
            if not task.done() or task.cancelled():
                continue
            exc = task.exception()
            if exc is None:
                continue
            if isinstance(exc, BilingualPdfError):
                raise exc
            if isinstance(exc, asyncio.TimeoutError):
                raise RenderError(f'{name} render timed out') from exc
            raise RenderError(f'{name} render failed: {type(exc).__name__}') from exc
        return {name: task.result() for name, task in tasks.items()}
    finally:
        for task in tasks.values():
            if task.done() and not task.cancelled():
                task.exception()
        pending = [task for task in tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class BilingualPipeline:
    """Render, load, assemble, link and serialize one bilingual request."""

    def __init__(
        self,
        client: RenderClient,
        toc_renderer: TocRenderer,
        *,
        max_html_chars: int = 5_000_000,
        render_timeout_seconds: float | None = None,
        organization_name: str | None = None,
    ):
        self.client = client
        self.toc_renderer = toc_renderer
        self.max_html_chars = max_html_chars
        self.render_timeout_seconds = render_timeout_seconds
        self.organization_name = organization_name
        self.stage = GenerationStage.requested

    def _advance(self, stage: GenerationStage) -> None:
        logger.info('Bilingual pipeline: %s -> %s', self.stage.value, stage.value)
        self.stage = stage

    async def run(self, request: BilingualPdfRequest) -> BilingualPdfResult:
        try:
            result = await self._run(request)
        except BilingualPdfError as exc:
            self.stage = GenerationStage.failed
            if isinstance(exc, AssemblyError):
                logger.exception('Bilingual assembly failed: %s', exc.message)
            else:
                logger.error('Bilingual generation failed (%s): %s', exc.kind, exc.message)
            raise
        except asyncio.CancelledError:
            logger.warning('Bilingual generation cancelled during %s', self.stage.value)
            self.stage = GenerationStage.failed
            raise
        except Exception as exc:
            self.stage = GenerationStage.failed
            logger.exception('Unexpected error in bilingual pipeline')
            raise AssemblyError(f'unexpected {type(exc).__name__} during generation') from exc
        self._advance(GenerationStage.returned)
        return result

    async def _run(self, request: BilingualPdfRequest) -> BilingualPdfResult:
        validate_bilingual_request(request, max_chars=self.max_html_chars)
        first_language = request.first_language

        self._advance(GenerationStage.rendering)
        logger.info('Rendering bodies with %s TOC strategy', self.toc_renderer.name)
        probe_context = build_probe_context(
            request.toc,
            first_language,
            options=request.options,
            organization_name=self.organization_name,
        )
        rendered = await render_concurrently(
            {
                Language.en.value: self.client.render_pdf(request.html_en, request.options, label='en'),
                Language.ja.value: self.client.render_pdf(request.html_ja, request.options, label='ja'),
                'toc': self.toc_renderer.render(probe_context),
            },
            timeout_seconds=self.render_timeout_seconds,
        )

        bodies: dict[Language, LoadedDocument] = {
            Language.en: load_document(rendered[Language.en.value], label='en'),
            Language.ja: load_document(rendered[Language.ja.value], label='ja'),
        }
        probe: TocRendering = rendered['toc']
        probe_doc = load_document(probe.pdf_bytes, label='toc-probe')
        self._advance(GenerationStage.loaded)

        ranges = compute_ranges(
            probe_doc.page_count,
            bodies[Language.en].page_count,
            bodies[Language.ja].page_count,
            first_language,
        )
        self._advance(GenerationStage.offsets_computed)

        toc_context = build_toc_context(
            request.toc,
            ranges,
            options=request.options,
            organization_name=self.organization_name,
        )
        final = await render_concurrently(
            {'toc': self.toc_renderer.render(toc_context)},
            timeout_seconds=self.render_timeout_seconds,
        )
        toc_rendering: TocRendering = final['toc']
        toc_doc = load_document(toc_rendering.pdf_bytes, label='toc')
        if toc_doc.page_count != ranges.toc.page_count:
            raise AssemblyError(
                f'TOC has {toc_doc.page_count} pages after numbering, probe had {ranges.toc.page_count}'
            )

        assembled = assemble_documents(toc_doc, bodies, ranges, title=request.toc.title)
        self._advance(GenerationStage.assembled)

        report = attach_links(assembled, toc_rendering.anchors)
        outline_warnings = add_section_outline(assembled)
        self._advance(GenerationStage.linked)

        result = serialize_result(
            assembled,
            english=bodies[Language.en].data,
            japanese=bodies[Language.ja].data,
            warnings=report.warning_messages() + [warning.message for warning in outline_warnings],
        )
        self._advance(GenerationStage.serialized)
        return result


def build_pipeline(
    settings: Settings | None = None,
    *,
    client: RenderClient | None = None,
    toc_renderer: TocRenderer | str | None = None,
) -> BilingualPipeline:
    settings = settings or get_settings()
    client = client or build_render_client(settings)
    if not isinstance(toc_renderer, TocRenderer):
        toc_renderer = build_toc_renderer(toc_renderer, client, settings)
    return BilingualPipeline(
        client,
        toc_renderer,
        max_html_chars=settings.max_html_chars,
        render_timeout_seconds=settings.render_timeout_seconds,
        organization_name=settings.organization_name,
    )


async def generate_bilingual_pdf(
    request: BilingualPdfRequest,
    *,
    settings: Settings | None = None,
    client: RenderClient | None = None,
    toc_renderer: TocRenderer | str | None = None,
) -> BilingualPdfResult:
    pipeline = build_pipeline(settings, client=client, toc_renderer=toc_renderer)
    return await pipeline.run(request)


async def generate_pdf(
    request: PdfRequest,
    *,
    settings: Settings | None = None,
    client: RenderClient | None = None,
) -> bytes:
    settings = settings or get_settings()
    validate_html(request.html, field='html', max_chars=settings.max_html_chars)
    client = client or build_render_client(settings)
    pdf_bytes = await client.render_pdf(request.html, request.options)
    load_document(pdf_bytes, label='document')
    return pdf_bytes


async def generate_screenshot(
    request: ScreenshotRequest,
    *,
    settings: Settings | None = None,
    client: RenderClient | None = None,
) -> bytes:
    settings = settings or get_settings()
    validate_html(request.html, field='html', max_chars=settings.max_html_chars)
    client = client or build_render_client(settings)
    return await client.render_screenshot(request.html, request.options)
