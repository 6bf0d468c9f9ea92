from __future__ import annotations

import asyncio
from io import BytesIO

import httpx
import pytest
from pypdf import PdfReader, PdfWriter

from bilingualpdf.errors import (
    AssemblyError,
    EmptySectionError,
    MalformedDocumentError,
    PayloadTooLargeError,
    RenderError,
    ValidationError,
)
from bilingualpdf.runner import (
    BilingualPipeline,
    build_pipeline,
    build_toc_renderer,
    generate_pdf,
    render_concurrently,
)
from bilingualpdf.toc.base import TocContext, TocRenderer, TocRendering
from bilingualpdf.toc.drawn_toc import DrawnTocRenderer
from bilingualpdf.toc.html_toc import HtmlTocRenderer
from bilingualpdf.types import BilingualPdfRequest, GenerationStage, Language, PdfRequest


def _request(**overrides) -> BilingualPdfRequest:
    payload = {
        'htmlEn': '<html><body>EN-BODY</body></html>',
        'htmlJa': '<html><body>JA-BODY</body></html>',
        'toc': {'title': 'Annual Review', 'date': 'March 2025', 'titleSecondary': '年次レビュー'},
        'firstLanguage': 'en',
    }
    payload.update(overrides)
    return BilingualPdfRequest.model_validate(payload)


def _page_texts(data: bytes) -> list[str]:
    return [page.extract_text().strip() for page in PdfReader(BytesIO(data)).pages]


def _toc_htmls(fake) -> list[str]:
    return [html for html in fake.htmls() if 'class="toc-page"' in html]


@pytest.mark.asyncio
async def test_english_first_bilingual_document(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request())

    assert pipeline.stage is GenerationStage.returned
    info = result.page_info
    assert (info.toc_pages, info.first_pages, info.second_pages, info.total_pages) == (1, 3, 2, 6)
    assert info.first_language is Language.en
    assert _page_texts(result.combined)[1:] == ['EN page 1', 'EN page 2', 'EN page 3', 'JA page 1', 'JA page 2']

    probe_html, final_html = _toc_htmls(fake_renderer)
    assert 'pp. 100-999' in probe_html
    assert 'pp. 2-4' in final_html
    assert 'pp. 5-6' in final_html
    assert len(fake_renderer.calls) == 4


@pytest.mark.asyncio
async def test_japanese_first_bilingual_document(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request(firstLanguage='ja'))

    info = result.page_info
    assert (info.first_pages, info.second_pages, info.english_pages, info.japanese_pages) == (2, 3, 3, 2)
    assert _page_texts(result.combined)[1:3] == ['JA page 1', 'JA page 2']
    final_html = _toc_htmls(fake_renderer)[-1]
    assert final_html.index('Japanese Version') < final_html.index('English Version')
    assert 'pp. 2-3' in final_html
    assert 'pp. 4-6' in final_html


@pytest.mark.asyncio
async def test_combined_document_links_toc_entries(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request())

    reader = PdfReader(BytesIO(result.combined))
    page_ids = {page.indirect_reference.idnum: index for index, page in enumerate(reader.pages)}
    targets = [page_ids[annot.get_object()['/A']['/D'][0].idnum] for annot in reader.pages[0]['/Annots']]
    assert targets == [1, 4]
    assert result.warnings == []
    assert len(reader.outline) == 3


@pytest.mark.asyncio
async def test_standalone_documents_are_returned_unchanged(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request(firstLanguage='ja'))

    assert result.document_for(Language.en) == fake_renderer.documents['EN-BODY']
    assert result.document_for(Language.ja) == fake_renderer.documents['JA-BODY']
    assert result.first_language_doc == fake_renderer.documents['JA-BODY']


@pytest.mark.asyncio
async def test_ordered_html_fields_are_accepted(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))
    request = BilingualPdfRequest.model_validate(
        {
            'htmlFirst': '<p>JA-BODY</p>',
            'htmlSecond': '<p>EN-BODY</p>',
            'toc': {'title': 'Annual Review', 'date': 'March 2025'},
            'firstLanguage': 'ja',
        }
    )

    result = await pipeline.run(request)

    assert (result.page_info.english_pages, result.page_info.japanese_pages) == (3, 2)


@pytest.mark.asyncio
async def test_oversized_input_is_rejected_before_rendering(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    with pytest.raises(PayloadTooLargeError) as excinfo:
        await pipeline.run(_request(htmlJa='JA-BODY' + 'x' * 2000))

    assert excinfo.value.status_code == 413
    assert fake_renderer.calls == []
    assert pipeline.stage is GenerationStage.failed


@pytest.mark.asyncio
async def test_blank_input_is_rejected_before_rendering(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    with pytest.raises(ValidationError, match='htmlEn'):
        await pipeline.run(_request(htmlEn='   '))

    assert fake_renderer.calls == []


@pytest.mark.asyncio
async def test_japanese_render_timeout_fails_whole_request(settings, fake_renderer, client_for):
    def handler(request: httpx.Request) -> httpx.Response:
        if b'JA-BODY' in request.content:
            raise httpx.ReadTimeout('engine too slow', request=request)
        return fake_renderer.handler(request)

    pipeline = build_pipeline(settings, client=client_for(httpx.MockTransport(handler)))

    with pytest.raises(RenderError, match='ja render timed out'):
        await pipeline.run(_request())

    assert pipeline.stage is GenerationStage.failed


@pytest.mark.asyncio
async def test_engine_error_status_fails_whole_request(settings, fake_renderer, client_for):
    fake_renderer.failures['EN-BODY'] = 500
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    with pytest.raises(RenderError) as excinfo:
        await pipeline.run(_request())

    assert 'EN-BODY' not in excinfo.value.message


@pytest.mark.asyncio
async def test_zero_page_body_is_an_assembly_error(settings, fake_renderer, client_for):
    buffer = BytesIO()
    PdfWriter().write(buffer)
    fake_renderer.documents['JA-BODY'] = buffer.getvalue()
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    with pytest.raises(EmptySectionError) as excinfo:
        await pipeline.run(_request())

    assert isinstance(excinfo.value, AssemblyError)


@pytest.mark.asyncio
async def test_malformed_body_is_rejected(settings, fake_renderer, client_for):
    fake_renderer.documents['JA-BODY'] = b'<html>error page</html>'
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    with pytest.raises(MalformedDocumentError):
        await pipeline.run(_request())


@pytest.mark.asyncio
async def test_toc_growing_after_numbering_is_an_assembly_error(settings, fake_renderer, client_for, pages_pdf):
    def handler(request: httpx.Request) -> httpx.Response:
        if b'toc-page' in request.content and b'pp. 100-999' not in request.content:
            return httpx.Response(200, content=pages_pdf('TOC', 2))
        return fake_renderer.handler(request)

    pipeline = build_pipeline(settings, client=client_for(httpx.MockTransport(handler)))

    with pytest.raises(AssemblyError, match='TOC has 2 pages'):
        await pipeline.run(_request())


@pytest.mark.asyncio
async def test_two_page_toc_shifts_body_ranges(settings, fake_renderer, client_for):
    fake_renderer.toc_pages = 2
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request())

    assert (result.page_info.toc_pages, result.page_info.total_pages) == (2, 7)
    final_html = _toc_htmls(fake_renderer)[-1]
    assert 'pp. 3-5' in final_html
    assert 'pp. 6-7' in final_html


@pytest.mark.asyncio
async def test_drawn_toc_renders_bodies_only(settings, fake_renderer, client_for):
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()), toc_renderer='drawn')

    result = await pipeline.run(_request())

    assert len(fake_renderer.calls) == 2
    assert result.page_info.total_pages == 6
    assert 'pp. 2-4' in _page_texts(result.combined)[0]
    assert len(PdfReader(BytesIO(result.combined)).pages[0]['/Annots']) == 2


@pytest.mark.asyncio
async def test_render_concurrently_cancels_remaining_jobs():
    cancelled = asyncio.Event()

    async def slow() -> bytes:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return b''

    async def broken() -> bytes:
        raise RenderError('ja render failed with status 500')

    with pytest.raises(RenderError, match='status 500'):
        await render_concurrently({'en': slow(), 'ja': broken()})

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_render_concurrently_applies_timeout():
    async def fast() -> str:
        return 'done'

    with pytest.raises(RenderError, match='ja render timed out'):
        await render_concurrently({'en': fast(), 'ja': asyncio.sleep(10)}, timeout_seconds=0.05)


@pytest.mark.asyncio
async def test_generate_pdf_returns_engine_bytes(settings, fake_renderer, client_for):
    content = await generate_pdf(
        PdfRequest(html='<p>EN-BODY</p>'),
        settings=settings,
        client=client_for(fake_renderer.transport()),
    )

    assert content == fake_renderer.documents['EN-BODY']


def test_build_toc_renderer(settings, fake_renderer, client_for):
    client = client_for(fake_renderer.transport())

    assert isinstance(build_toc_renderer(None, client, settings), HtmlTocRenderer)
    assert isinstance(build_toc_renderer('drawn', client, settings), DrawnTocRenderer)
    assert build_toc_renderer('html', client, settings).name == 'html'
    assert build_toc_renderer('drawn', client, settings).name == 'drawn'
    with pytest.raises(ValueError):
        build_toc_renderer('latex', client, settings)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ('first_language', 'expected_order'),
    [('en', ['EN'] * 3 + ['JA'] * 5), ('ja', ['JA'] * 5 + ['EN'] * 3)],
)
async def test_sections_match_standalone_documents(
    settings, fake_renderer, client_for, pages_pdf, first_language, expected_order
):
    fake_renderer.documents['JA-BODY'] = pages_pdf('JA', 5)
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))

    result = await pipeline.run(_request(firstLanguage=first_language))

    assert result.page_info.total_pages == 9
    combined = _page_texts(result.combined)
    assert [text.split()[0] for text in combined[1:]] == expected_order
    first_doc = _page_texts(result.first_language_doc)
    second_doc = _page_texts(result.second_language_doc)
    assert combined[1:] == first_doc + second_doc


class StallingTocRenderer(TocRenderer):
    """Answers the sizing pass, then hangs on the numbered TOC."""

    name = 'stalling'

    def __init__(self):
        self.drawn = DrawnTocRenderer()

    async def render(self, context: TocContext) -> TocRendering:
        if not context.probe:
            await asyncio.sleep(30)
        return await self.drawn.render(context)


@pytest.mark.asyncio
async def test_numbered_toc_render_is_bounded_by_timeout(fake_renderer, client_for):
    pipeline = BilingualPipeline(
        client_for(fake_renderer.transport()),
        StallingTocRenderer(),
        max_html_chars=1000,
        render_timeout_seconds=0.5,
    )

    with pytest.raises(RenderError, match='toc render timed out'):
        await pipeline.run(_request())

    assert pipeline.stage is GenerationStage.failed


@pytest.mark.asyncio
async def test_page_copy_failure_returns_no_document(settings, fake_renderer, client_for, monkeypatch):
    def broken_add_page(self, page, excluded_keys=()):
        raise KeyError('/Resources')

    monkeypatch.setattr(PdfWriter, 'add_page', broken_add_page)
    pipeline = build_pipeline(settings, client=client_for(fake_renderer.transport()))
    result = None

    with pytest.raises(AssemblyError, match='failed to copy toc page 1'):
        result = await pipeline.run(_request())

    assert result is None
    assert pipeline.stage is GenerationStage.failed
