from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

import httpx
import pytest


# Ensure the project root is importable when running `pytest` via its entrypoint,
# where `sys.path[0]` may not be the repo root.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from reportlab.lib.pagesizes import A4  # noqa: E402
from reportlab.pdfgen import canvas  # noqa: E402

from bilingualpdf.adapters.render_client import RenderClient, RenderConfig  # noqa: E402
from bilingualpdf.config import Settings  # noqa: E402


def make_pdf(texts: list[str]) -> bytes:
    """One A4 page per text, each page carrying its text as content."""
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    for text in texts:
        pdf.setFont('Helvetica', 14)
        pdf.drawString(72, 760, text)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def make_pages(prefix: str, count: int) -> bytes:
    return make_pdf([f'{prefix} page {index + 1}' for index in range(count)])


@dataclass
class FakeRenderer:
    """Stands in for the remote rendering engine.

    ``documents`` maps an HTML marker to the PDF returned for any HTML that
    contains it; the TOC page is recognised by its body class.
    """

    documents: dict[str, bytes] = field(default_factory=dict)
    toc_pages: int = 1
    failures: dict[str, int] = field(default_factory=dict)
    calls: list[dict] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append({'url': str(request.url), 'payload': payload})
        html = payload['html']
        if 'class="toc-page"' in html:
            return httpx.Response(200, content=make_pages('TOC', self.toc_pages))
        for marker, status in self.failures.items():
            if marker in html:
                return httpx.Response(status, text='engine exploded')
        for marker, document in self.documents.items():
            if marker in html:
                return httpx.Response(200, content=document)
        return httpx.Response(200, content=make_pages('DOC', 1))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def htmls(self) -> list[str]:
        return [call['payload']['html'] for call in self.calls]


def make_client(transport: httpx.AsyncBaseTransport, *, timeout_seconds: float = 5.0) -> RenderClient:
    return RenderClient(
        RenderConfig(
            base_url='https://render.test/accounts',
            account_id='acct-123',
            api_token='token-abc',
            pdf_endpoint='/{account_id}/browser-rendering/pdf',
            screenshot_endpoint='/{account_id}/browser-rendering/screenshot',
            timeout_seconds=timeout_seconds,
        ),
        transport=transport,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        render_account_id='acct-123',
        render_api_token='token-abc',
        render_base_url='https://render.test/accounts',
        api_key='secret-key',
        allowed_origins='http://localhost,https://app.example.com,https://*.example.org',
        environment='test',
        max_html_chars=1000,
        max_request_bytes=None,
        toc_renderer='html',
        toc_font_css_url='',
    )


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer(
        documents={
            'EN-BODY': make_pages('EN', 3),
            'JA-BODY': make_pages('JA', 2),
        }
    )


@pytest.fixture
def pages_pdf():
    return make_pages


@pytest.fixture
def client_for():
    return make_client
