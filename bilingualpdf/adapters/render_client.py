from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from bilingualpdf.errors import RenderError
from bilingualpdf.types import PageFormat, RenderOptions, ScreenshotOptions


logger = logging.getLogger(__name__)

# A4 at 96 DPI: 210mm x 297mm ~= 794px x 1123px
PORTRAIT_VIEWPORT = {'width': 794, 'height': 1123}
LANDSCAPE_VIEWPORT = {'width': 1123, 'height': 794}

PAGE_DIMENSIONS = {
    PageFormat.a4: {'width': '210mm', 'height': '297mm'},
    PageFormat.letter: {'width': '8.5in', 'height': '11in'},
}

_ERROR_BODY_LOG_LIMIT = 500


@dataclass
class RenderConfig:
    base_url: str
    account_id: str | None
    api_token: str | None
    pdf_endpoint: str
    screenshot_endpoint: str
    timeout_seconds: float
    wait_until: str = 'networkidle2'


class RenderClient:
    """Client for the remote HTML-to-PDF rendering engine.

    Every call is independent: no retries, no caching, no shared state
    between calls, so several renders can run concurrently on one instance.
    """

    def __init__(self, cfg: RenderConfig, *, transport: httpx.AsyncBaseTransport | None = None):
        self.cfg = cfg
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.cfg.account_id and self.cfg.api_token and self.cfg.base_url)

    async def render_pdf(
        self,
        html: str,
        options: RenderOptions | None = None,
        *,
        label: str = 'document',
    ) -> bytes:
        payload = self.build_pdf_payload(html, options or RenderOptions())
        url = self._build_url(self.cfg.pdf_endpoint)
        logger.info('Rendering %s PDF: %s chars HTML', label, len(html))
        content = await self._post(url, payload, label=label)
        logger.info('Rendered %s PDF: %s bytes', label, len(content))
        return content

    async def render_screenshot(
        self,
        html: str,
        options: ScreenshotOptions | None = None,
        *,
        label: str = 'screenshot',
    ) -> bytes:
        payload = self.build_screenshot_payload(html, options or ScreenshotOptions())
        url = self._build_url(self.cfg.screenshot_endpoint)
        logger.info('Rendering %s: %s chars HTML', label, len(html))
        return await self._post(url, payload, label=label)

    def build_pdf_payload(self, html: str, options: RenderOptions) -> dict[str, Any]:
        viewport = LANDSCAPE_VIEWPORT if options.landscape else PORTRAIT_VIEWPORT
        dimensions = PAGE_DIMENSIONS[options.format]
        width, height = dimensions['width'], dimensions['height']
        if options.landscape:
            width, height = height, width

        return {
            'html': html,
            'viewport': dict(viewport),
            'gotoOptions': {'waitUntil': self.cfg.wait_until},
            'pdfOptions': {
                'landscape': options.landscape,
                'printBackground': options.print_background,
                'displayHeaderFooter': options.display_header_footer,
                'headerTemplate': options.header_template,
                'footerTemplate': options.footer_template,
                'margin': options.margin.model_dump(),
                'scale': options.scale,
                'preferCSSPageSize': False,
                'width': width,
                'height': height,
            },
        }

    def build_screenshot_payload(self, html: str, options: ScreenshotOptions) -> dict[str, Any]:
        screenshot_options: dict[str, Any] = {
            'type': options.type,
            'fullPage': options.full_page,
            'omitBackground': False,
        }
        # quality only applies to lossy formats
        if options.type in {'jpeg', 'webp'} and options.quality is not None:
            screenshot_options['quality'] = options.quality

        return {
            'html': html,
            'viewport': {
                'width': options.width,
                'height': options.height,
                'deviceScaleFactor': options.scale,
            },
            'screenshotOptions': screenshot_options,
        }

    async def _post(self, url: str, payload: dict[str, Any], *, label: str) -> bytes:
        if not self.configured:
            raise RenderError('Rendering engine is not configured')

        headers = {
            'Authorization': f'Bearer {self.cfg.api_token}',
            'Content-Type': 'application/json',
        }
        timeout = max(1.0, float(self.cfg.timeout_seconds))

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise RenderError(f'{label} render timed out after {timeout:g}s') from exc
        except httpx.HTTPError as exc:
            raise RenderError(f'{label} render request failed: {type(exc).__name__}') from exc

        if response.status_code != 200:
            logger.error(
                'Browser Rendering error for %s: %s %s',
                label,
                response.status_code,
                response.text[:_ERROR_BODY_LOG_LIMIT],
            )
            raise RenderError(f'{label} render failed with status {response.status_code}')

        content = response.content
        if not content:
            raise RenderError(f'{label} render returned an empty body')
        return content

    def _build_url(self, endpoint: str) -> str:
        path = endpoint.format(account_id=self.cfg.account_id or '')
        return f"{self.cfg.base_url.rstrip('/')}/{path.lstrip('/')}"
