"""
Bilingual PDF Server - Flask front end for the rendering and assembly pipeline
=============================================================================

Endpoints:
  - GET  /               service description
  - GET  /health         configuration check (no auth)
  - POST /pdf            render one HTML document to PDF
  - POST /pdf/bilingual  EN + JA documents merged behind a linked TOC page
  - POST /screenshot     render HTML to an image

Authentication (POST routes):
  - browser requests: Origin must be whitelisted (ALLOWED_ORIGINS)
  - server requests: X-API-Key must match PDF_API_KEY
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TypeVar

from flask import Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from bilingualpdf.adapters.render_client import RenderClient
from bilingualpdf.auth import is_request_authorized, origin_patterns
from bilingualpdf.config import Settings, get_settings
from bilingualpdf.errors import BilingualPdfError, ValidationError
from bilingualpdf.runner import (
    build_pipeline,
    build_render_client,
    generate_pdf,
    generate_screenshot,
)
from bilingualpdf.toc.base import TocRenderer
from bilingualpdf.types import BilingualPdfRequest, PdfRequest, ScreenshotRequest


logger = logging.getLogger('bilingualpdf.server')

ModelT = TypeVar('ModelT', bound=BaseModel)

PROTECTED_PATHS = frozenset({'/pdf', '/pdf/bilingual', '/screenshot'})

ENDPOINTS = {
    'POST /pdf': 'Generate PDF from HTML',
    'POST /pdf/bilingual': 'Generate bilingual PDF (EN+JA) with TOC',
    'POST /screenshot': 'Generate screenshot from HTML',
    'GET /health': 'Health check',
}

IMAGE_CONTENT_TYPES = {
    'png': 'image/png',
    'jpeg': 'image/jpeg',
    'webp': 'image/webp',
}

_EXTENSION_KEY = 'bilingualpdf'


def _parse_model(model_cls: type[ModelT], data: Any) -> ModelT:
    if not isinstance(data, dict) or not data:
        raise ValidationError('Invalid JSON request')
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        # field paths only; values may contain caller HTML
        fields = sorted({'.'.join(str(part) for part in err['loc']) or 'body' for err in exc.errors()})
        raise ValidationError(f'Missing or invalid fields: {", ".join(fields)}') from exc


def _state() -> dict[str, Any]:
    return current_app.extensions[_EXTENSION_KEY]


def create_app(
    settings: Settings | None = None,
    *,
    client: RenderClient | None = None,
    toc_renderer: TocRenderer | str | None = None,
) -> Flask:
    settings = settings or get_settings()
    client = client or build_render_client(settings)
    patterns = origin_patterns(settings.allowed_origin_list())

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = settings.request_byte_limit()
    app.extensions[_EXTENSION_KEY] = {
        'settings': settings,
        'client': client,
        'toc_renderer': toc_renderer,
    }
    CORS(
        app,
        origins=patterns,
        methods=['GET', 'POST', 'OPTIONS'],
        allow_headers=['Content-Type', 'X-API-Key'],
        max_age=86400,
    )

    @app.before_request
    def require_auth():
        if request.method == 'OPTIONS' or request.path not in PROTECTED_PATHS:
            return None
        origin = request.headers.get('Origin')
        api_key = request.headers.get('X-API-Key')
        if is_request_authorized(origin=origin, api_key=api_key, settings=settings, patterns=patterns):
            return None
        logger.warning('Auth rejected: origin=%s, has_api_key=%s', origin, bool(api_key))
        return jsonify({'kind': 'unauthorized', 'message': 'Unauthorized'}), 401

    @app.route('/', methods=['GET'])
    def index():
        return jsonify(
            {
                'service': settings.app_name,
                'version': settings.version,
                'status': 'running',
                'endpoints': ENDPOINTS,
            }
        )

    @app.route('/health', methods=['GET'])
    def health():
        missing = settings.missing_secrets()
        payload = {
            'status': 'ok' if not missing else 'error',
            'version': settings.version,
            'environment': settings.environment,
        }
        if missing:
            payload['error'] = f'Missing secrets: {", ".join(missing)}'
            return jsonify(payload), 503
        return jsonify(payload), 200

    @app.route('/pdf', methods=['POST'])
    def pdf_endpoint():
        body = _parse_model(PdfRequest, request.get_json(silent=True))
        logger.info('Generating PDF: %s chars HTML', len(body.html))
        pdf_bytes = asyncio.run(generate_pdf(body, settings=settings, client=_state()['client']))
        logger.info('PDF generated: %s bytes', len(pdf_bytes))
        return Response(
            pdf_bytes,
            mimetype='application/pdf',
            headers={
                'Content-Disposition': 'inline; filename=document.pdf',
                'Cache-Control': 'no-store',
            },
        )

    @app.route('/pdf/bilingual', methods=['POST'])
    def bilingual_endpoint():
        body = _parse_model(BilingualPdfRequest, request.get_json(silent=True))
        logger.info(
            'Generating bilingual PDF: EN %s chars, JA %s chars, first=%s',
            len(body.html_en),
            len(body.html_ja),
            body.first_language.value,
        )
        state = _state()
        pipeline = build_pipeline(settings, client=state['client'], toc_renderer=state['toc_renderer'])
        result = asyncio.run(pipeline.run(body))
        logger.info('Bilingual PDF generated: %s total pages', result.page_info.total_pages)
        for warning in result.warnings:
            logger.warning('Bilingual PDF delivered with warning: %s', warning)
        return jsonify(result.to_response_payload()), 200

    @app.route('/screenshot', methods=['POST'])
    def screenshot_endpoint():
        body = _parse_model(ScreenshotRequest, request.get_json(silent=True))
        image_type = body.options.type
        logger.info('Generating %s screenshot: %s chars HTML', image_type, len(body.html))
        image_bytes = asyncio.run(generate_screenshot(body, settings=settings, client=_state()['client']))
        return Response(
            image_bytes,
            mimetype=IMAGE_CONTENT_TYPES[image_type],
            headers={
                'Content-Disposition': f'inline; filename=screenshot.{image_type}',
                'Cache-Control': 'no-store',
            },
        )

    @app.errorhandler(BilingualPdfError)
    def handle_generation_error(exc: BilingualPdfError):
        return jsonify(exc.to_payload()), exc.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc: RequestEntityTooLarge):
        return jsonify({'kind': 'payload_too_large', 'message': 'Request body too large'}), 413

    @app.errorhandler(404)
    def handle_not_found(exc: HTTPException):
        return jsonify({'kind': 'not_found', 'message': 'Not found', 'endpoints': ENDPOINTS}), 404

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({'kind': 'http_error', 'message': exc.description}), exc.code
        logger.exception('Unhandled error')
        return jsonify({'kind': 'internal_error', 'message': 'Internal server error'}), 500

    return app


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def run_server(host: str | None = None, port: int | None = None) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    host = host or settings.server_host
    port = port or settings.server_port
    missing = settings.missing_secrets()
    if missing:
        logger.warning('Starting with missing secrets: %s', ', '.join(missing))
    logger.info('=' * 70)
    logger.info('Starting %s %s', settings.app_name, settings.version)
    logger.info('Server: http://%s:%s', host, port)
    logger.info('=' * 70)
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == '__main__':
    run_server()
