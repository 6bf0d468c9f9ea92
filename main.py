from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from bilingualpdf.config import get_settings
from bilingualpdf.errors import BilingualPdfError
from bilingualpdf.runner import generate_bilingual_pdf, generate_pdf
from bilingualpdf.server import configure_logging, run_server
from bilingualpdf.types import BilingualPdfRequest, Language, PdfRequest, TocSpec


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _print_error(message: str, kind: str = 'validation_error') -> int:
    _print_json({'status': 'error', 'kind': kind, 'message': message})
    return 2


def _read_html(raw_path: str) -> tuple[str | None, str | None]:
    path = Path(raw_path).expanduser().resolve()
    if not path.exists() or not path.is_file():
        return None, f'HTML file not found: {path}'
    html = path.read_text(encoding='utf-8')
    if not html.strip():
        return None, f'HTML file is empty: {path}'
    return html, None


def cmd_bilingual(args: argparse.Namespace) -> int:
    html_en, error = _read_html(args.html_en)
    if error:
        return _print_error(error)
    html_ja, error = _read_html(args.html_ja)
    if error:
        return _print_error(error)

    request = BilingualPdfRequest(
        html_en=html_en,
        html_ja=html_ja,
        toc=TocSpec(
            title=args.title,
            title_ja=args.title_ja,
            client_name=args.client_name,
            date=args.date,
            date_ja=args.date_ja,
        ),
        first_language=Language(args.first_language),
    )

    try:
        result = asyncio.run(generate_bilingual_pdf(request, toc_renderer=args.toc_renderer))
    except BilingualPdfError as exc:
        return _print_error(exc.message, exc.kind)

    out_dir = Path(args.out_dir).expanduser().resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    outputs = {
        'combined': out_dir / 'combined.pdf',
        'en': out_dir / 'en.pdf',
        'ja': out_dir / 'ja.pdf',
    }
    outputs['combined'].write_bytes(result.combined)
    outputs['en'].write_bytes(result.document_for(Language.en))
    outputs['ja'].write_bytes(result.document_for(Language.ja))

    _print_json(
        {
            'status': 'ok',
            'pageInfo': result.page_info.model_dump(mode='json', by_alias=True),
            'files': {name: str(path) for name, path in outputs.items()},
            'warnings': result.warnings,
        }
    )
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    html, error = _read_html(args.html)
    if error:
        return _print_error(error)

    try:
        pdf_bytes = asyncio.run(generate_pdf(PdfRequest(html=html)))
    except BilingualPdfError as exc:
        return _print_error(exc.message, exc.kind)

    out_path = Path(args.out).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(pdf_bytes)
    _print_json({'status': 'ok', 'path': str(out_path), 'bytes': len(pdf_bytes)})
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    run_server(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Bilingual PDF assembly CLI')
    sub = parser.add_subparsers(dest='command', required=True)

    bilingual = sub.add_parser('bilingual', help='Render EN + JA HTML into one linked PDF')
    bilingual.add_argument('--html-en', required=True, help='Path to English HTML')
    bilingual.add_argument('--html-ja', required=True, help='Path to Japanese HTML')
    bilingual.add_argument('--title', required=True, help='Document title')
    bilingual.add_argument('--title-ja', required=False, help='Secondary (Japanese) title')
    bilingual.add_argument('--client-name', required=False, help='Shown as "Prepared for"')
    bilingual.add_argument('--date', required=True, help='Document date')
    bilingual.add_argument('--date-ja', required=False, help='Secondary (Japanese) date')
    bilingual.add_argument('--first-language', choices=['en', 'ja'], default='en')
    bilingual.add_argument('--toc-renderer', choices=['html', 'drawn'], required=False)
    bilingual.add_argument('--out-dir', required=True, help='Directory for combined.pdf, en.pdf, ja.pdf')
    bilingual.set_defaults(func=cmd_bilingual)

    render = sub.add_parser('render', help='Render one HTML file to PDF')
    render.add_argument('--html', required=True, help='Path to HTML file')
    render.add_argument('--out', required=True, help='Output PDF path')
    render.set_defaults(func=cmd_render)

    serve = sub.add_parser('serve', help='Run the HTTP server')
    serve.add_argument('--host', required=False)
    serve.add_argument('--port', type=int, required=False)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != 'serve':
        configure_logging(get_settings().log_level)
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
