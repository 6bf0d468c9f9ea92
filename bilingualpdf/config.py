from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Worst case for one HTML character in a JSON body: a \uXXXX escape.
JSON_BYTES_PER_CHAR = 6
# Room for toc, options and JSON framing around the two HTML fields.
REQUEST_OVERHEAD_BYTES = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
        populate_by_name=True,
    )

    app_name: str = 'Bilingual PDF Service'
    version: str = '1.0.0'
    environment: str = Field(
        default='unknown',
        validation_alias=AliasChoices('ENVIRONMENT', 'APP_ENV'),
    )

    # Browser rendering API
    render_account_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices('CLOUDFLARE_ACCOUNT_ID', 'RENDER_ACCOUNT_ID'),
    )
    render_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices('CLOUDFLARE_PDF_RENDER_TOKEN', 'RENDER_API_TOKEN'),
    )
    render_base_url: str = Field(
        default='https://api.cloudflare.com/client/v4/accounts',
        validation_alias=AliasChoices('RENDER_BASE_URL'),
    )
    # Must include {account_id}
    render_pdf_endpoint: str = '/{account_id}/browser-rendering/pdf'
    render_screenshot_endpoint: str = '/{account_id}/browser-rendering/screenshot'
    render_timeout_seconds: float = Field(
        default=60.0,
        validation_alias=AliasChoices('RENDER_TIMEOUT_SECONDS'),
    )
    render_wait_until: str = Field(
        default='networkidle2',
        validation_alias=AliasChoices('RENDER_WAIT_UNTIL'),
    )

    # Request boundary
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices('PDF_API_KEY', 'API_KEY'),
    )
    allowed_origins: str = Field(
        default='http://localhost,http://127.0.0.1',
        validation_alias=AliasChoices('ALLOWED_ORIGINS'),
    )
    max_html_chars: int = Field(
        default=5_000_000,
        validation_alias=AliasChoices('MAX_HTML_CHARS'),
    )
    # Unset: derived from max_html_chars, see request_byte_limit()
    max_request_bytes: int | None = Field(
        default=None,
        validation_alias=AliasChoices('MAX_REQUEST_BYTES'),
    )

    # Table of contents
    toc_renderer: str = Field(
        default='html',
        validation_alias=AliasChoices('TOC_RENDERER'),
    )
    toc_font_css_url: str = Field(
        default=(
            'https://fonts.googleapis.com/css2?'
            'family=IBM+Plex+Sans:wght@400;600&family=Noto+Sans+JP:wght@400;600&display=swap'
        ),
        validation_alias=AliasChoices('TOC_FONT_CSS_URL'),
    )
    organization_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices('ORGANIZATION_NAME'),
    )

    # Server
    server_host: str = Field(default='0.0.0.0', validation_alias=AliasChoices('SERVER_HOST'))
    server_port: int = Field(default=8787, validation_alias=AliasChoices('SERVER_PORT'))
    log_level: str = Field(default='INFO', validation_alias=AliasChoices('LOG_LEVEL'))

    def allowed_origin_list(self) -> list[str]:
        origins: list[str] = []
        for item in self.allowed_origins.split(','):
            normalized = item.strip().rstrip('/')
            if not normalized:
                continue
            origins.append(normalized)
        return origins

    def request_byte_limit(self) -> int:
        if self.max_request_bytes:
            return int(self.max_request_bytes)
        return 2 * int(self.max_html_chars) * JSON_BYTES_PER_CHAR + REQUEST_OVERHEAD_BYTES

    def missing_secrets(self) -> list[str]:
        required = {
            'CLOUDFLARE_ACCOUNT_ID': self.render_account_id,
            'CLOUDFLARE_PDF_RENDER_TOKEN': self.render_api_token,
            'PDF_API_KEY': self.api_key,
        }
        return [name for name, value in required.items() if not str(value or '').strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
