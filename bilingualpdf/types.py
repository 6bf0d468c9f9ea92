from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Language(str, Enum):
    en = 'en'
    ja = 'ja'

    @property
    def other(self) -> 'Language':
        return Language.ja if self is Language.en else Language.en


class GenerationStage(str, Enum):
    requested = 'requested'
    rendering = 'rendering'
    loaded = 'loaded'
    offsets_computed = 'offsets_computed'
    assembled = 'assembled'
    linked = 'linked'
    serialized = 'serialized'
    returned = 'returned'
    failed = 'failed'


class PageFormat(str, Enum):
    a4 = 'A4'
    letter = 'Letter'


_POINTS_PER_UNIT = {
    'pt': 1.0,
    'px': 0.75,
    'mm': 72.0 / 25.4,
    'cm': 72.0 / 2.54,
    'in': 72.0,
}
_LENGTH_PATTERN = re.compile(r'^\s*(-?\d+(?:\.\d+)?)\s*(pt|px|mm|cm|in)?\s*$', re.IGNORECASE)


def parse_length(value: str | float | int) -> float:
    """Convert a CSS length to points. Unitless values are pixels."""
    if isinstance(value, (int, float)):
        return float(value) * _POINTS_PER_UNIT['px']
    match = _LENGTH_PATTERN.match(str(value))
    if match is None:
        raise ValueError(f'unsupported length: {value!r}')
    unit = (match.group(2) or 'px').lower()
    return float(match.group(1)) * _POINTS_PER_UNIT[unit]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PdfMargin(_WireModel):
    top: str = '20mm'
    right: str = '20mm'
    bottom: str = '20mm'
    left: str = '20mm'

    @field_validator('top', 'right', 'bottom', 'left')
    @classmethod
    def _check_length(cls, value: str) -> str:
        parse_length(value)
        return value


class RenderOptions(_WireModel):
    format: PageFormat = PageFormat.a4
    landscape: bool = False
    margin: PdfMargin = Field(default_factory=PdfMargin)
    display_header_footer: bool = False
    header_template: str = '<div></div>'
    footer_template: str = '<div></div>'
    print_background: bool = True
    scale: float = Field(default=1.0, ge=0.1, le=2.0)


class ScreenshotOptions(_WireModel):
    width: int = Field(default=1200, ge=1)
    height: int = Field(default=800, ge=1)
    scale: float = Field(default=2.0, gt=0)
    full_page: bool = False
    type: Literal['png', 'jpeg', 'webp'] = 'png'
    quality: int | None = Field(default=None, ge=0, le=100)


class TocSpec(_WireModel):
    title: str = Field(min_length=1)
    title_ja: str | None = Field(
        default=None,
        validation_alias=AliasChoices('titleSecondary', 'titleJa', 'title_ja'),
    )
    client_name: str | None = None
    date: str = Field(min_length=1)
    date_ja: str | None = Field(
        default=None,
        validation_alias=AliasChoices('dateSecondary', 'dateJa', 'date_ja'),
    )


class PdfRequest(_WireModel):
    html: str = Field(min_length=1)
    options: RenderOptions = Field(default_factory=RenderOptions)


class ScreenshotRequest(_WireModel):
    html: str = Field(min_length=1)
    options: ScreenshotOptions = Field(default_factory=ScreenshotOptions)


class BilingualPdfRequest(_WireModel):
    html_en: str = Field(min_length=1)
    html_ja: str = Field(min_length=1)
    toc: TocSpec
    options: RenderOptions = Field(default_factory=RenderOptions)
    first_language: Language = Language.en

    @model_validator(mode='before')
    @classmethod
    def _map_ordered_html(cls, data: Any) -> Any:
        # Accept {htmlFirst, htmlSecond} and resolve them against firstLanguage.
        if not isinstance(data, dict):
            return data
        first = data.get('htmlFirst', data.get('html_first'))
        second = data.get('htmlSecond', data.get('html_second'))
        if first is None and second is None:
            return data
        mapped = {
            key: value
            for key, value in data.items()
            if key not in {'htmlFirst', 'html_first', 'htmlSecond', 'html_second'}
        }
        language = str(mapped.get('firstLanguage', mapped.get('first_language')) or 'en').strip().lower()
        first_key, second_key = ('html_ja', 'html_en') if language == 'ja' else ('html_en', 'html_ja')
        mapped.setdefault(first_key, first)
        mapped.setdefault(second_key, second)
        return mapped


class PageInfo(_WireModel):
    toc_pages: int
    first_pages: int
    second_pages: int
    total_pages: int
    english_pages: int
    japanese_pages: int
    first_language: Language
