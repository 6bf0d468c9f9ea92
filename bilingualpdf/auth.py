from __future__ import annotations

import hmac
import re
from typing import Iterable

from bilingualpdf.config import Settings

_LOOPBACK_ORIGINS = ('http://localhost', 'http://127.0.0.1')


def origin_pattern(allowed: str) -> re.Pattern[str]:
    """Compile one whitelist entry; ``*`` matches any run of characters."""
    escaped = re.escape(allowed).replace(r'\*', '.*')
    # loopback and wildcard entries match any port
    if allowed in _LOOPBACK_ORIGINS or '*' in allowed:
        return re.compile(f'^{escaped}(:\\d+)?$')
    return re.compile(f'^{escaped}$')


def origin_patterns(origins: Iterable[str]) -> list[re.Pattern[str]]:
    return [origin_pattern(origin) for origin in origins]


def is_origin_allowed(origin: str | None, patterns: Iterable[re.Pattern[str]]) -> bool:
    if not origin:
        return False
    return any(pattern.match(origin) for pattern in patterns)


def is_api_key_valid(api_key: str | None, settings: Settings) -> bool:
    expected = str(settings.api_key or '')
    if not api_key or not expected:
        return False
    return hmac.compare_digest(api_key.encode('utf-8'), expected.encode('utf-8'))


def is_request_authorized(
    *,
    origin: str | None,
    api_key: str | None,
    settings: Settings,
    patterns: Iterable[re.Pattern[str]] | None = None,
) -> bool:
    """Browser callers pass by whitelisted Origin, server callers by X-API-Key."""
    if patterns is None:
        patterns = origin_patterns(settings.allowed_origin_list())
    if is_origin_allowed(origin, patterns):
        return True
    return is_api_key_valid(api_key, settings)
