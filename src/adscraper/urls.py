"""URL helpers for crawl lists and request capture."""

from __future__ import annotations

import urllib.parse


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""

    try:
        parsed = urllib.parse.urlparse(url.strip())
    except (AttributeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def origin(url: str) -> tuple[str, str, int | None] | None:
    try:
        parsed = urllib.parse.urlparse(url)
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    if port is None:
        port = {"http": 80, "https": 443}.get(parsed.scheme)
    return parsed.scheme, parsed.hostname, port


def same_origin(a: str, b: str) -> bool:
    """Whether two URLs share scheme, host and port; unparsable URLs never match."""

    oa, ob = origin(a), origin(b)
    return oa is not None and oa == ob


__all__ = ["is_valid_url", "origin", "same_origin"]
