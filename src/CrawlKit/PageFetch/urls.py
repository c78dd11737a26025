# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.urls",
#   "purpose": "URL canonicalization and redirect Location resolution",
#   "sections": [
#     {"id": "strip-fragment", "name": "_strip_fragment", "anchor": "function-strip-fragment", "kind": "function"},
#     {"id": "canonical-url", "name": "canonical_url", "anchor": "function-canonical-url", "kind": "function"},
#     {"id": "resolve-redirect", "name": "resolve_redirect", "anchor": "function-resolve-redirect", "kind": "function"},
#     {"id": "host-key", "name": "host_key", "anchor": "function-host-key", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Centralized URL canonicalization helpers for the page fetcher.

Canonicalization Rules
----------------------
URL normalization follows RFC 3986 via ``url-normalize``:

1. **Scheme and host casing**: ``HTTP://Example.COM`` → ``http://example.com``.
2. **Percent-encoding**: uppercase hex escapes, decode unreserved characters.
3. **Dot-segment removal**: ``/a/./b/../c`` → ``/a/c``.
4. **Path defaults**: ``http://example.com`` → ``http://example.com/``.
5. **Default port dropping**: ``:80`` for http and ``:443`` for https only.
6. **IDN normalization**: international host names become punycode.
7. **Fragment removal**: fragments never reach the origin server.

Query strings are preserved verbatim and never reordered.

Redirects
---------
:func:`resolve_redirect` joins a ``Location`` header value against the URL
that produced the redirect, then canonicalises the result. Values that cannot
be parsed raise :class:`~CrawlKit.PageFetch.errors.MalformedUrlError`; the
fetch pipeline treats that as "no redirect destination available".

Example Usage
-------------
    >>> resolve_redirect("page2.html", "http://example.com/dir/page1.html")
    'http://example.com/dir/page2.html'
    >>> canonical_url("HTTP://Example.COM:80/a/./b/../c#frag")
    'http://example.com/a/c'
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from url_normalize import url_normalize

from .errors import MalformedUrlError

DEFAULT_SCHEME = "http"


def _strip_fragment(value: str) -> str:
    """Return ``value`` without a URL fragment."""

    parts = urlsplit(value)
    if not parts.fragment:
        return value
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def canonical_url(url: str, base: Optional[str] = None) -> str:
    """Return the canonical absolute form of ``url``.

    Args:
        url: Absolute URL, or a reference relative to ``base``.
        base: Optional URL that ``url`` is resolved against first.

    Raises:
        MalformedUrlError: If the URL cannot be parsed or lacks a scheme/host.
    """

    if url is None:
        raise TypeError("canonical_url expected a URL string, received None.")

    text = url.strip()
    if not text:
        raise MalformedUrlError(url, "empty URL")
    try:
        joined = urljoin(base, text) if base else text
        parts = urlsplit(joined)
        hostname = parts.hostname
    except ValueError as exc:
        raise MalformedUrlError(url, str(exc)) from exc

    if not parts.scheme or not hostname:
        raise MalformedUrlError(url, "URL is not absolute")

    try:
        canonical = url_normalize(joined, default_scheme=DEFAULT_SCHEME)
    except Exception as exc:  # url-normalize raises bare ValueError/UnicodeError subtypes
        raise MalformedUrlError(url, f"normalization failed: {exc}") from exc
    if not canonical:
        raise MalformedUrlError(url, "normalization produced an empty URL")
    return _strip_fragment(canonical)


def resolve_redirect(location: str, origin_url: str) -> str:
    """Resolve a redirect ``Location`` value into a canonical absolute URL."""

    return canonical_url(location, base=origin_url)


def host_key(url: str) -> str:
    """Derive the ``scheme://host:port`` key used for per-host connection caps.

    Examples
    --------
    >>> host_key("HTTP://Example.COM/path")
    'http://example.com:80'
    >>> host_key("https://example.com:8443/")
    'https://example.com:8443'
    """

    parts = urlsplit(url)
    scheme = (parts.scheme or DEFAULT_SCHEME).lower()
    host = (parts.hostname or "").lower()
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is None:
        port = 443 if scheme == "https" else 80
    return f"{scheme}://{host}:{port}"


__all__ = [
    "DEFAULT_SCHEME",
    "canonical_url",
    "host_key",
    "resolve_redirect",
]
