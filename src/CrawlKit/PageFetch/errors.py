"""Exception hierarchy shared across the page fetcher.

The fetcher spans connection pooling, politeness throttling, authentication,
and response classification. Only conditions that make a specific fetch
impossible are raised from :meth:`PageFetcher.fetch`; setup-time problems such
as TLS trust failures or form logins that do not succeed are logged instead.
This module groups the raised failure modes so callers can tell a shutdown
(:class:`FetchInterrupted`) apart from a broken network (:class:`FetchIOError`)
or an oversized page (:class:`PageTooLargeError`).
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "PageFetchError",
    "FetchIOError",
    "FetchInterrupted",
    "PageTooLargeError",
    "MalformedUrlError",
    "ConfigError",
]


class PageFetchError(RuntimeError):
    """Base exception for page fetch failures."""


class FetchIOError(PageFetchError):
    """Raised when the transport fails (connect refused, timeout, reset)."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class FetchInterrupted(PageFetchError):
    """Raised when a fetch is cancelled while waiting for a politeness slot."""


class PageTooLargeError(PageFetchError):
    """Raised when a response body exceeds the configured download ceiling."""

    def __init__(self, size: int, *, limit: Optional[int] = None, url: Optional[str] = None) -> None:
        detail = f"Page size {size} bytes exceeds maximum"
        if limit is not None:
            detail += f" of {limit} bytes"
        if url:
            detail += f": {url}"
        super().__init__(detail)
        self.size = size
        self.limit = limit
        self.url = url


class MalformedUrlError(PageFetchError, ValueError):
    """Raised when a URL (for example a redirect ``Location``) cannot be parsed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Malformed URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class ConfigError(RuntimeError):
    """Raised when fetcher configuration files or overrides are invalid."""


# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.errors",
#   "purpose": "Define the exception hierarchy raised by the page fetcher",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "fetch", "name": "Fetch Failures", "anchor": "FET", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
