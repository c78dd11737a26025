"""Page fetch subsystem: the HTTP retrieval core shared by crawl workers.

This package provides a thread-safe page fetcher built on:
- HTTPX: pooled HTTP/1.1 transports with per-host connection caps
- certifi: trust store for the https handler
- url-normalize: canonical redirect destinations
- Pydantic v2: frozen, validated settings

Modules:
- fetcher: PageFetcher pipeline (politeness → request → classification)
- pool: connection pool, per-host slot limiting, TLS setup
- reaper: background sweeper for expired and idle connections
- politeness: global minimum spacing between request starts
- auth: basic and form login credentials applied at startup
- urls: canonicalization and redirect Location resolution
- results: FetchResult and the streamed ResponseEntity
- settings / loader: configuration models and file/env/CLI loading

Example:
    >>> from CrawlKit.PageFetch import FetchSettings, PageFetcher
    >>> with PageFetcher(FetchSettings(politeness_delay=1.0)) as fetcher:  # doctest: +SKIP
    ...     with fetcher.fetch("http://example.com/") as result:
    ...         if result.moved_to_url:
    ...             schedule(result.moved_to_url)
    ...         elif result.fetched_url:
    ...             parse(result.fetch_content())
"""

from CrawlKit.PageFetch.auth import (
    AuthCredential,
    Authenticator,
    BasicCredential,
    FormCredential,
    LoginSession,
    ScopedCredentials,
)
from CrawlKit.PageFetch.cancellation import CancellationToken, CancellationTokenGroup
from CrawlKit.PageFetch.errors import (
    ConfigError,
    FetchInterrupted,
    FetchIOError,
    MalformedUrlError,
    PageFetchError,
    PageTooLargeError,
)
from CrawlKit.PageFetch.fetcher import PageFetcher
from CrawlKit.PageFetch.loader import load_settings
from CrawlKit.PageFetch.logging_config import setup_logging
from CrawlKit.PageFetch.politeness import PolitenessGate
from CrawlKit.PageFetch.pool import ConnectionPool, build_ssl_context
from CrawlKit.PageFetch.reaper import IdleConnectionReaper
from CrawlKit.PageFetch.results import FetchResult, ResponseEntity
from CrawlKit.PageFetch.settings import FetchSettings, LoggingSettings, PoolLimits, ProxySettings
from CrawlKit.PageFetch.urls import canonical_url, resolve_redirect

__all__ = [
    # Fetching
    "PageFetcher",
    "FetchResult",
    "ResponseEntity",
    # Components
    "ConnectionPool",
    "IdleConnectionReaper",
    "PolitenessGate",
    "build_ssl_context",
    # Authentication
    "AuthCredential",
    "Authenticator",
    "BasicCredential",
    "FormCredential",
    "LoginSession",
    "ScopedCredentials",
    # URLs
    "canonical_url",
    "resolve_redirect",
    # Cancellation
    "CancellationToken",
    "CancellationTokenGroup",
    # Settings
    "FetchSettings",
    "LoggingSettings",
    "PoolLimits",
    "ProxySettings",
    "load_settings",
    "setup_logging",
    # Errors
    "PageFetchError",
    "FetchIOError",
    "FetchInterrupted",
    "PageTooLargeError",
    "MalformedUrlError",
    "ConfigError",
]
