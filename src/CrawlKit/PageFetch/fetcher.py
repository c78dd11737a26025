# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.fetcher",
#   "purpose": "Politeness-gated, authenticated, size-bounded page fetch pipeline",
#   "sections": [
#     {"id": "request-hook", "name": "_request_hook", "anchor": "function-request-hook", "kind": "function"},
#     {"id": "response-hook", "name": "_response_hook", "anchor": "function-response-hook", "kind": "function"},
#     {"id": "pagefetcher", "name": "PageFetcher", "anchor": "class-pagefetcher", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Page fetch pipeline.

:class:`PageFetcher` owns one pooled :class:`httpx.Client`, one
:class:`PolitenessGate`, and one :class:`IdleConnectionReaper`. It is shared
by every crawl worker thread.

Each :meth:`PageFetcher.fetch` call:

1. waits on the politeness gate (cancellable);
2. sends a streamed ``GET`` with redirects disabled;
3. classifies the response:

   - 300/301/302/303/307/308: resolves ``Location`` into ``moved_to_url`` and
     drops the body;
   - 200: records ``fetched_url`` and rejects bodies whose declared length
     exceeds ``max_download_size``;
   - anything else: returns status, headers and body untouched;

4. closes the response on every exit path that does not hand an entity to
   the caller.

Transport failures surface as :class:`FetchIOError`, cancellation and
shutdown as :class:`FetchInterrupted`, oversize bodies as
:class:`PageTooLargeError`.

Example:
    >>> with PageFetcher(FetchSettings()) as fetcher:  # doctest: +SKIP
    ...     with fetcher.fetch("http://example.com/") as result:
    ...         body = result.fetch_content()
"""

from __future__ import annotations

import logging
import threading
import time
from typing import MutableMapping, Optional

import httpx

from . import policy
from .auth import Authenticator, LoginSession, ScopedCredentials
from .cancellation import CancellationToken, CancellationTokenGroup
from .errors import FetchInterrupted, FetchIOError, MalformedUrlError, PageTooLargeError
from .politeness import Clock, PolitenessGate, Sleeper
from .pool import ConnectionPool
from .reaper import IdleConnectionReaper
from .results import FetchResult, HeaderPairs, ResponseEntity
from .settings import FetchSettings
from .urls import canonical_url, resolve_redirect

logger = logging.getLogger(__name__)

_META_KEY = "crawlkit_fetch_meta"


# ============================================================================
# Event Hooks
# ============================================================================


def _request_hook(request: httpx.Request) -> None:
    meta: MutableMapping[str, object] = request.extensions.setdefault(_META_KEY, {})  # type: ignore[assignment]
    meta["start_time"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    meta: MutableMapping[str, object] = response.request.extensions.setdefault(  # type: ignore[assignment]
        _META_KEY, {}
    )
    start_time = meta.get("start_time")
    if isinstance(start_time, (int, float)):
        meta["elapsed"] = time.perf_counter() - start_time
    logger.debug(
        "httpx-response",
        extra={
            "url": str(response.request.url),
            "method": response.request.method,
            "status": response.status_code,
            "elapsed": meta.get("elapsed"),
            "issued_at": meta.get("issued_at"),
        },
    )


def _header_pairs(response: httpx.Response) -> HeaderPairs:
    return tuple(
        (key.decode("latin-1"), value.decode("latin-1")) for key, value in response.headers.raw
    )


# ============================================================================
# PageFetcher
# ============================================================================


class PageFetcher:
    """Thread-safe page fetcher shared by crawl workers.

    Attributes:
        settings: Effective settings; read-only after construction.
    """

    def __init__(
        self,
        settings: Optional[FetchSettings] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Optional[Clock] = None,
        sleeper: Optional[Sleeper] = None,
        start_reaper: bool = True,
    ) -> None:
        """Build the pool, client, gate and reaper, then apply credentials.

        Args:
            settings: Fetcher settings; defaults apply when omitted.
            transport: Transport injected in place of real network handlers.
            clock: Monotonic clock used by the politeness gate.
            sleeper: Cancellable sleep used by the politeness gate.
            start_reaper: Launch the idle connection reaper thread.
        """
        self.settings = settings or FetchSettings()
        self._pool = ConnectionPool(self.settings, transport=transport)
        self._credentials = ScopedCredentials()

        headers = {"User-Agent": self.settings.user_agent}
        headers.update(self.settings.default_headers)
        self._client = httpx.Client(
            mounts=self._pool.mounts,
            transport=self._pool.fallback_transport,
            timeout=httpx.Timeout(
                connect=self.settings.connect_timeout,
                read=self.settings.socket_timeout,
                write=self.settings.socket_timeout,
                pool=self.settings.connect_timeout,
            ),
            follow_redirects=policy.FOLLOW_REDIRECTS,
            headers=headers,
            auth=self._credentials,
            trust_env=False,
            event_hooks={"request": [_request_hook], "response": [_response_hook]},
        )
        self._gate = PolitenessGate(self.settings.politeness_delay, clock=clock, sleeper=sleeper)
        self._tokens = CancellationTokenGroup()
        self._reaper = IdleConnectionReaper(
            self._pool,
            interval=self.settings.reaper_interval,
            idle_timeout=self.settings.idle_connection_timeout,
        )
        self._closed = False
        self._shutdown_lock = threading.Lock()

        Authenticator(LoginSession(self._client, self._credentials)).apply(
            self.settings.auth_credentials
        )
        if start_reaper:
            self._reaper.start()

        logger.info(
            "Page fetcher ready",
            extra={
                "config_hash": self.settings.config_hash()[:12],
                "schemes": self._pool.schemes,
                "politeness_delay": self.settings.politeness_delay,
                "max_download_size": self.settings.max_download_size,
            },
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def gate(self) -> PolitenessGate:
        return self._gate

    @property
    def client(self) -> httpx.Client:
        return self._client

    @property
    def reaper(self) -> IdleConnectionReaper:
        return self._reaper

    @property
    def credentials(self) -> ScopedCredentials:
        return self._credentials

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(self, url: str, *, cancel_token: Optional[CancellationToken] = None) -> FetchResult:
        """Fetch ``url`` once and classify the response.

        Args:
            url: Absolute URL to retrieve.
            cancel_token: Token interrupting the politeness wait. ``shutdown()``
                cancels it as well.

        Returns:
            The classified :class:`FetchResult`. Results carrying an entity
            hold a connection until read or discarded.

        Raises:
            FetchIOError: On connection, timeout, TLS or protocol failures.
            FetchInterrupted: When cancelled or after ``shutdown()``.
            PageTooLargeError: When a 200 response declares a body larger
                than ``max_download_size``.
            MalformedUrlError: When ``url`` cannot be turned into a request.
        """
        if self._closed:
            raise FetchInterrupted("Page fetcher has been shut down")

        try:
            request = self._client.build_request("GET", url)
        except httpx.InvalidURL as exc:
            raise MalformedUrlError(url, str(exc)) from exc

        token = cancel_token or CancellationToken()
        self._tokens.add_token(token)
        try:
            issued = self._gate.acquire(token)
        finally:
            self._tokens.remove_token(token)
        if self._closed or token.is_cancelled():
            raise FetchInterrupted("Page fetcher shut down before the request was sent")
        request.extensions.setdefault(_META_KEY, {})["issued_at"] = issued

        try:
            response = self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            if self._closed:
                raise FetchInterrupted("Page fetcher shut down during the request") from exc
            logger.debug("Fetch failed", extra={"url": url, "error": str(exc)})
            raise FetchIOError(f"{type(exc).__name__}: {exc}", url=url) from exc
        except RuntimeError as exc:
            # httpx refuses to send on a closed client
            if self._client.is_closed:
                raise FetchInterrupted("Page fetcher shut down before the request was sent") from exc
            raise

        entity: Optional[ResponseEntity] = None
        try:
            status = response.status_code
            headers = _header_pairs(response)
            if status in policy.REDIRECT_STATUS_CODES:
                return FetchResult(
                    status_code=status,
                    moved_to_url=self._redirect_target(response, url),
                    response_headers=headers,
                )

            candidate = ResponseEntity(response, max_bytes=self.settings.max_download_size)
            fetched_url: Optional[str] = None
            if status == httpx.codes.OK:
                fetched_url = self._fetched_url(response, url)
                declared = candidate.content_length
                if declared is not None and declared > self.settings.max_download_size:
                    raise PageTooLargeError(
                        declared, limit=self.settings.max_download_size, url=url
                    )

            entity = candidate
            logger.debug("Fetched page", extra={"url": url, "status": status})
            return FetchResult(
                status_code=status,
                fetched_url=fetched_url,
                response_headers=headers,
                entity=entity,
            )
        finally:
            if entity is None:
                response.close()

    def _redirect_target(self, response: httpx.Response, url: str) -> Optional[str]:
        location = response.headers.get("location")
        if not location:
            logger.debug("Redirect without Location header", extra={"url": url})
            return None
        try:
            return resolve_redirect(location, url)
        except MalformedUrlError as exc:
            logger.warning(
                "Malformed redirect location",
                extra={"url": url, "location": location, "reason": exc.reason},
            )
            return None

    def _fetched_url(self, response: httpx.Response, url: str) -> str:
        uri = str(response.request.url)
        if uri == url:
            return url
        try:
            if canonical_url(uri) == url:
                return url
        except MalformedUrlError:
            return url
        return uri

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Release waiters, stop the reaper, close the client; idempotent."""
        with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True
        self._tokens.cancel_all()
        self._reaper.stop()
        self._client.close()
        self._pool.close()
        logger.info("Page fetcher shut down")

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


__all__ = ["PageFetcher"]
