# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.pool",
#   "purpose": "Bounded HTTPX connection pool with per-host caps and TLS setup",
#   "sections": [
#     {"id": "build-ssl-context", "name": "build_ssl_context", "anchor": "function-build-ssl-context", "kind": "function"},
#     {"id": "connectionlimiter", "name": "ConnectionLimiter", "anchor": "class-connectionlimiter", "kind": "class"},
#     {"id": "hostlimitedtransport", "name": "HostLimitedTransport", "anchor": "class-hostlimitedtransport", "kind": "class"},
#     {"id": "connectionpool", "name": "ConnectionPool", "anchor": "class-connectionpool", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX connection pool for the page fetcher.

Responsibilities
----------------
- Build one :class:`httpx.HTTPTransport` per registered scheme: ``http`` is
  always registered, ``https`` only when ``include_https_pages`` is enabled
  and its SSL context could be built. Unregistered schemes fail at dispatch
  with :class:`httpx.UnsupportedProtocol`, never at construction.
- Enforce ``max_total_connections`` across all hosts and
  ``max_connections_per_host`` per ``scheme://host:port`` through a shared
  :class:`ConnectionLimiter`. A slot is held from dispatch until the response
  stream is closed; callers beyond capacity wait up to the connect timeout and
  then get :class:`httpx.PoolTimeout`.
- Route every request through the configured proxy, with proxy credentials
  attached to the proxy only.
- Expose pooled connections to the idle reaper.

Construction performs no network I/O.
"""

from __future__ import annotations

import contextlib
import functools
import logging
import ssl
import threading
import time
from typing import Callable, ContextManager, Dict, Iterator, List, Mapping, Optional

import certifi
import httpx

from .settings import FetchSettings, PoolLimits, ProxySettings
from .urls import host_key

logger = logging.getLogger(__name__)


# ============================================================================
# TLS
# ============================================================================


def build_ssl_context(*, trust_all: bool = False) -> ssl.SSLContext:
    """Create the SSL context used by the https handler.

    Args:
        trust_all: Accept any certificate chain and skip hostname checks.
            INSECURE; only for crawling hosts with broken certificates.

    Returns:
        Configured :class:`ssl.SSLContext`.
    """
    if trust_all:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED: trusting all certificates and host names")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


# ============================================================================
# Connection Slots
# ============================================================================


class ConnectionLimiter:
    """Global semaphore plus per-key counts under one condition.

    A key is tracked only while it holds slots, so the bookkeeping stays
    proportional to the hosts currently in flight.

    Example:
        >>> limiter = ConnectionLimiter(max_total=2, max_per_host=1, acquire_timeout=0.0)
        >>> limiter.acquire("http://a:80")
        True
        >>> limiter.acquire("http://a:80")
        False
        >>> limiter.release("http://a:80")
        >>> limiter.snapshot()
        {}
    """

    def __init__(self, max_total: int, max_per_host: int, *, acquire_timeout: float) -> None:
        self.max_total = max(1, max_total)
        self.max_per_host = max(1, max_per_host)
        self.acquire_timeout = acquire_timeout
        self._global = threading.BoundedSemaphore(self.max_total)
        self._in_use: Dict[str, int] = {}
        self._cond = threading.Condition()

    def acquire(self, key: str, timeout: Optional[float] = None) -> bool:
        """Take one global and one per-key slot, waiting at most ``timeout``."""
        timeout = self.acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        if not self._global.acquire(timeout=timeout):
            return False
        with self._cond:
            granted = self._cond.wait_for(
                lambda: self._in_use.get(key, 0) < self.max_per_host,
                timeout=max(0.0, deadline - time.monotonic()),
            )
            if granted:
                self._in_use[key] = self._in_use.get(key, 0) + 1
        if not granted:
            self._global.release()
        return granted

    def release(self, key: str) -> None:
        with self._cond:
            count = self._in_use.get(key, 0)
            if count <= 0:
                logger.warning("Connection slot imbalance detected for %s", key)
                return
            if count == 1:
                del self._in_use[key]
            else:
                self._in_use[key] = count - 1
            self._cond.notify_all()
        self._global.release()

    def in_use(self, key: Optional[str] = None) -> int:
        with self._cond:
            if key is not None:
                return self._in_use.get(key, 0)
            return sum(self._in_use.values())

    def snapshot(self) -> Dict[str, int]:
        with self._cond:
            return dict(self._in_use)


class _SlotReleasingStream(httpx.SyncByteStream):
    """Response stream that hands its connection slot back when closed."""

    def __init__(self, inner: httpx.SyncByteStream, release: Callable[[], None]) -> None:
        self._inner = inner
        self._release = release
        self._closed = False
        self._lock = threading.Lock()

    def __iter__(self) -> Iterator[bytes]:
        yield from self._inner

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._inner.close()
        finally:
            self._release()


class HostLimitedTransport(httpx.BaseTransport):
    """HTTPX transport enforcing :class:`ConnectionLimiter` slots per host."""

    def __init__(self, inner: httpx.BaseTransport, *, limiter: ConnectionLimiter) -> None:
        self._inner = inner
        self._limiter = limiter

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Acquire a slot, delegate, and tie the slot to the response stream."""
        key = host_key(str(request.url))
        if not self._limiter.acquire(key):
            raise httpx.PoolTimeout(
                f"No connection slot for {key} within {self._limiter.acquire_timeout}s",
                request=request,
            )

        try:
            response = self._inner.handle_request(request)
        except BaseException:
            self._limiter.release(key)
            raise

        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=_SlotReleasingStream(response.stream, functools.partial(self._limiter.release, key)),
            extensions=response.extensions,
        )

    def close(self) -> None:
        self._inner.close()


class _UnregisteredSchemeTransport(httpx.BaseTransport):
    """Fallback transport for schemes without a registered handler."""

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise httpx.UnsupportedProtocol(
            f"No connection handler registered for scheme {request.url.scheme!r}",
            request=request,
        )


# ============================================================================
# ConnectionPool
# ============================================================================


class ConnectionPool:
    """Bounded, reusable connections keyed by scheme/host.

    Attributes:
        limits: Read-only pool limits captured at construction.
    """

    def __init__(
        self,
        settings: FetchSettings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Build transports for the configured schemes.

        Args:
            settings: Fetcher settings.
            transport: Optional transport used for every registered scheme
                instead of a real :class:`httpx.HTTPTransport` (tests inject
                :class:`httpx.MockTransport` here).
        """
        self.limits: PoolLimits = settings.pool_limits()
        self._keepalive_expiry = settings.idle_connection_timeout
        self._max_lifetime = settings.connection_max_lifetime
        self._proxy = _build_proxy(settings.proxy)
        self._limiter = ConnectionLimiter(
            self.limits.max_total_connections,
            self.limits.max_connections_per_host,
            acquire_timeout=self.limits.connect_timeout,
        )
        self._closed = False
        self._close_lock = threading.Lock()
        self._track_lock = threading.Lock()
        self._first_seen: Dict[int, float] = {}
        self._last_active: Dict[int, float] = {}

        self._transports: Dict[str, httpx.BaseTransport] = {
            "http": transport or self._build_transport(None),
        }
        if settings.include_https_pages:
            try:
                ssl_context = build_ssl_context(trust_all=settings.trust_all_certificates)
            except (ssl.SSLError, OSError, ValueError) as exc:
                logger.warning(
                    "Exception thrown while trying to register https; https pages disabled",
                    extra={"error": str(exc)},
                )
                logger.debug("Stacktrace", exc_info=True)
            else:
                self._transports["https"] = transport or self._build_transport(ssl_context)

        self._mounts: Dict[str, httpx.BaseTransport] = {
            f"{scheme}://": HostLimitedTransport(inner, limiter=self._limiter)
            for scheme, inner in self._transports.items()
        }
        self._fallback = _UnregisteredSchemeTransport()

        logger.debug(
            "Connection pool created",
            extra={
                "schemes": sorted(self._transports),
                "max_total": self.limits.max_total_connections,
                "max_per_host": self.limits.max_connections_per_host,
                "proxy": settings.proxy.url if settings.proxy else None,
            },
        )

    def _build_transport(self, ssl_context: Optional[ssl.SSLContext]) -> httpx.HTTPTransport:
        return httpx.HTTPTransport(
            verify=ssl_context if ssl_context is not None else True,
            limits=httpx.Limits(
                max_connections=self.limits.max_total_connections,
                max_keepalive_connections=self.limits.max_total_connections,
                keepalive_expiry=self._keepalive_expiry,
            ),
            proxy=self._proxy,
            retries=0,
        )

    # ------------------------------------------------------------------
    # Client wiring
    # ------------------------------------------------------------------

    @property
    def schemes(self) -> List[str]:
        return sorted(self._transports)

    @property
    def mounts(self) -> Mapping[str, httpx.BaseTransport]:
        return dict(self._mounts)

    @property
    def fallback_transport(self) -> httpx.BaseTransport:
        return self._fallback

    @property
    def limiter(self) -> ConnectionLimiter:
        return self._limiter

    @property
    def closed(self) -> bool:
        return self._closed

    def in_use_connections(self) -> int:
        """Number of connection slots currently held by in-flight responses."""
        return self._limiter.in_use()

    def stats(self) -> Dict[str, object]:
        return {
            "in_use": self._limiter.in_use(),
            "per_host": self._limiter.snapshot(),
            "pooled": sum(1 for _ in self._pooled_connections()),
            "schemes": self.schemes,
        }

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def _connection_pools(self) -> Iterator[object]:
        seen: set[int] = set()
        for inner in self._transports.values():
            if id(inner) in seen:
                continue
            seen.add(id(inner))
            pool = getattr(inner, "_pool", None)
            if pool is not None:
                yield pool

    def _pooled_connections(self) -> Iterator[object]:
        for pool in self._connection_pools():
            yield from list(getattr(pool, "connections", ()))

    @staticmethod
    def _assignment_lock(pool: object) -> ContextManager[object]:
        """Lock under which httpcore hands idle connections to new requests."""
        lock = getattr(pool, "_optional_thread_lock", None)
        return lock if lock is not None else contextlib.nullcontext()

    def _observe(self, now: float) -> List[object]:
        """Snapshot pooled connections, updating first-seen and last-active times."""
        connections = list(self._pooled_connections())
        live = {id(conn) for conn in connections}
        with self._track_lock:
            for ident in list(self._first_seen):
                if ident not in live:
                    self._first_seen.pop(ident, None)
                    self._last_active.pop(ident, None)
            for conn in connections:
                ident = id(conn)
                self._first_seen.setdefault(ident, now)
                if conn.is_idle():
                    self._last_active.setdefault(ident, now)
                else:
                    self._last_active[ident] = now
        return connections

    def _sweep(self, now: float, should_close: Callable[[object], bool]) -> int:
        # The idle check and the close share the pool's assignment lock, so a
        # connection cannot be handed to a request in between.
        self._observe(now)
        closed = 0
        for pool in self._connection_pools():
            with self._assignment_lock(pool):
                for conn in list(getattr(pool, "connections", ())):
                    if conn.is_closed() or not conn.is_idle():
                        continue
                    if should_close(conn):
                        conn.close()
                        closed += 1
        return closed

    def close_expired_connections(self, now: Optional[float] = None) -> int:
        """Close idle connections past keep-alive expiry or the maximum lifetime."""
        now = time.monotonic() if now is None else now

        def _expired(conn: object) -> bool:
            with self._track_lock:
                age = now - self._first_seen.get(id(conn), now)
            return conn.has_expired() or age >= self._max_lifetime

        return self._sweep(now, _expired)

    def close_idle_connections(self, idle_seconds: float, now: Optional[float] = None) -> int:
        """Close connections idle for at least ``idle_seconds``."""
        now = time.monotonic() if now is None else now

        def _idle(conn: object) -> bool:
            with self._track_lock:
                idle_for = now - self._last_active.get(id(conn), now)
            return idle_for >= idle_seconds

        return self._sweep(now, _idle)

    def close(self) -> None:
        """Close every transport; safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        seen: set[int] = set()
        for inner in self._transports.values():
            if id(inner) in seen:
                continue
            seen.add(id(inner))
            try:
                inner.close()
            except Exception as exc:  # pragma: no cover
                logger.error("Failed to close transport", extra={"error": str(exc)})
        logger.debug("Connection pool closed")


def _build_proxy(proxy: Optional[ProxySettings]) -> Optional[httpx.Proxy]:
    if proxy is None:
        return None
    auth = None
    if proxy.username:
        auth = (proxy.username, proxy.password or "")
    logger.debug("Working through proxy: %s", proxy.host)
    return httpx.Proxy(proxy.url, auth=auth)


__all__ = [
    "ConnectionLimiter",
    "ConnectionPool",
    "HostLimitedTransport",
    "build_ssl_context",
]
