# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.reaper",
#   "purpose": "Background sweeper closing expired and idle pooled connections",
#   "sections": [
#     {"id": "idleconnectionreaper", "name": "IdleConnectionReaper", "anchor": "class-idleconnectionreaper", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Idle connection reaper.

A single daemon thread wakes every ``interval`` seconds and asks the
:class:`~CrawlKit.PageFetch.pool.ConnectionPool` to close connections that
are past keep-alive expiry or their maximum lifetime, then connections idle
for longer than ``idle_timeout``. Connections serving a response are never
touched.

**Usage:**

    reaper = IdleConnectionReaper(pool, interval=5.0, idle_timeout=30.0)
    reaper.start()
    ...
    reaper.stop()   # idempotent; no sweep runs after it returns
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from . import policy
from .pool import ConnectionPool

logger = logging.getLogger(__name__)


class IdleConnectionReaper:
    """Periodic sweeper bound to one :class:`ConnectionPool`."""

    THREAD_NAME = "PageFetchIdleReaper"

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        interval: float = policy.REAPER_INTERVAL,
        idle_timeout: float = policy.IDLE_CONNECTION_TIMEOUT,
        clock: Optional[Callable[[], float]] = None,
        join_timeout: float = 5.0,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"reaper interval must be > 0, got {interval}")
        self._pool = pool
        self.interval = interval
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._join_timeout = join_timeout
        self._stop = threading.Event()
        self._sweep_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.sweeps = 0

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        """Start the sweeper thread; a second call is a no-op."""
        with self._state_lock:
            if self._thread is not None or self._stop.is_set():
                return
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name=self.THREAD_NAME,
            )
            self._thread.start()
        logger.debug(
            "Idle connection reaper started",
            extra={"interval": self.interval, "idle_timeout": self.idle_timeout},
        )

    def stop(self) -> None:
        """Signal the thread, wait for it, and block any further sweep."""
        with self._state_lock:
            already = self._stop.is_set()
            self._stop.set()
            thread = self._thread
        if already:
            return
        # Waits out a sweep already in progress.
        with self._sweep_lock:
            pass
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._join_timeout)
            if thread.is_alive():
                logger.warning("Idle connection reaper did not exit within %.1fs", self._join_timeout)
        logger.debug("Idle connection reaper stopped", extra={"sweeps": self.sweeps})

    def run_once(self) -> int:
        """Perform one sweep; returns the number of connections closed."""
        with self._sweep_lock:
            if self._stop.is_set() or self._pool.closed:
                return 0
            now = self._clock() if self._clock is not None else None
            closed = self._pool.close_expired_connections(now)
            closed += self._pool.close_idle_connections(self.idle_timeout, now)
            self.sweeps += 1
        if closed:
            logger.debug("Reaped idle connections", extra={"closed": closed})
        return closed

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception as exc:
                logger.error(f"Idle connection sweep failed: {exc}", exc_info=True)


__all__ = ["IdleConnectionReaper"]
