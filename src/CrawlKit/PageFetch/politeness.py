# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.politeness",
#   "purpose": "Global politeness gate spacing out request issuance",
#   "sections": [
#     {"id": "interruptible-sleep", "name": "interruptible_sleep", "anchor": "function-interruptible-sleep", "kind": "function"},
#     {"id": "politenessgate", "name": "PolitenessGate", "anchor": "class-politenessgate", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Politeness gate: serialises request *issuance* across crawl workers.

Every fetch calls :meth:`PolitenessGate.acquire` before sending its request.
Under a single lock the gate compares the current time with the last issuance
time; if the gap is shorter than the politeness delay the caller sleeps for
the remainder, then records the post-wait time as the new issuance time. The
lock covers only this check-and-set, so requests still overlap on the wire;
only their start times are spaced apart.

The sleep is a wait on a :class:`CancellationToken`. Cancelling the token
wakes the worker, which raises :class:`FetchInterrupted` without recording an
issuance. Workers still queued for the lock poll their token and leave the
queue the same way.

Example:
    >>> gate = PolitenessGate(0.0)
    >>> issued = gate.acquire()
    >>> gate.last_issued == issued
    True
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .cancellation import CancellationToken
from .errors import FetchInterrupted

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float, CancellationToken], bool]

# Workers queued behind the gate re-check their token this often.
LOCK_POLL_SECONDS = 0.05


def interruptible_sleep(seconds: float, token: CancellationToken) -> bool:
    """Sleep up to ``seconds``; returns ``True`` if ``token`` was cancelled."""
    return token.wait(seconds)


class PolitenessGate:
    """Thread-safe minimum-spacing limiter owned by one fetcher.

    Attributes:
        delay: Minimum seconds between successive issuance times.
    """

    def __init__(
        self,
        delay: float,
        *,
        clock: Optional[Clock] = None,
        sleeper: Optional[Sleeper] = None,
    ) -> None:
        if delay < 0:
            raise ValueError(f"politeness delay must be >= 0, got {delay}")
        self.delay = delay
        self._now = clock or time.monotonic
        self._sleep = sleeper or interruptible_sleep
        self._lock = threading.Lock()
        self._last_issued: Optional[float] = None

    @property
    def last_issued(self) -> Optional[float]:
        with self._lock:
            return self._last_issued

    def acquire(self, token: Optional[CancellationToken] = None) -> float:
        """Block until a request may start; return the recorded issuance time.

        Args:
            token: Cancellation token interrupting the wait. A private token
                is used when omitted, which makes the wait uninterruptible.

        Raises:
            FetchInterrupted: If ``token`` is cancelled before the slot is granted.
        """
        token = token or CancellationToken()
        while not self._lock.acquire(timeout=LOCK_POLL_SECONDS):
            if token.is_cancelled():
                raise FetchInterrupted("Cancelled while queued for the politeness gate")
        try:
            if token.is_cancelled():
                raise FetchInterrupted("Cancelled before politeness slot was granted")
            if self._last_issued is not None:
                elapsed = self._now() - self._last_issued
                if elapsed < self.delay:
                    remaining = self.delay - elapsed
                    logger.debug(
                        "Politeness wait",
                        extra={"wait_seconds": round(remaining, 4), "delay": self.delay},
                    )
                    if self._sleep(remaining, token):
                        raise FetchInterrupted("Cancelled while waiting for politeness delay")
            issued = self._now()
            self._last_issued = issued
            return issued
        finally:
            self._lock.release()


__all__ = ["PolitenessGate", "interruptible_sleep"]
