# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.cancellation",
#   "purpose": "Provide cancellable waits shared by crawl workers and the page fetcher",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"},
#     {"id": "group", "name": "CancellationTokenGroup", "anchor": "GRP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
"""Cooperative cancellation primitives for politeness waits.

Crawl workers block inside :meth:`PolitenessGate.acquire` for up to the
configured politeness delay. A :class:`CancellationToken` turns that sleep into
an interruptible wait: cancelling the token wakes the sleeper immediately so
the gate can raise :class:`~CrawlKit.PageFetch.errors.FetchInterrupted`.
:class:`CancellationTokenGroup` broadcasts cancellation to every token a
fetcher handed out, which is how ``shutdown()`` releases waiting workers.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe cancellation token with an interruptible wait.

    Examples:
        >>> token = CancellationToken()
        >>> token.wait(0.01)  # times out, not cancelled
        False
        >>> token.cancel()
        >>> token.wait(10.0)  # returns immediately
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return ``True`` once cancellation has been requested."""
        return self._is_cancelled.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep for ``timeout`` seconds unless cancelled first.

        Returns:
            True if the token was cancelled before or during the wait.
        """
        if timeout <= 0:
            return self._is_cancelled.is_set()
        return self._is_cancelled.wait(timeout)


class CancellationTokenGroup:
    """A group of cancellation tokens that can be cancelled together."""

    def __init__(self) -> None:
        self._tokens: list[CancellationToken] = []
        self._lock = threading.Lock()
        self._cancelled = False

    def add_token(self, token: CancellationToken) -> None:
        """Add ``token``; it is cancelled immediately if the group already is."""
        with self._lock:
            self._tokens.append(token)
            if self._cancelled:
                token.cancel()

    def remove_token(self, token: CancellationToken) -> None:
        """Forget ``token``; unknown tokens are ignored."""
        with self._lock:
            try:
                self._tokens.remove(token)
            except ValueError:
                pass

    def cancel_all(self) -> None:
        """Cancel every token in the group, including tokens added later."""
        with self._lock:
            self._cancelled = True
            for token in self._tokens:
                token.cancel()


__all__ = ["CancellationToken", "CancellationTokenGroup"]
