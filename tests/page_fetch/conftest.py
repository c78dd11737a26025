# === NAVMAP v1 ===
# {
#   "module": "tests.page_fetch.conftest",
#   "purpose": "Shared fixtures for hermetic page fetcher tests",
#   "sections": [
#     {"id": "fake-clock", "name": "FakeClock", "anchor": "class-fake-clock", "kind": "class"},
#     {"id": "recording-handler", "name": "RecordingHandler", "anchor": "class-recording-handler", "kind": "class"},
#     {"id": "make-fetcher", "name": "make_fetcher", "anchor": "fixture-make-fetcher", "kind": "fixture"}
#   ]
# }
# === /NAVMAP ===

"""
Shared fixtures for the page fetcher suite.

Every fetcher built here runs on :class:`httpx.MockTransport`, never starts
the reaper thread, and is shut down at teardown.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generator, List

import httpx
import pytest

from CrawlKit.PageFetch.cancellation import CancellationToken
from CrawlKit.PageFetch.fetcher import PageFetcher
from CrawlKit.PageFetch.settings import FetchSettings


class FakeClock:
    """Thread-safe manual clock whose sleeper advances time instead of blocking."""

    def __init__(self, start: float = 1_000.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float, token: CancellationToken) -> bool:
        if token.is_cancelled():
            return True
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds
        return False


class RecordingHandler:
    """MockTransport handler that records requests and delegates to ``respond``."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self._respond = respond
        self.requests: List[httpx.Request] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        return self._respond(request)


@pytest.fixture
def clock_factory() -> Callable[[], FakeClock]:
    """Return the :class:`FakeClock` class for tests needing several clocks."""
    return FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_fetcher(fake_clock: FakeClock) -> Generator[Callable[..., PageFetcher], None, None]:
    """
    Build fetchers wired to a mock handler.

    Example:
        def test_ok(make_fetcher):
            fetcher = make_fetcher(lambda request: httpx.Response(200))
            assert fetcher.fetch("http://example.com/").status_code == 200
    """
    built: List[PageFetcher] = []

    def _factory(handler: Callable[[httpx.Request], httpx.Response], **overrides: Any) -> PageFetcher:
        overrides.setdefault("politeness_delay", 0.0)
        fetcher = PageFetcher(
            FetchSettings(**overrides),
            transport=httpx.MockTransport(handler),
            clock=fake_clock,
            sleeper=fake_clock.sleep,
            start_reaper=False,
        )
        built.append(fetcher)
        return fetcher

    yield _factory

    for fetcher in built:
        fetcher.shutdown()
