# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.results",
#   "purpose": "Fetch outcome record and the streamed response entity it carries",
#   "sections": [
#     {"id": "responseentity", "name": "ResponseEntity", "anchor": "class-responseentity", "kind": "class"},
#     {"id": "fetchresult", "name": "FetchResult", "anchor": "class-fetchresult", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Fetch outcome types.

:class:`FetchResult` is created per call and owned by the caller. When it
carries a :class:`ResponseEntity` the underlying connection stays checked out
until the entity is read to the end or discarded, so callers either consume
``fetch_content()`` or use the result as a context manager::

    with fetcher.fetch("http://example.com/") as result:
        if result.fetched_url:
            body = result.fetch_content()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import httpx

from .errors import PageTooLargeError

HeaderPairs = Tuple[Tuple[str, str], ...]


class ResponseEntity:
    """Streamed response body with a byte ceiling enforced while reading."""

    def __init__(self, response: httpx.Response, *, max_bytes: int) -> None:
        self._response = response
        self.max_bytes = max_bytes
        self._content: Optional[bytes] = None
        self._lock = threading.Lock()

    @property
    def url(self) -> str:
        return str(self._response.request.url)

    @property
    def content_length(self) -> Optional[int]:
        """Declared ``Content-Length``, or ``None`` when absent or unparseable."""
        raw = self._response.headers.get("content-length")
        if raw is None:
            return None
        try:
            value = int(raw.strip())
        except ValueError:
            return None
        return value if value >= 0 else None

    @property
    def content_type(self) -> Optional[str]:
        return self._response.headers.get("content-type")

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield decoded body chunks; the ceiling is not applied here."""
        yield from self._response.iter_bytes()

    def read(self, max_bytes: Optional[int] = None) -> bytes:
        """Read the whole body, failing once it grows past ``max_bytes``.

        Args:
            max_bytes: Byte ceiling; defaults to the fetcher's
                ``max_download_size``.

        Returns:
            The body. Repeated calls return the cached bytes.

        Raises:
            PageTooLargeError: When the observed size exceeds the ceiling. The
                response is closed before raising.
        """
        limit = self.max_bytes if max_bytes is None else max_bytes
        with self._lock:
            if self._content is not None:
                if len(self._content) > limit:
                    raise PageTooLargeError(len(self._content), limit=limit, url=self.url)
                return self._content
            chunks = []
            total = 0
            try:
                for chunk in self._response.iter_bytes():
                    total += len(chunk)
                    if total > limit:
                        raise PageTooLargeError(total, limit=limit, url=self.url)
                    chunks.append(chunk)
            finally:
                self._response.close()
            self._content = b"".join(chunks)
            return self._content

    def close(self) -> None:
        """Abort the response; unread body bytes are dropped."""
        self._response.close()


@dataclass
class FetchResult:
    """Classified outcome of one fetch.

    Attributes:
        status_code: HTTP status of the response.
        fetched_url: Final URL on a 200 response, ``None`` otherwise.
        moved_to_url: Canonical redirect destination for 3xx responses whose
            ``Location`` could be resolved, ``None`` otherwise.
        response_headers: Header pairs in wire order, duplicates kept.
        entity: Streamed body; never set for redirects.
    """

    status_code: int
    fetched_url: Optional[str] = None
    moved_to_url: Optional[str] = None
    response_headers: HeaderPairs = ()
    entity: Optional[ResponseEntity] = None

    def __post_init__(self) -> None:
        if self.fetched_url is not None and self.moved_to_url is not None:
            raise ValueError("FetchResult cannot carry both fetched_url and moved_to_url")

    @property
    def is_redirect(self) -> bool:
        return self.moved_to_url is not None

    def header(self, name: str) -> Optional[str]:
        """First value of header ``name`` (case-insensitive), if present."""
        wanted = name.lower()
        for key, value in self.response_headers:
            if key.lower() == wanted:
                return value
        return None

    def fetch_content(self, max_bytes: Optional[int] = None) -> bytes:
        if self.entity is None:
            return b""
        return self.entity.read(max_bytes)

    def discard(self) -> None:
        """Release the entity without reading it; safe to call repeatedly."""
        if self.entity is not None:
            self.entity.close()

    def __enter__(self) -> "FetchResult":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()


__all__ = ["FetchResult", "HeaderPairs", "ResponseEntity"]
