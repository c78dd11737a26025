"""Tests for :class:`FetchResult` and :class:`ResponseEntity`."""

from __future__ import annotations

import httpx
import pytest

from CrawlKit.PageFetch.errors import PageTooLargeError
from CrawlKit.PageFetch.results import FetchResult, ResponseEntity


def _entity(content, *, max_bytes: int = 1024, headers=None) -> ResponseEntity:
    response = httpx.Response(
        200,
        content=content,
        headers=headers,
        request=httpx.Request("GET", "http://example.com/page"),
    )
    return ResponseEntity(response, max_bytes=max_bytes)


def test_result_rejects_both_urls() -> None:
    with pytest.raises(ValueError):
        FetchResult(
            status_code=200,
            fetched_url="http://example.com/a",
            moved_to_url="http://example.com/b",
        )


def test_header_lookup_is_case_insensitive_and_first_wins() -> None:
    result = FetchResult(
        status_code=200,
        response_headers=(("Set-Cookie", "a=1"), ("set-cookie", "b=2")),
    )

    assert result.header("SET-COOKIE") == "a=1"
    assert result.header("missing") is None


def test_result_without_entity_has_empty_content() -> None:
    result = FetchResult(status_code=301, moved_to_url="http://example.com/b")

    assert result.is_redirect
    assert result.fetch_content() == b""
    result.discard()


def test_entity_reports_declared_length_and_type() -> None:
    entity = _entity(b"hello", headers={"Content-Type": "text/plain"})

    assert entity.content_length == 5
    assert entity.content_type == "text/plain"
    assert entity.url == "http://example.com/page"


@pytest.mark.parametrize("raw", ["abc", "-1", ""])
def test_unparseable_content_length_is_unknown(raw: str) -> None:
    entity = _entity(iter([b"x"]), headers={"Content-Length": raw})

    assert entity.content_length is None


def test_read_is_cached() -> None:
    entity = _entity(iter([b"ab", b"cd"]))

    assert entity.read() == b"abcd"
    assert entity.read() == b"abcd"
    assert entity.closed


def test_read_enforces_ceiling_on_observed_bytes() -> None:
    entity = _entity(iter([b"aaaa", b"bbbb"]), max_bytes=6)

    with pytest.raises(PageTooLargeError) as excinfo:
        entity.read()

    assert excinfo.value.size == 8
    assert excinfo.value.limit == 6
    assert entity.closed


def test_explicit_ceiling_overrides_default() -> None:
    entity = _entity(iter([b"abcdef"]), max_bytes=1024)

    with pytest.raises(PageTooLargeError):
        entity.read(max_bytes=3)


def test_discard_is_idempotent() -> None:
    result = FetchResult(status_code=200, entity=_entity(iter([b"x"])))

    result.discard()
    result.discard()

    assert result.entity is not None and result.entity.closed
