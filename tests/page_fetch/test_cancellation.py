"""Tests for cancellation tokens and the token group used by shutdown."""

from __future__ import annotations

from CrawlKit.PageFetch.cancellation import CancellationToken, CancellationTokenGroup


def test_token_wait_reports_cancellation() -> None:
    token = CancellationToken()

    assert token.wait(0) is False
    token.cancel()

    assert token.is_cancelled()
    assert token.wait(10.0) is True


def test_cancel_all_reaches_registered_tokens() -> None:
    group = CancellationTokenGroup()
    kept = CancellationToken()
    removed = CancellationToken()
    group.add_token(kept)
    group.add_token(removed)
    group.remove_token(removed)

    group.cancel_all()

    assert kept.is_cancelled()
    assert not removed.is_cancelled()


def test_tokens_added_after_cancel_all_are_cancelled() -> None:
    group = CancellationTokenGroup()
    group.cancel_all()

    late = CancellationToken()
    group.add_token(late)

    assert late.is_cancelled()


def test_removing_unknown_token_is_ignored() -> None:
    group = CancellationTokenGroup()

    group.remove_token(CancellationToken())
