# === NAVMAP v1 ===
# {
#   "module": "tests.page_fetch.test_auth",
#   "purpose": "Basic and form login behaviour against mock transports",
#   "sections": [
#     {"id": "basic", "name": "Basic Credentials", "anchor": "BAS", "kind": "tests"},
#     {"id": "form", "name": "Form Login", "anchor": "FRM", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Authentication tests: scoped basic credentials and one-shot form logins."""

from __future__ import annotations

import base64
import logging
from typing import List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from pydantic import TypeAdapter, ValidationError

from CrawlKit.PageFetch.auth import (
    AuthCredential,
    Authenticator,
    BasicCredential,
    FormCredential,
    LoginSession,
)


def _basic(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


class _AuthRecorder:
    """Handler recording the Authorization header of every request."""

    def __init__(self) -> None:
        self.seen: List[tuple[str, Optional[str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append((request.url.host, request.headers.get("Authorization")))
        return httpx.Response(200, content=b"ok")


# ============================================================================
# Basic Credentials
# ============================================================================


def test_basic_credentials_only_reach_their_scope(make_fetcher) -> None:
    recorder = _AuthRecorder()
    fetcher = make_fetcher(
        recorder,
        auth_credentials=[
            BasicCredential(host="secure.example.com", username="alice", password="s3cret")
        ],
    )

    fetcher.fetch("http://secure.example.com/private").discard()
    fetcher.fetch("http://public.example.com/").discard()
    fetcher.fetch("http://secure.example.com:8080/other-port").discard()

    assert recorder.seen == [
        ("secure.example.com", _basic("alice", "s3cret")),
        ("public.example.com", None),
        ("secure.example.com", None),
    ]


def test_later_basic_credentials_overwrite_same_scope(make_fetcher) -> None:
    recorder = _AuthRecorder()
    fetcher = make_fetcher(
        recorder,
        auth_credentials=[
            BasicCredential(host="example.com", username="old", password="one"),
            BasicCredential(host="example.com", username="new", password="two"),
        ],
    )

    fetcher.fetch("http://example.com/").discard()

    assert recorder.seen == [("example.com", _basic("new", "two"))]
    assert fetcher.credentials.scopes() == (("example.com", 80),)


def test_basic_credentials_keep_client_and_pool(make_fetcher) -> None:
    """Registering credentials after construction leaves the pooled client intact."""
    recorder = _AuthRecorder()
    fetcher = make_fetcher(recorder)
    client = fetcher.client
    mounts = fetcher.pool.mounts
    limits = fetcher.pool.limits

    applied = Authenticator(LoginSession(fetcher.client, fetcher.credentials)).apply(
        [BasicCredential.from_url("https://example.com/login", "bob", "pw")]
    )

    assert applied == 1
    assert fetcher.client is client
    assert fetcher.pool.limits is limits
    for pattern, transport in fetcher.pool.mounts.items():
        assert transport is mounts[pattern]

    fetcher.fetch("https://example.com/").discard()
    assert recorder.seen == [("example.com", _basic("bob", "pw"))]


def test_explicit_authorization_header_is_not_replaced(make_fetcher) -> None:
    recorder = _AuthRecorder()
    fetcher = make_fetcher(
        recorder,
        default_headers={"Authorization": "Bearer token"},
        auth_credentials=[BasicCredential(host="example.com", username="u", password="p")],
    )

    fetcher.fetch("http://example.com/").discard()

    assert recorder.seen == [("example.com", "Bearer token")]


def test_basic_credential_defaults_and_repr() -> None:
    credential = BasicCredential(host="Example.COM", protocol="https", username="u", password="p")

    assert credential.host == "example.com"
    assert credential.effective_port == 443
    assert credential.login_target == "https://example.com:443/"
    assert "password" not in repr(credential)


# ============================================================================
# Form Login
# ============================================================================


def test_form_login_posts_once_and_replays_cookie(make_fetcher) -> None:
    posts: List[dict] = []
    cookies: List[Optional[str]] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            posts.append(parse_qs(request.content.decode()))
            return httpx.Response(200, headers={"Set-Cookie": "session=abc123; Path=/"})
        cookies.append(request.headers.get("Cookie"))
        return httpx.Response(200, content=b"members only")

    fetcher = make_fetcher(
        _handler,
        auth_credentials=[
            FormCredential(
                host="example.com",
                login_path="login",
                username="alice",
                password="s3cret",
                username_field="user",
                password_field="pass",
            )
        ],
    )

    assert posts == [{"user": ["alice"], "pass": ["s3cret"]}]

    fetcher.fetch("http://example.com/members").discard()
    fetcher.fetch("http://example.com/members/2").discard()

    assert cookies == ["session=abc123", "session=abc123"]


def test_form_login_target_is_built_from_parts() -> None:
    credential = FormCredential.from_url(
        "https://example.com:8443/account/login",
        "alice",
        "pw",
        username_field="u",
        password_field="p",
    )

    assert credential.login_target == "https://example.com:8443/account/login"


def test_form_login_failure_is_logged_not_raised(make_fetcher, caplog) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    with caplog.at_level(logging.ERROR, logger="CrawlKit.PageFetch.auth"):
        fetcher = make_fetcher(
            _handler,
            auth_credentials=[
                FormCredential(
                    host="example.com",
                    username="alice",
                    password="pw",
                    username_field="user",
                    password_field="pass",
                )
            ],
        )

    assert "While trying to login to: example.com - Error making request" in caplog.text
    with fetcher.fetch("http://example.com/") as result:
        assert result.status_code == 200


def test_form_login_protocol_error_is_logged(make_fetcher, caplog) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("garbage", request=request)

    with caplog.at_level(logging.ERROR, logger="CrawlKit.PageFetch.auth"):
        make_fetcher(
            _handler,
            auth_credentials=[
                FormCredential(
                    host="example.com",
                    username="alice",
                    password="pw",
                    username_field="user",
                    password_field="pass",
                )
            ],
        )

    assert "Client protocol not supported" in caplog.text


def test_form_login_invalid_url_is_logged_not_raised(make_fetcher, caplog) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            raise httpx.InvalidURL("Invalid host")
        return httpx.Response(200)

    with caplog.at_level(logging.ERROR, logger="CrawlKit.PageFetch.auth"):
        fetcher = make_fetcher(
            _handler,
            auth_credentials=[
                FormCredential(
                    host="example.com",
                    username="alice",
                    password="pw",
                    username_field="user",
                    password_field="pass",
                )
            ],
        )

    assert "Malformed login URL for: example.com" in caplog.text
    with fetcher.fetch("http://example.com/") as result:
        assert result.status_code == 200


# ============================================================================
# Configuration
# ============================================================================


def test_credentials_parse_as_tagged_union() -> None:
    adapter = TypeAdapter(List[AuthCredential])

    parsed = adapter.validate_python(
        [
            {"kind": "basic", "host": "a.example.com", "username": "u", "password": "p"},
            {
                "kind": "form",
                "protocol": "https",
                "host": "b.example.com",
                "login_path": "/signin",
                "username": "u",
                "password": "p",
                "username_field": "login",
                "password_field": "secret",
            },
        ]
    )

    assert isinstance(parsed[0], BasicCredential)
    assert isinstance(parsed[1], FormCredential)
    assert parsed[1].login_target == "https://b.example.com:443/signin"


def test_unknown_credential_kind_is_rejected() -> None:
    with pytest.raises(ValidationError):
        TypeAdapter(List[AuthCredential]).validate_python(
            [{"kind": "oauth", "host": "x", "username": "u", "password": "p"}]
        )
