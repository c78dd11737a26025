"""CLI tests using Typer's runner with a mock transport behind the fetcher."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from CrawlKit.PageFetch import cli
from CrawlKit.PageFetch.fetcher import PageFetcher

runner = CliRunner()


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/moved":
        return httpx.Response(301, headers={"Location": "/new-home"})
    if request.url.path == "/down":
        raise httpx.ConnectError("refused", request=request)
    return httpx.Response(200, content=b"hello", headers={"X-Served-By": "mock"})


@pytest.fixture(autouse=True)
def _mock_fetcher(monkeypatch) -> None:
    monkeypatch.setattr(
        cli,
        "PageFetcher",
        lambda settings: PageFetcher(
            settings, transport=httpx.MockTransport(_handler), start_reaper=False
        ),
    )
    monkeypatch.setattr(cli, "setup_logging", lambda config: None)


def test_fetch_reports_each_url() -> None:
    result = runner.invoke(
        cli.app, ["fetch", "http://example.com/page", "http://example.com/moved", "--delay", "0"]
    )

    assert result.exit_code == 0, result.output
    assert "200" in result.output
    assert "301" in result.output


def test_fetch_prints_headers_on_request() -> None:
    result = runner.invoke(cli.app, ["fetch", "http://example.com/page", "--delay", "0", "--headers"])

    assert result.exit_code == 0, result.output
    assert "mock" in result.output


def test_fetch_failure_sets_exit_code() -> None:
    result = runner.invoke(
        cli.app, ["fetch", "http://example.com/page", "http://example.com/down", "--delay", "0"]
    )

    assert result.exit_code == 1
    assert "1 of 2 fetches failed" in result.output


def test_fetch_with_bad_config_exits_cleanly(tmp_path: Path) -> None:
    path = tmp_path / "fetch.yaml"
    path.write_text("politeness_delay: -5\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["fetch", "http://example.com/", "--config", str(path)])

    assert result.exit_code == 1


def test_show_config_masks_secrets(tmp_path: Path) -> None:
    path = tmp_path / "fetch.yaml"
    path.write_text(
        "proxy:\n"
        "  host: proxy.internal\n"
        "  username: crawler\n"
        "  password: topsecret\n",
        encoding="utf-8",
    )

    result = runner.invoke(cli.app, ["show-config", "--config", str(path), "--raw"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["proxy"]["host"] == "proxy.internal"
    assert data["proxy"]["password"] == "***masked***"
    assert "topsecret" not in result.output
