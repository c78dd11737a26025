"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from CrawlKit.PageFetch.logging_config import (
    ROOT_LOGGER_NAME,
    JSONFormatter,
    mask_sensitive_data,
    setup_logging,
)
from CrawlKit.PageFetch.settings import LoggingSettings


def test_mask_sensitive_data_recurses() -> None:
    masked = mask_sensitive_data(
        {
            "password": "hunter2",
            "proxy": {"host": "p", "password": "x"},
            "auth_credentials": [{"username": "u", "password": "y"}],
            "status": 200,
        }
    )

    assert masked["password"] == "***masked***"
    assert masked["proxy"] == {"host": "p", "password": "***masked***"}
    assert masked["auth_credentials"] == [{"username": "u", "password": "***masked***"}]
    assert masked["status"] == 200


def test_json_formatter_emits_extra_fields_masked() -> None:
    record = logging.makeLogRecord(
        {
            "name": "CrawlKit.PageFetch.fetcher",
            "levelname": "INFO",
            "msg": "Fetched %s",
            "args": ("page",),
            "url": "http://example.com/",
            "authorization": "Basic abc",
        }
    )

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Fetched page"
    assert payload["url"] == "http://example.com/"
    assert payload["authorization"] == "***masked***"
    assert payload["logger"] == "CrawlKit.PageFetch.fetcher"


def test_setup_logging_writes_json_lines(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "fetch.jsonl"
    logger = setup_logging(LoggingSettings(level="DEBUG", json_path=str(log_path)))
    try:
        logging.getLogger(f"{ROOT_LOGGER_NAME}.test").info("hello", extra={"status": 204})
        for handler in logger.handlers:
            handler.flush()

        lines = log_path.read_text(encoding="utf-8").splitlines()
        entry = json.loads(lines[-1])
        assert entry["message"] == "hello"
        assert entry["status"] == 204
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            if getattr(handler, "_crawlkit_managed", False):
                logger.removeHandler(handler)
                handler.close()
        logger.setLevel(logging.NOTSET)


def test_setup_logging_replaces_its_own_handlers() -> None:
    settings = LoggingSettings(level="INFO")
    logger = setup_logging(settings)
    try:
        setup_logging(settings)
        managed = [h for h in logger.handlers if getattr(h, "_crawlkit_managed", False)]
        assert len(managed) == 1
    finally:
        for handler in list(logger.handlers):
            if getattr(handler, "_crawlkit_managed", False):
                logger.removeHandler(handler)
                handler.close()
        logger.setLevel(logging.NOTSET)
