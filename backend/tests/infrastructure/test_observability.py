"""Observability tests — JSON log formatting and idempotent setup."""

import json
import logging
import sys

from gateway.infrastructure.observability import JSONFormatter, setup_logging


def _record(msg="hello", exc_info=None, **extra):
    record = logging.LogRecord(
        "gateway.test", logging.WARNING, __file__, 1, msg, None, exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_core_fields():
    out = json.loads(JSONFormatter().format(_record()))
    assert out["level"] == "WARNING"
    assert out["logger"] == "gateway.test"
    assert out["message"] == "hello"
    assert "timestamp" in out


def test_json_formatter_surfaces_request_fields():
    out = json.loads(JSONFormatter().format(
        _record(method="GET", path="/api/v1", status_code=429, error_kind="RateLimited"),
    ))
    assert out["method"] == "GET"
    assert out["path"] == "/api/v1"
    assert out["status_code"] == 429
    assert out["error_kind"] == "RateLimited"
    assert "client_key" not in out


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        out = json.loads(JSONFormatter().format(_record(exc_info=sys.exc_info())))
    assert "RuntimeError: boom" in out["exception"]


def test_setup_logging_does_not_stack_handlers():
    before = len(logging.root.handlers)
    first = setup_logging("DEBUG", "json")
    second = setup_logging("INFO", "text")
    try:
        assert first not in logging.root.handlers
        assert second in logging.root.handlers
        assert len(logging.root.handlers) == before + 1
        assert logging.root.level == logging.INFO
    finally:
        logging.root.removeHandler(second)
