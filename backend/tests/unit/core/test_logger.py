"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from authcore.core.logger import JSONFormatter, configure_logging, ensure_request_id


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "authcore.test", logging.WARNING, __file__, 1, "hello %s", ("x",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    root = logging.getLogger()
    previous = root.level
    try:
        configure_logging("DEBUG")
        assert root.level == logging.DEBUG
    finally:
        configure_logging(logging.getLevelName(previous))


def test_json_formatter_copies_structured_fields() -> None:
    record = _record(event="auth.replay_detected", principal="user:1", session_id="s1", secret="x")

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "hello x"
    assert payload["level"] == "WARNING"
    assert payload["event"] == "auth.replay_detected"
    assert payload["principal"] == "user:1"
    assert payload["session_id"] == "s1"
    assert "secret" not in payload


def test_request_id_follows_header(app) -> None:
    with app.test_request_context(headers={"X-Request-ID": "abc-123"}):
        assert ensure_request_id() == "abc-123"
        assert ensure_request_id() == "abc-123"


def test_request_id_outside_request_is_fresh() -> None:
    assert ensure_request_id() != ensure_request_id()
