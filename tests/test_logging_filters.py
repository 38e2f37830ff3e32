"""Tests for sensitive data filtering and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


@pytest.fixture
def capture() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_client_addresses_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.exceeded",
        extra={
            "client_ip": "203.0.113.7",
            "rate_limit_key": "auth_limit:203.0.113.7",
            "policy": "auth",
        },
    )

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert "[REDACTED]" in output
    assert '"policy": "auth"' in output


def test_nested_forwarding_headers_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "request",
        extra={
            "headers": {
                "X-Forwarded-For": "198.51.100.4",
                "Cookie": "session=abc",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()
    assert "198.51.100.4" not in output
    assert "session=abc" not in output
    assert "pytest" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.allowed",
        extra={"limit": 100, "remaining": 42, "key_hash": hash_identifier("rate_limit:1.2.3.4")},
    )

    record = json.loads(stream.getvalue())
    assert record["limit"] == 100
    assert record["remaining"] == 42
    assert len(record["key_hash"]) == 16
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context_is_attached(capture):
    logger, stream = capture
    set_request_id("req-abc")
    try:
        logger.info("event")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-abc"


def test_hash_identifier_is_stable_and_opaque():
    assert hash_identifier("203.0.113.7") == hash_identifier("203.0.113.7")
    assert hash_identifier("203.0.113.7") != hash_identifier("203.0.113.8")
    assert hash_identifier("203.0.113.7") != "203.0.113.7"
