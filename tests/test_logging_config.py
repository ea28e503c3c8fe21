from __future__ import annotations

import json
import logging

from logging_config import JSONFormatter, RedactingFilter, redact


def test_redact_query_string() -> None:
    text = "GET /callback?code=AQBx9&state=abc123"
    assert redact(text) == "GET /callback?code=***&state=***"


def test_redact_state() -> None:
    text = "Visit: https://p/x?client_id=a&state=SECRETSTATE123&scope=x"
    assert redact(text) == "Visit: https://p/x?client_id=a&state=***&scope=x"
    assert redact('{"state": "abc"}') == '{"state": "***"}'


def test_redact_json_and_reprs() -> None:
    assert redact('{"access_token": "EAAB123", "expires_in": 3600}') == '{"access_token": "***", "expires_in": 3600}'
    assert redact("client_secret=s3cret refresh_token: r-1") == "client_secret=*** refresh_token: ***"


def test_redact_leaves_other_text_alone() -> None:
    text = "Authorization started, redirect_uri=http://localhost:5000/callback"
    assert redact(text) == text


def make_record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("slump", logging.INFO, __file__, 1, msg, args, None)


def test_filter_rewrites_formatted_message() -> None:
    record = make_record("exchanging %s", "code=abc")
    assert RedactingFilter().filter(record) is True
    assert record.getMessage() == "exchanging code=***"


def test_json_formatter_extracts_tag() -> None:
    entry = json.loads(JSONFormatter().format(make_record("[STREAM] idle -> connecting")))

    assert entry["app"] == "slump"
    assert entry["tag"] == "STREAM"
    assert entry["message"] == "idle -> connecting"
    assert entry["level"] == "INFO"
