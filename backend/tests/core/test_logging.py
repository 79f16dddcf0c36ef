"""Tests for log redaction."""

import pytest

from app.core.logging import redact_secrets

pytestmark = pytest.mark.unit


def test_secret_keys_are_redacted():
    event = {"event": "backlog_issue_failed", "api_key": "abc", "token": "t", "payload": {"email": "x"}, "code": "http_error"}

    result = redact_secrets(None, "info", event)

    assert result["api_key"] == "[redacted]"
    assert result["token"] == "[redacted]"
    assert result["payload"] == "[redacted]"
    assert result["code"] == "http_error"
    assert result["event"] == "backlog_issue_failed"


def test_key_match_ignores_case():
    result = redact_secrets(None, "info", {"event": "x", "ApiKey": "abc"})

    assert result["ApiKey"] == "[redacted]"


def test_api_key_query_values_are_scrubbed_from_strings():
    event = {
        "event": "request_failed",
        "exception": "ConnectError: https://acme.backlog.com/api/v2/projects?apiKey=SECRET123&count=1",
        "status": 0,
    }

    result = redact_secrets(None, "error", event)

    assert "SECRET123" not in result["exception"]
    assert result["exception"].endswith("?apiKey=[redacted]&count=1")
    assert result["status"] == 0
