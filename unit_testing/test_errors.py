import pytest
import json
import os
import sys
from unittest.mock import patch

import httpx
from pydantic import ValidationError

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from servers.bitbucket_gateway.errors import (
    AuthenticationError,
    RateLimitError,
    TransportError,
    UpstreamApiError,
    classify,
    error_from_response,
    extract_error_message,
    parse_retry_after,
    redact,
)
from servers.bitbucket_gateway.models import CommitStatusInput

TEST_APP_PASSWORD = "super-secret-app-password"
TEST_REQUEST = httpx.Request("GET", "https://api.bitbucket.org/2.0/user")

def make_response(status_code, **kwargs):
    return httpx.Response(status_code, request=TEST_REQUEST, **kwargs)

def envelope(result):
    assert result.isError is True
    return json.loads(result.content[0].text)

# === Retry-After parsing ===

@pytest.mark.parametrize("value, expected", [
    ("30", 30),
    (" 5 ", 5),
    ("0", 0),
    (None, 60),
    ("soon", 60),
    ("-3", 60),
    ("Wed, 21 Oct 2015 07:28:00 GMT", 60),
])
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected

# === Response classification ===

def test_rate_limited_with_retry_after_header():
    error = error_from_response(make_response(429, headers={"Retry-After": "30"}))
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 30
    assert error.retryable is True

def test_rate_limited_without_header_defaults_to_sixty():
    error = error_from_response(make_response(429))
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 60

@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failures(status_code):
    error = error_from_response(make_response(status_code, text="denied"))
    assert isinstance(error, AuthenticationError)
    assert error.message == "Authentication failed. Check your Bitbucket credentials."
    assert error.retryable is False

def test_upstream_error_uses_bitbucket_message():
    body = {"type": "error", "error": {"message": "Repository not found"}}
    error = error_from_response(make_response(404, json=body))
    assert isinstance(error, UpstreamApiError)
    assert error.message == "Repository not found"
    assert error.status_code == 404
    assert error.retryable is False

def test_upstream_error_without_body():
    error = error_from_response(make_response(502))
    assert error.message == "API error: 502"
    assert error.retryable is True

@pytest.mark.parametrize("body, expected", [
    ('{"error": {"message": "nested"}}', "nested"),
    ('{"message": "top level"}', "top level"),
    ('{"error": "plain"}', "plain"),
    ('{"error": {"detail": "x"}}', "fallback"),
    ('["not", "an", "object"]', "fallback"),
    ("<html>Bad Gateway</html>", "fallback"),
    ("", "fallback"),
])
def test_extract_error_message(body, expected):
    assert extract_error_message(body, "fallback") == expected

# === Error envelopes ===

def test_classify_rate_limit_envelope():
    data = envelope(classify(RateLimitError("Rate limit exceeded", retry_after=30)))
    assert data["kind"] == "rate_limited"
    assert data["details"] == {"retry_after": 30}
    assert data["error"] == "Error: Rate limit exceeded (retryable)"

def test_classify_auth_error_does_not_leak_credentials():
    error = AuthenticationError(f"bad credentials {TEST_APP_PASSWORD}")
    result = classify(error, [TEST_APP_PASSWORD])
    text = result.content[0].text
    assert TEST_APP_PASSWORD not in text
    assert envelope(result)["kind"] == "authentication_error"

def test_classify_upstream_error_details():
    data = envelope(classify(UpstreamApiError("Not found", 404)))
    assert data == {"error": "Error: Not found", "kind": "upstream_error", "details": {"status_code": 404}}

def test_classify_httpx_status_error():
    response = make_response(429, headers={"Retry-After": "12"})
    error = httpx.HTTPStatusError("429", request=TEST_REQUEST, response=response)
    data = envelope(classify(error))
    assert data["kind"] == "rate_limited"
    assert data["details"]["retry_after"] == 12

def test_classify_transport_error():
    data = envelope(classify(httpx.ConnectError("connection refused", request=TEST_REQUEST)))
    assert data["kind"] == "transport_error"
    assert "connection refused" in data["error"]
    assert data["error"].endswith("(retryable)")

def test_classify_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        CommitStatusInput(state="DONE", key="build", url="https://ci.example.com")
    data = envelope(classify(exc_info.value))
    assert data["kind"] == "invalid_arguments"
    assert data["details"]["errors"][0]["field"] == "state"

def test_classify_unexpected_error_is_logged_and_redacted():
    with patch("servers.bitbucket_gateway.errors.logger") as mock_logger:
        data = envelope(classify(RuntimeError(f"boom {TEST_APP_PASSWORD}"), [TEST_APP_PASSWORD]))
    assert data["kind"] == "internal_error"
    assert TEST_APP_PASSWORD not in data["error"]
    mock_logger.error.assert_called_once()

def test_classify_never_logs_secrets():
    with patch("servers.bitbucket_gateway.errors.logger") as mock_logger:
        classify(TransportError(f"proxy rejected {TEST_APP_PASSWORD}"), [TEST_APP_PASSWORD])
    logged = mock_logger.warning.call_args[0][0]
    assert TEST_APP_PASSWORD not in logged

def test_redact():
    assert redact("token abc in message", ["abc", "", None]) == "token *** in message"
