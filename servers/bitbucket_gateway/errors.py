import json
import logging
from typing import Optional, Dict, Any, Iterable

import httpx
from mcp.types import CallToolResult, TextContent
from pydantic import ValidationError

logger = logging.getLogger("bitbucket-gateway-mcp.errors")

DEFAULT_RETRY_AFTER = 60


class BitbucketError(Exception):
    """Base exception for failures talking to the Bitbucket API."""
    kind = "error"

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable

    def details(self) -> Dict[str, Any]:
        return {}


class AuthenticationError(BitbucketError):
    """Missing, invalid or insufficient credentials."""
    kind = "authentication_error"


class RateLimitError(BitbucketError):
    """Bitbucket answered 429. Not retried here, the caller decides."""
    kind = "rate_limited"

    def __init__(self, message: str, retry_after: int = DEFAULT_RETRY_AFTER):
        super().__init__(message, retryable=True)
        self.retry_after = retry_after

    def details(self) -> Dict[str, Any]:
        return {"retry_after": self.retry_after}


class UpstreamApiError(BitbucketError):
    """Any other non-2xx response."""
    kind = "upstream_error"

    def __init__(self, message: str, status_code: int):
        super().__init__(message, retryable=status_code >= 500)
        self.status_code = status_code

    def details(self) -> Dict[str, Any]:
        return {"status_code": self.status_code}


class TransportError(BitbucketError):
    """The request never produced an HTTP response."""
    kind = "transport_error"

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


def parse_retry_after(value: Optional[str], default: int = DEFAULT_RETRY_AFTER) -> int:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return default
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


def extract_error_message(body: str, default: str) -> str:
    """Pull a message out of a Bitbucket error body, e.g. {"type": "error", "error": {"message": ...}}."""
    try:
        error_data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return default

    if not isinstance(error_data, dict):
        return default

    error = error_data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
        return error["message"]
    if isinstance(error_data.get("message"), str) and error_data["message"]:
        return error_data["message"]
    if isinstance(error, str) and error:
        return error
    return default


def error_from_response(response: httpx.Response) -> BitbucketError:
    """Map a non-2xx response onto the error taxonomy."""
    status = response.status_code

    if status == 429:
        return RateLimitError(
            "Rate limit exceeded",
            retry_after=parse_retry_after(response.headers.get("Retry-After"))
        )

    if status in (401, 403):
        return AuthenticationError("Authentication failed. Check your Bitbucket credentials.")

    return UpstreamApiError(extract_error_message(response.text, f"API error: {status}"), status)


def redact(message: str, secrets: Iterable[str] = ()) -> str:
    for secret in secrets:
        if secret:
            message = message.replace(secret, "***")
    return message


def error_response(message: str, kind: str, details: Optional[Dict[str, Any]] = None) -> CallToolResult:
    payload = {"error": message, "kind": kind, "details": details or {}}
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(payload, indent=2))],
        isError=True
    )


def classify(error: BaseException, secrets: Iterable[str] = ()) -> CallToolResult:
    """
    Convert any exception raised while serving a tool call into an error envelope.

    Args:
        error: The exception caught at the tool boundary
        secrets: Credential values that must not leak into the message

    Returns:
        A CallToolResult with isError set and a JSON body carrying error, kind and details.
    """
    if isinstance(error, httpx.HTTPStatusError):
        error = error_from_response(error.response)
    elif isinstance(error, httpx.RequestError):
        error = TransportError(str(error) or type(error).__name__)

    if isinstance(error, BitbucketError):
        message = f"Error: {error.message}"
        if error.retryable:
            message += " (retryable)"
        logger.warning(f"Tool call failed ({error.kind}): {redact(error.message, secrets)}")
        return error_response(redact(message, secrets), error.kind, error.details())

    if isinstance(error, ValidationError):
        errors = [
            {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
            for item in error.errors()
        ]
        return error_response("Error: Invalid arguments", "invalid_arguments", {"errors": errors})

    logger.error(f"Unexpected error in tool call: {type(error).__name__}", exc_info=error)
    return error_response(redact(f"Error: {error}", secrets), "internal_error")
