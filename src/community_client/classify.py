"""Turn HTTP responses and transport failures into typed results."""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from community_client.exceptions import (
    ApiError,
    HttpError,
    MalformedResponseError,
    NetworkError,
    RateLimitedError,
)

EMPTY_RESULT: dict[str, Any] = {"data": [], "count": 0}

NETWORK_ERROR_MESSAGE = "Network error: Unable to connect to server. Please check if the backend is running."

# Server-provided message fields, most specific first
MESSAGE_FIELDS = ("detail", "error", "message")

_SECONDS_RE = re.compile(r"(\d+)\s+seconds?")


def error_message(data: Any, status: int) -> str:
    """Pick the message for an error body: detail, then error, then message."""
    if isinstance(data, dict):
        for field in MESSAGE_FIELDS:
            value = data.get(field)
            if value:
                return value if isinstance(value, str) else json.dumps(value, default=str)
    return f"Request failed with status {status}"


def parse_body(response: httpx.Response) -> Any:
    """Parse a 2xx body.

    Returns ``None`` for 204, the empty result structure for a blank body, and
    the decoded JSON otherwise.

    Raises:
        MalformedResponseError: If the body is not valid JSON.
    """
    if response.status_code == 204:
        return None

    text = response.text
    if not text or not text.strip():
        return dict(EMPTY_RESULT, data=[])

    try:
        return json.loads(text)
    except ValueError:
        raise MalformedResponseError(
            "Invalid JSON response from server", {"text": text}, response.status_code
        )


def classify_response(response: httpx.Response, default_retry_after: int = 60) -> ApiError:
    """Build the error for a non-2xx response."""
    status = response.status_code
    text = response.text
    data: Any = {}
    if text and text.strip():
        try:
            data = json.loads(text)
        except ValueError:
            data = {"message": f"HTTP {status}: {response.reason_phrase}".rstrip(": ")}

    if status == 429:
        return RateLimitedError(retry_after_seconds(response, data, default_retry_after))

    return HttpError(error_message(data, status), data, status)


def classify_transport_error(error: Exception) -> ApiError:
    """Map an exception raised while sending to a status-0 error."""
    if isinstance(error, ApiError):
        return error
    if isinstance(error, httpx.RequestError):
        return NetworkError(NETWORK_ERROR_MESSAGE)
    return ApiError(str(error) or "An unexpected error occurred", {"originalError": repr(error)}, 0)


def retry_after_seconds(response: httpx.Response, data: Any, default: int = 60) -> int:
    """Throttle window for a 429: Retry-After header, body retry_after, or message text."""
    header = response.headers.get("Retry-After")
    if header and header.strip().isdigit():
        return int(header.strip())

    if isinstance(data, dict):
        value = data.get("retry_after")
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                pass
        message = data.get("message") or data.get("detail")
        if isinstance(message, str) and "available in" in message.lower():
            match = _SECONDS_RE.search(message)
            if match:
                return int(match.group(1))

    return default
