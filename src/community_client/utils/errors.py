"""Structured error reporting for CLI output."""

from __future__ import annotations

import json
import sys

from rich.console import Console

from community_client.exceptions import (
    ApiError,
    MalformedResponseError,
    NetworkError,
    RateLimitedError,
)

console = Console(stderr=True)

# Actionable hints keyed by error code
_CODE_HINTS: dict[str, str] = {
    "NETWORK_ERROR": "Could not reach the API. Check COMMUNITY_API_URL and that the backend is running",
    "AUTH_ERROR": "Session expired or missing. Run `community-api auth login`",
    "FORBIDDEN": "Your account does not have permission for this resource",
    "NOT_FOUND": "The requested resource does not exist. Verify the path and ID",
    "RATE_LIMITED": "Rate limited. Wait for the throttle window to pass and retry",
    "MALFORMED_RESPONSE": "The server returned a non-JSON body. Check the API root and prefix",
    "SERVER_ERROR": "The backend failed to handle the request. Try again later",
}


def error_code(error: Exception) -> str:
    """Classify an error into a stable machine-readable code."""
    if isinstance(error, NetworkError):
        return "NETWORK_ERROR"
    if isinstance(error, RateLimitedError):
        return "RATE_LIMITED"
    if isinstance(error, MalformedResponseError):
        return "MALFORMED_RESPONSE"
    if not isinstance(error, ApiError):
        return "RUNTIME_ERROR"
    if error.status == 401:
        return "AUTH_ERROR"
    if error.status == 403:
        return "FORBIDDEN"
    if error.status == 404:
        return "NOT_FOUND"
    if error.status >= 500:
        return "SERVER_ERROR"
    if error.status >= 400:
        return "HTTP_ERROR"
    return "RUNTIME_ERROR"


def handle_error(error: Exception) -> None:
    """Report an error as JSON on stdout and a readable line on stderr.

    {"error": true, "code": "NOT_FOUND", "status": 404, "message": "...", "hint": "..."}
    """
    code = error_code(error)
    hint = _CODE_HINTS.get(code)
    message = error.message if isinstance(error, ApiError) else str(error)

    error_obj: dict[str, object] = {
        "error": True,
        "code": code,
        "status": getattr(error, "status", None),
        "message": message,
    }
    if hint:
        error_obj["hint"] = hint

    json.dump(error_obj, sys.stdout)
    sys.stdout.write("\n")

    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
