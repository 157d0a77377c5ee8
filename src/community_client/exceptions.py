"""Typed errors raised by the request pipeline.

Every failed call surfaces as exactly one ``ApiError``. ``status == 0`` means
no response was received.
"""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """A request that did not produce a usable success body."""

    def __init__(self, message: str, data: Any = None, status: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.data = data if data is not None else {}
        self.status = status

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"


class NetworkError(ApiError):
    """Transport-level failure: DNS, connection reset, timeout."""

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message, data if data is not None else {"networkError": True}, 0)


class HttpError(ApiError):
    """The server answered with a non-2xx status."""


class RateLimitedError(HttpError):
    """HTTP 429, or a request refused locally while the throttle window is open."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            f"Request was throttled. Expected available in {retry_after} seconds.",
            {"retryAfter": retry_after},
            429,
        )
        self.retry_after = retry_after


class MalformedResponseError(ApiError):
    """A 2xx response whose body is not valid JSON."""


class AuthExpiredError(ApiError):
    """A 401 on a bearer-authenticated, non-auth path.

    Never reaches callers: the refresh coordinator absorbs it and the request
    is replayed.
    """
