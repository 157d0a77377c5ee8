"""Send one request, attach the session's bearer token, classify the outcome.

A 401 on a bearer-authenticated, non-auth path is handed to the refresh
coordinator and the request is replayed exactly once with whatever token the
coordinator settles on (or none at all).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from community_client.classify import (
    classify_response,
    classify_transport_error,
    error_message,
    parse_body,
)
from community_client.exceptions import AuthExpiredError
from community_client.refresh import RefreshCoordinator
from community_client.session import SessionStore

logger = logging.getLogger(__name__)

# Credential endpoints: never sent with a bearer token, never refreshed on 401
AUTH_PATHS = (
    "/auth/login/",
    "/auth/register/",
    "/auth/refresh/",
    "/auth/password-reset/",
    "/auth/verify-email/",
    "/auth/resend-verification/",
)

# Failures that callers handle themselves; not worth a warning
_QUIET_STATUSES = (401, 403)


def is_auth_path(path: str) -> bool:
    """Whether ``path`` is a credential endpoint."""
    path = path.split("?", 1)[0]
    return any(path.startswith(prefix) for prefix in AUTH_PATHS)


class RequestExecutor:
    """Builds, sends and classifies requests against the API root of ``http``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: SessionStore,
        coordinator: RefreshCoordinator,
        *,
        rate_limit_default: int = 60,
        verbose: bool = False,
    ) -> None:
        self._http = http
        self._store = store
        self._coordinator = coordinator
        self._rate_limit_default = rate_limit_default
        self._verbose = verbose

    async def execute(
        self,
        path: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
        *,
        refresh: bool = True,
    ) -> Any:
        """Perform a request and return its parsed body.

        Args:
            path: API path relative to the configured root (e.g. "/orders/").
            method: HTTP method.
            headers: Extra headers. Authorization is managed here and any
                caller-supplied value is replaced or dropped.
            body: JSON-serialisable request body.
            refresh: Whether an expired access token may start a refresh
                cycle. When False the 401 is surfaced as is.

        Returns:
            The decoded JSON body, ``None`` for 204, or ``{"data": [], "count": 0}``
            for an empty 2xx body.

        Raises:
            ApiError: The single classified failure for this call.
        """
        method = method.upper()
        token = None if is_auth_path(path) else self._store.get().access_token

        try:
            return await self._attempt(path, method, headers, body, token, refreshable=refresh)
        except AuthExpiredError:
            logger.warning(f"Got 401 for {method} {path}, refreshing session...")

        token = await self._coordinator.recover(token)
        if token is None:
            logger.info(f"Replaying {method} {path} as guest")
        return await self._attempt(path, method, headers, body, token, refreshable=False)

    async def _attempt(
        self,
        path: str,
        method: str,
        headers: dict[str, str] | None,
        body: Any,
        token: str | None,
        *,
        refreshable: bool,
    ) -> Any:
        request_headers = self._build_headers(headers, token)

        if self._verbose:
            logger.info(f"{method} {path} (auth={'bearer' if token else 'guest'})")
            if body is not None:
                logger.info(f"Body: {body}")

        try:
            response = await self._http.request(
                method,
                path,
                headers=request_headers,
                json=body,
            )
        except httpx.HTTPError as e:
            error = classify_transport_error(e)
            logger.error(f"{error.message} URL: {method} {path}")
            raise error from e

        if self._verbose:
            logger.info(f"Response: {response.status_code}")

        if response.status_code == 401 and refreshable and token and not is_auth_path(path):
            data = _safe_json(response)
            raise AuthExpiredError(error_message(data, 401), data, 401)

        if not response.is_success:
            error = classify_response(response, self._rate_limit_default)
            if error.status not in _QUIET_STATUSES:
                logger.warning(f"API request failed: {method} {path} -> {error.status}: {error.message}")
            raise error

        if response.status_code != 204 and not response.text.strip():
            logger.warning(f"Empty response from {path}")
        return parse_body(response)

    @staticmethod
    def _build_headers(headers: dict[str, str] | None, token: str | None) -> httpx.Headers:
        """Build request headers with JSON content type and optional bearer token."""
        request_headers = httpx.Headers(headers or {})
        request_headers["Content-Type"] = "application/json"
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        elif "Authorization" in request_headers:
            del request_headers["Authorization"]
        return request_headers


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}
