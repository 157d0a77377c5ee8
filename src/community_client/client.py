"""API client for the community services backend.

Wires the session store, refresh coordinator and request executor together
and adds throttling, in-flight de-duplication and the auth operations.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from community_client.config import Config
from community_client.events import EventBus
from community_client.exceptions import ApiError, RateLimitedError
from community_client.executor import RequestExecutor
from community_client.models.auth import LoginResult, Session, SessionStatus
from community_client.refresh import RefreshCoordinator
from community_client.session import SessionStore

logger = logging.getLogger(__name__)

# Methods whose identical in-flight calls share one round trip
DEDUPED_METHODS = ("GET", "HEAD")


class CommunityApiClient:
    """Authenticated HTTP client with transparent single-flight token refresh.

    One instance owns one session; build several for independent sessions.
    """

    def __init__(
        self,
        config: Config,
        *,
        store: SessionStore | None = None,
        events: EventBus | None = None,
        http: httpx.AsyncClient | None = None,
        verbose: bool = False,
    ) -> None:
        settings = config.settings
        self._config = config
        self.store = store if store is not None else SessionStore(settings.session_file)
        self.events = events if events is not None else EventBus()
        self._http = http or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=settings.request_timeout,
        )
        self.coordinator = RefreshCoordinator(
            self._http,
            self.store,
            self.events,
            timeout=settings.refresh_timeout,
            max_retries=settings.refresh_retries,
            retry_delay=settings.retry_delay,
        )
        self.executor = RequestExecutor(
            self._http,
            self.store,
            self.coordinator,
            rate_limit_default=settings.rate_limit_default,
            verbose=verbose,
        )
        self._dedupe = settings.dedupe_requests
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._rate_limit_until: float | None = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make an API request.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: API path (e.g. "/events/"). Appended to the configured API root.
            body: JSON request body.
            params: Query parameters.
            headers: Additional headers to include.

        Returns:
            The parsed response body (``None`` for 204 No Content).

        Raises:
            ApiError: If the request fails, including while throttled.
        """
        method = method.upper()
        self._check_rate_limit()
        if params:
            path = _with_query(path, params)

        if not (self._dedupe and method in DEDUPED_METHODS):
            return await self._execute(method, path, headers, body)

        key = _request_key(method, path, body)
        shared = self._pending.get(key)
        if shared is None:
            shared = asyncio.ensure_future(self._execute(method, path, headers, body))
            self._pending[key] = shared
            shared.add_done_callback(lambda _done, key=key: self._pending.pop(key, None))
        return await asyncio.shield(shared)

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        """Convenience method for GET requests."""
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """Convenience method for POST requests."""
        return await self.request("POST", path, body={} if body is None else body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """Convenience method for PUT requests."""
        return await self.request("PUT", path, body={} if body is None else body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """Convenience method for PATCH requests."""
        return await self.request("PATCH", path, body={} if body is None else body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        """Convenience method for DELETE requests."""
        return await self.request("DELETE", path, **kwargs)

    # ── auth operations ───────────────────────────────────────────────

    async def login(self, credentials: dict[str, Any]) -> Any:
        """Log in and store the returned tokens and user."""
        payload = await self.request("POST", "/auth/login/", body=credentials)
        self._store_login(payload)
        return payload

    async def register(self, user_data: dict[str, Any]) -> Any:
        """Create an account; stores tokens when the backend issues them."""
        payload = await self.request("POST", "/auth/register/", body=user_data)
        self._store_login(payload)
        return payload

    async def logout(self) -> None:
        """Revoke the refresh token server-side and clear the local session.

        The local session is cleared even when the server call fails. An
        expired access token is not refreshed just to log out.
        """
        refresh_token = self.store.get().refresh_token
        try:
            if refresh_token:
                await self._execute(
                    "POST", "/auth/logout/", None, {"refresh_token": refresh_token}, refresh=False
                )
        except ApiError as e:
            logger.warning(f"Logout API call failed, but clearing local state: {e}")
        finally:
            self.store.clear()

    async def get_profile(self) -> Any:
        return await self.request("GET", "/auth/profile/")

    async def request_password_reset(self, email: str) -> Any:
        return await self.request("POST", "/auth/password-reset/request/", body={"email": email})

    async def confirm_password_reset(self, token: str, password: str) -> Any:
        return await self.request(
            "POST",
            "/auth/password-reset/confirm/",
            body={"token": token, "password": password, "password_confirm": password},
        )

    async def verify_email(self, token: str) -> Any:
        return await self.request("POST", "/auth/verify-email/", body={"token": token})

    async def resend_verification_email(self, email: str) -> Any:
        return await self.request("POST", "/auth/resend-verification/", body={"email": email})

    async def change_password(self, old_password: str, new_password: str) -> Any:
        return await self.request(
            "POST",
            "/auth/change-password/",
            body={
                "old_password": old_password,
                "new_password": new_password,
                "new_password_confirm": new_password,
            },
        )

    async def refresh_session(self) -> str | None:
        """Force a coordinated refresh. Returns the new access token, or None if the session was lost."""
        return await self.coordinator.refresh()

    def session_status(self) -> SessionStatus:
        session = self.store.get()
        return SessionStatus(
            has_access_token=bool(session.access_token),
            has_refresh_token=bool(session.refresh_token),
            refresh_state=self.coordinator.state,
            waiting=self.coordinator.waiting,
            user=self.store.get_user(),
        )

    # ── internals ─────────────────────────────────────────────────────

    async def _execute(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None,
        body: Any,
        *,
        refresh: bool = True,
    ) -> Any:
        try:
            return await self.executor.execute(path, method, headers, body, refresh=refresh)
        except RateLimitedError as e:
            self._rate_limit_until = time.monotonic() + e.retry_after
            logger.warning(f"Rate limited (429). Holding requests for {e.retry_after}s")
            raise

    def _check_rate_limit(self) -> None:
        """Fail fast while a 429 throttle window is open."""
        if self._rate_limit_until is None:
            return
        remaining = self._rate_limit_until - time.monotonic()
        if remaining <= 0:
            self._rate_limit_until = None
            return
        raise RateLimitedError(max(1, int(remaining + 0.999)))

    def _store_login(self, payload: Any) -> None:
        result = LoginResult.from_payload(payload)
        if result.access:
            self.store.set(Session(access_token=result.access, refresh_token=result.refresh))
        if result.user is not None:
            self.store.set_user(result.user)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> CommunityApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def _with_query(path: str, params: dict[str, Any]) -> str:
    query = urlencode({k: v for k, v in params.items() if v is not None}, doseq=True)
    if not query:
        return path
    return f"{path}{'&' if '?' in path else '?'}{query}"


def _request_key(method: str, path: str, body: Any) -> str:
    """Deterministic identity of a request for de-duplication."""
    return f"{method}_{path}_{json.dumps(body or {}, sort_keys=True, default=str)}"


def build_client(config: Config, verbose: bool = False) -> CommunityApiClient:
    """Build a client from configuration, persisting the session where settings say."""
    return CommunityApiClient(config, verbose=verbose)
