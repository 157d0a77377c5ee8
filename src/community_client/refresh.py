"""Single-flight access token refresh.

Any number of requests may find their access token expired at the same time.
The first one to report it performs the refresh; everyone else awaits the
same shared task and is handed the same outcome, either the new access
token or ``None`` (retry as guest).
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from community_client.events import LOGOUT_EVENT, EventBus
from community_client.models.auth import RefreshResponse, RefreshState, Session
from community_client.session import SessionStore

logger = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh/"


class RefreshCoordinator:
    """Owns the refresh in-flight state and is the only writer of the session on refresh.

    State is ``IDLE`` or ``REFRESHING``. While refreshing, ``_inflight`` holds
    the task every caller awaits; it is reset to ``None`` before the task
    completes, so a caller that resumes always sees ``IDLE``.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: SessionStore,
        events: EventBus,
        *,
        refresh_path: str = REFRESH_PATH,
        timeout: float = 10.0,
        max_retries: int = 0,
        retry_delay: float = 1.0,
    ) -> None:
        self._http = http
        self._store = store
        self._events = events
        self._refresh_path = refresh_path
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._inflight: asyncio.Future[str | None] | None = None
        self._waiting = 0

    @property
    def state(self) -> RefreshState:
        return RefreshState.IDLE if self._inflight is None else RefreshState.REFRESHING

    @property
    def waiting(self) -> int:
        """Number of callers currently queued behind the in-flight refresh."""
        return self._waiting

    async def recover(self, stale_token: str | None) -> str | None:
        """Resolve a 401 that was observed while sending ``stale_token``.

        Returns the token to replay the request with, or ``None`` to replay
        it as a guest.
        """
        if self._inflight is None:
            current = self._store.get().access_token
            if current != stale_token:
                # The session was rotated or dropped after this request left.
                return current
        return await self.refresh()

    async def refresh(self) -> str | None:
        """Run one refresh cycle, or join the cycle already in flight.

        The cycle runs in its own task, so cancelling the caller that started
        it does not decide the outcome for everyone queued behind it.
        """
        if self._inflight is not None:
            return await self._join(self._inflight)

        self._inflight = asyncio.ensure_future(self._run_cycle())
        return await asyncio.shield(self._inflight)

    async def _run_cycle(self) -> str | None:
        try:
            return await self._refresh_tokens()
        finally:
            self._inflight = None

    async def _join(self, future: asyncio.Future[str | None]) -> str | None:
        self._waiting += 1
        try:
            return await asyncio.shield(future)
        finally:
            self._waiting -= 1

    async def _refresh_tokens(self) -> str | None:
        """POST the refresh token; store the result or drop the session."""
        session = self._store.get()
        if not session.refresh_token:
            logger.warning("Access token expired and no refresh token is stored")
            self._drop_session()
            return None

        for attempt in range(1, self._max_retries + 2):
            try:
                response = await self._http.post(
                    self._refresh_path,
                    json={"refresh": session.refresh_token},
                    headers={"Content-Type": "application/json"},
                    timeout=self._timeout,
                )
            except httpx.RequestError as e:
                if isinstance(e, httpx.TransportError) and attempt <= self._max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(f"Token refresh transport error: {e!r}. Retrying in {wait:.1f}s...")
                    await asyncio.sleep(wait)
                    continue
                logger.warning(f"Token refresh failed: {e!r}")
                break

            if not response.is_success:
                logger.warning(f"Token refresh failed (HTTP {response.status_code})")
                break

            try:
                tokens = RefreshResponse.model_validate(response.json())
            except ValueError as e:
                logger.warning(f"Token refresh returned an unusable body: {e}")
                break

            self._store.set(Session(
                access_token=tokens.access,
                refresh_token=tokens.refresh or session.refresh_token,
            ))
            logger.info("Access token refreshed")
            return tokens.access

        self._drop_session()
        return None

    def _drop_session(self) -> None:
        self._store.clear()
        self._events.emit(LOGOUT_EVENT)

    def _backoff(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        return self._retry_delay * (2 ** (attempt - 1))
