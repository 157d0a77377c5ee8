"""Shared fixtures for the community-api test suite."""
from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from community_client.client import CommunityApiClient
from community_client.config import Config, EnvironmentProfile, Settings
from community_client.events import EventBus
from community_client.models.auth import Session
from community_client.session import SessionStore

API_PREFIX = "/api/v1"


class FakeApi:
    """In-process backend for httpx.MockTransport.

    Bearer tokens in ``valid_tokens`` are accepted; any other bearer token gets
    a 401, as does a missing one on a path not listed in ``public_paths``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.valid_tokens: set[str] = {"T2"}
        self.public_paths: set[str] = {"/auth/login/", "/auth/register/"}
        self.routes: dict[str, Any] = {}
        self.refresh_response: Any = (200, {"access": "T2"})
        self.refresh_gate: asyncio.Event | None = None
        self.refresh_calls = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(API_PREFIX)

        if path == "/auth/refresh/":
            self.refresh_calls += 1
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            if isinstance(self.refresh_response, Exception):
                raise self.refresh_response
            status, body = self.refresh_response
            return httpx.Response(status, json=body)

        auth = request.headers.get("Authorization")
        token = auth.removeprefix("Bearer ") if auth else None
        if (token is not None and token not in self.valid_tokens) or (
            token is None and path not in self.public_paths
        ):
            return httpx.Response(401, json={"detail": "Given token not valid for any token type"})

        route = self.routes.get(path)
        if route is None:
            return httpx.Response(200, json={"path": path, "token": token})
        if isinstance(route, httpx.Response):
            return route
        status, body = route
        return httpx.Response(status, json=body)

    def paths(self, token: str | None = "any") -> list[str]:
        """Paths requested, optionally only those sent with ``token`` (None = guest)."""
        out = []
        for r in self.requests:
            auth = r.headers.get("Authorization")
            sent = auth.removeprefix("Bearer ") if auth else None
            if token == "any" or sent == token:
                out.append(r.url.path.removeprefix(API_PREFIX))
        return out


@pytest.fixture
def fake_settings() -> Settings:
    return Settings(
        environment="test",
        session_file=None,
        request_timeout=5.0,
        refresh_timeout=5.0,
        refresh_retries=0,
        retry_delay=0.0,
        rate_limit_default=60,
        dedupe_requests=True,
    )


@pytest.fixture
def fake_environments() -> dict[str, EnvironmentProfile]:
    return {
        "test": EnvironmentProfile(api_url="https://api.test", api_prefix=API_PREFIX),
        "staging": EnvironmentProfile(api_url="https://staging.api.test/", api_prefix="/api/v2/"),
    }


@pytest.fixture
def fake_config(fake_settings, fake_environments) -> Config:
    return Config(settings=fake_settings, environments=fake_environments)


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def store() -> SessionStore:
    """In-memory store holding an expired access token T1 and refresh token R1."""
    s = SessionStore()
    s.set(Session(access_token="T1", refresh_token="R1"))
    return s


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def make_client(fake_config, api, store, events):
    """Factory for clients wired to the fake backend; kwargs override settings."""

    def _make(**overrides: Any) -> CommunityApiClient:
        settings = fake_config.settings.model_copy(update=overrides)
        config = fake_config.model_copy(update={"settings": settings})
        http = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(api))
        return CommunityApiClient(config, store=store, events=events, http=http)

    return _make


@pytest.fixture
def mock_client():
    """MagicMock standing in for CommunityApiClient."""
    client = MagicMock()
    client.request = AsyncMock()
    client.login = AsyncMock()
    client.logout = AsyncMock()
    client.refresh_session = AsyncMock()
    client.close = AsyncMock()
    return client
