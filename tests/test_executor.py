"""Tests for executor.py: header construction, outcome handling, 401 hand-off."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from community_client.exceptions import (
    HttpError,
    MalformedResponseError,
    NetworkError,
)
from community_client.executor import RequestExecutor, is_auth_path
from community_client.models.auth import Session
from community_client.session import SessionStore


def _executor(responses, token="T1"):
    """Executor over a transport that replays ``responses`` in order."""
    sent: list[httpx.Request] = []
    queue = list(responses)

    def handler(request):
        sent.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    store = SessionStore()
    if token:
        store.set(Session(access_token=token, refresh_token="R1"))
    coordinator = MagicMock()
    coordinator.recover = AsyncMock(return_value="T2")
    http = httpx.AsyncClient(base_url="https://api.test/api/v1", transport=httpx.MockTransport(handler))
    return RequestExecutor(http, store, coordinator), sent, coordinator


# ── is_auth_path ─────────────────────────────────────────────────────

@pytest.mark.parametrize("path", [
    "/auth/login/",
    "/auth/register/",
    "/auth/refresh/",
    "/auth/password-reset/confirm/",
    "/auth/verify-email/?x=1",
])
def test_credential_endpoints_are_auth_paths(path):
    assert is_auth_path(path)


@pytest.mark.parametrize("path", ["/auth/profile/", "/auth/logout/", "/orders/", "/events/?auth=1"])
def test_other_paths_are_not_auth_paths(path):
    assert not is_auth_path(path)


# ── Headers ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_bearer_attached_when_token_present():
    executor, sent, _ = _executor([httpx.Response(200, json={})])
    await executor.execute("/orders/")

    assert sent[0].headers["Authorization"] == "Bearer T1"
    assert sent[0].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_no_bearer_without_token():
    executor, sent, _ = _executor([httpx.Response(200, json={})], token=None)
    await executor.execute("/events/")

    assert "Authorization" not in sent[0].headers


@pytest.mark.asyncio
async def test_no_bearer_on_auth_path():
    executor, sent, _ = _executor([httpx.Response(200, json={})])
    await executor.execute("/auth/login/", "POST", body={"email": "a@b.c"})

    assert "Authorization" not in sent[0].headers


@pytest.mark.asyncio
async def test_caller_authorization_header_is_replaced():
    executor, sent, _ = _executor([httpx.Response(200, json={})])
    await executor.execute("/orders/", headers={"authorization": "Basic xyz", "X-Client": "cli"})

    assert sent[0].headers["Authorization"] == "Bearer T1"
    assert sent[0].headers["X-Client"] == "cli"


@pytest.mark.asyncio
async def test_body_sent_as_json():
    executor, sent, _ = _executor([httpx.Response(201, json={"id": 7})])
    result = await executor.execute("/donations/", "post", body={"amount": 25})

    assert result == {"id": 7}
    assert sent[0].method == "POST"
    assert b"25" in sent[0].read()


# ── Success bodies ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_204_returns_none():
    executor, _, _ = _executor([httpx.Response(204)])
    assert await executor.execute("/events/1/", "DELETE") is None


@pytest.mark.asyncio
async def test_empty_2xx_returns_empty_structure():
    executor, _, _ = _executor([httpx.Response(200, content=b"   ")])
    assert await executor.execute("/events/") == {"data": [], "count": 0}


@pytest.mark.asyncio
async def test_malformed_2xx_raises():
    executor, _, _ = _executor([httpx.Response(200, text="<html>")])

    with pytest.raises(MalformedResponseError) as exc_info:
        await executor.execute("/events/")
    assert exc_info.value.data == {"text": "<html>"}
    assert exc_info.value.status == 200


# ── Errors ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_http_error_uses_server_message():
    executor, _, _ = _executor([httpx.Response(404, json={"detail": "Not found."})])

    with pytest.raises(HttpError, match="Not found.") as exc_info:
        await executor.execute("/events/99/")
    assert exc_info.value.status == 404
    assert exc_info.value.data == {"detail": "Not found."}


@pytest.mark.asyncio
async def test_transport_error_becomes_network_error():
    executor, _, _ = _executor([httpx.ConnectError("connection refused")])

    with pytest.raises(NetworkError) as exc_info:
        await executor.execute("/events/")
    assert exc_info.value.status == 0
    assert exc_info.value.data == {"networkError": True}


@pytest.mark.asyncio
async def test_timeout_becomes_network_error():
    executor, _, _ = _executor([httpx.ReadTimeout("read timed out")])

    with pytest.raises(NetworkError):
        await executor.execute("/events/")


@pytest.mark.asyncio
async def test_decoding_error_becomes_network_error():
    executor, _, _ = _executor([httpx.DecodingError("bad gzip")])

    with pytest.raises(NetworkError) as exc_info:
        await executor.execute("/events/")
    assert exc_info.value.status == 0
    assert exc_info.value.data == {"networkError": True}


# ── 401 hand-off ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_401_handed_to_coordinator_and_replayed():
    executor, sent, coordinator = _executor([
        httpx.Response(401, json={"detail": "expired"}),
        httpx.Response(200, json={"ok": True}),
    ])

    assert await executor.execute("/orders/") == {"ok": True}
    coordinator.recover.assert_awaited_once_with("T1")
    assert sent[1].headers["Authorization"] == "Bearer T2"


@pytest.mark.asyncio
async def test_guest_replay_has_no_authorization():
    executor, sent, coordinator = _executor([
        httpx.Response(401, json={"detail": "expired"}),
        httpx.Response(200, json={"ok": True}),
    ])
    coordinator.recover.return_value = None

    await executor.execute("/orders/")
    assert "Authorization" not in sent[1].headers


@pytest.mark.asyncio
async def test_replayed_401_is_surfaced_not_refreshed_again():
    executor, sent, coordinator = _executor([
        httpx.Response(401, json={"detail": "expired"}),
        httpx.Response(401, json={"detail": "still expired"}),
    ])

    with pytest.raises(HttpError, match="still expired") as exc_info:
        await executor.execute("/orders/")
    assert exc_info.value.status == 401
    coordinator.recover.assert_awaited_once()
    assert len(sent) == 2


@pytest.mark.asyncio
async def test_401_on_auth_path_surfaced_directly():
    executor, sent, coordinator = _executor([
        httpx.Response(401, json={"detail": "No active account found with the given credentials"}),
    ])

    with pytest.raises(HttpError) as exc_info:
        await executor.execute("/auth/login/", "POST", body={})
    assert exc_info.value.status == 401
    coordinator.recover.assert_not_awaited()


@pytest.mark.asyncio
async def test_401_without_bearer_surfaced_directly():
    executor, _, coordinator = _executor([httpx.Response(401, json={"detail": "Authentication required"})], token=None)

    with pytest.raises(HttpError, match="Authentication required"):
        await executor.execute("/orders/")
    coordinator.recover.assert_not_awaited()


@pytest.mark.asyncio
async def test_401_surfaced_when_refresh_disabled():
    executor, sent, coordinator = _executor([httpx.Response(401, json={"detail": "expired"})])

    with pytest.raises(HttpError, match="expired") as exc_info:
        await executor.execute("/auth/logout/", "POST", body={}, refresh=False)
    assert exc_info.value.status == 401
    assert sent[0].headers["Authorization"] == "Bearer T1"
    coordinator.recover.assert_not_awaited()


@pytest.mark.asyncio
async def test_executor_never_writes_session():
    executor, _, _ = _executor([
        httpx.Response(401, json={}),
        httpx.Response(200, json={}),
    ])
    before = executor._store.get()

    await executor.execute("/orders/")
    assert executor._store.get() == before
