"""Helpers shared by the command groups."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from community_client.client import CommunityApiClient

T = TypeVar("T")


def run_with_client(
    client: CommunityApiClient,
    operation: Callable[[CommunityApiClient], Awaitable[T]],
) -> T:
    """Run one async operation on ``client`` and close it on the same event loop."""

    async def _run() -> T:
        try:
            return await operation(client)
        finally:
            await client.close()

    return asyncio.run(_run())


def parse_pairs(pairs: list[str] | None) -> dict[str, Any]:
    """Turn repeated ``key=value`` options into a dict (repeated keys become lists)."""
    params: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got '{pair}'")
        if key in params:
            existing = params[key]
            params[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params
