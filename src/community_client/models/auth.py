"""Auth-related data models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Session(BaseModel):
    """The credential pair shared by every request of one client."""
    model_config = ConfigDict(frozen=True)

    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshResponse(BaseModel):
    """Response from POST /auth/refresh/."""
    access: str = Field(min_length=1)
    refresh: str | None = None


class LoginResult(BaseModel):
    """Tokens and user extracted from a login or register response.

    The backend returns tokens either nested (``{"tokens": {"access", "refresh"}}``)
    or at the top level (``{"access", "refresh"}``).
    """
    access: str | None = None
    refresh: str | None = None
    user: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> LoginResult:
        if not isinstance(payload, dict):
            return cls()
        tokens = payload.get("tokens")
        if not isinstance(tokens, dict):
            tokens = payload
        return cls(
            access=tokens.get("access"),
            refresh=tokens.get("refresh"),
            user=payload.get("user"),
        )


class SessionStatus(BaseModel):
    """Snapshot of the client's authentication state."""
    has_access_token: bool
    has_refresh_token: bool
    refresh_state: RefreshState
    waiting: int = 0
    user: dict[str, Any] | None = None
