"""Durable storage for the current access/refresh credentials.

The session is kept as one JSON document with the keys ``authToken``,
``refreshToken`` and ``user``, so a session written by one process is picked
up by the next.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from community_client.models.auth import Session

logger = logging.getLogger(__name__)

ACCESS_KEY = "authToken"
REFRESH_KEY = "refreshToken"
USER_KEY = "user"


class SessionStore:
    """Holds the credential pair for one client.

    With ``path=None`` the session lives in memory only. Every write replaces
    the in-memory snapshot in a single assignment and the file with an atomic
    rename, so readers never see half of an update.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path else None
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    # ── credentials ───────────────────────────────────────────────────

    def get(self) -> Session:
        """Return the current session (both fields None when logged out)."""
        return Session(
            access_token=self._data.get(ACCESS_KEY),
            refresh_token=self._data.get(REFRESH_KEY),
        )

    def set(self, session: Session) -> None:
        """Replace the stored credentials, keeping the stored user."""
        data = {k: v for k, v in self._data.items() if k not in (ACCESS_KEY, REFRESH_KEY)}
        if session.access_token:
            data[ACCESS_KEY] = session.access_token
        if session.refresh_token:
            data[REFRESH_KEY] = session.refresh_token
        self._commit(data)

    def clear(self) -> None:
        """Forget tokens and user together."""
        self._commit({})

    # ── user (written by collaborators) ───────────────────────────────

    def get_user(self) -> dict[str, Any] | None:
        return self._data.get(USER_KEY)

    def set_user(self, user: dict[str, Any] | None) -> None:
        data = dict(self._data)
        if user is None:
            data.pop(USER_KEY, None)
        else:
            data[USER_KEY] = user
        self._commit(data)

    # ── persistence ───────────────────────────────────────────────────

    def _load(self) -> dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: data[k] for k in (ACCESS_KEY, REFRESH_KEY, USER_KEY) if data.get(k)}

    def _commit(self, data: dict[str, Any]) -> None:
        self._data = data
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
