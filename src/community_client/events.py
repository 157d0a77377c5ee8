"""Process-wide notifications for collaborators outside the request pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

LOGOUT_EVENT = "auth:logout"

Listener = Callable[[], None]


class EventBus:
    """Synchronous publish/subscribe registry keyed by event name.

    Listeners run in subscription order. A listener that raises is logged and
    skipped; the remaining listeners still run and the emitter is unaffected.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def unsubscribe(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str) -> int:
        """Notify every listener of ``event``. Returns how many were called."""
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception(f"Listener for '{event}' failed")
        return len(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))
